"""Shareable 1080x1080 AQI card rendered with Pillow."""

from __future__ import annotations

import re
from datetime import datetime
from functools import lru_cache
from io import BytesIO

from PIL import Image, ImageChops, ImageDraw, ImageFont

from aqi_dashboard.config import ShareCardSettings
from aqi_dashboard.domain.models import Reading
from aqi_dashboard.logging import logger
from aqi_dashboard.services.exceptions import ShareCardError
from aqi_dashboard.services.presentation import adjust_color, aqi_category, hex_to_rgb
from aqi_dashboard.utils.datetime import utc_now

CARD_SIZE = 1080
CENTER_X = CARD_SIZE // 2
TEXT_MAX_WIDTH = 800
GRADIENT_DEPTH = -70
_UNSAFE_FILENAME = re.compile(r"[^\w.-]+")

FontType = ImageFont.FreeTypeFont | ImageFont.ImageFont


def city_font_size(name: str) -> int:
    if len(name) > 40:
        return 50
    if len(name) > 25:
        return 60
    if len(name) > 15:
        return 75
    return 90


def aqi_font_size(aqi_text: str) -> int:
    if len(aqi_text) >= 3:
        return 340
    if len(aqi_text) == 2:
        return 400
    return 440


def wrap_text(draw: ImageDraw.ImageDraw, text: str, font: FontType, max_width: float) -> list[str]:
    """Greedy word wrap; a single over-long word stays on its own line."""

    lines: list[str] = []
    line = ""
    for word in text.split():
        candidate = f"{line} {word}".strip()
        if line and draw.textlength(candidate, font=font) > max_width:
            lines.append(line)
            line = word
        else:
            line = candidate
    lines.append(line)
    return lines


def share_filename(reading: Reading, now: datetime | None = None) -> str:
    moment = now or utc_now()
    city = _UNSAFE_FILENAME.sub("_", reading.city_name).strip("_") or "city"
    return f"AQI_PRO_{city}_{int(moment.timestamp() * 1000)}.png"


class ShareCardGenerator:
    def __init__(self, settings: ShareCardSettings | None = None) -> None:
        self.settings = settings or ShareCardSettings()

    def render(self, reading: Reading, now: datetime | None = None) -> bytes:
        if reading.aqi is None:
            raise ShareCardError("Cannot render a share card without an AQI value")
        moment = now or utc_now()
        category = aqi_category(reading.aqi)

        image = self._background(category.color)
        draw = ImageDraw.Draw(image, "RGBA")
        draw.rounded_rectangle((80, 80, 1000, 1000), radius=60, fill=(255, 255, 255, 26))

        city_size = city_font_size(reading.city_name)
        city_font = self._font(city_size)
        line_height = city_size * 1.1
        lines = wrap_text(draw, reading.city_name.upper(), city_font, TEXT_MAX_WIDTH)
        for offset, line in enumerate(lines):
            draw.text(
                (CENTER_X, 220 + offset * line_height),
                line,
                font=city_font,
                fill=(255, 255, 255, 255),
                anchor="ms",
            )

        aqi_text = str(reading.aqi)
        aqi_size = aqi_font_size(aqi_text)
        aqi_y = 260 + len(lines) * line_height + aqi_size * 0.7
        draw.text(
            (CENTER_X, aqi_y), aqi_text, font=self._font(aqi_size), fill=(255, 255, 255, 255), anchor="ms"
        )

        label_y = aqi_y + aqi_size * 0.15
        draw.text((CENTER_X, label_y), "AQI", font=self._font(50), fill=(255, 255, 255, 230), anchor="ms")

        badge_y = label_y + 100
        badge_width, badge_height = 600, 90
        draw.rounded_rectangle(
            (CENTER_X - badge_width / 2, badge_y, CENTER_X + badge_width / 2, badge_y + badge_height),
            radius=45,
            fill=(255, 255, 255, 51),
        )
        draw.text(
            (CENTER_X, badge_y + badge_height / 2 + 16),
            category.label,
            font=self._font(45),
            fill=(255, 255, 255, 255),
            anchor="ms",
        )

        footer_y = 960
        draw.text(
            (CENTER_X, footer_y),
            moment.strftime("%b %d, %Y, %I:%M %p"),
            font=self._font(32),
            fill=(255, 255, 255, 179),
            anchor="ms",
        )
        draw.text(
            (CENTER_X, footer_y + 60),
            self.settings.brand,
            font=self._font(40),
            fill=(255, 255, 255, 255),
            anchor="ms",
        )

        buffer = BytesIO()
        image.save(buffer, format="PNG", optimize=True)
        logger.info("share_card_rendered", city=reading.city_name, aqi=reading.aqi, bytes=buffer.tell())
        return buffer.getvalue()

    @staticmethod
    def _background(base_color: str) -> Image.Image:
        start = Image.new("RGB", (CARD_SIZE, CARD_SIZE), hex_to_rgb(base_color))
        end = Image.new("RGB", (CARD_SIZE, CARD_SIZE), hex_to_rgb(adjust_color(base_color, GRADIENT_DEPTH)))
        vertical = Image.linear_gradient("L").resize((CARD_SIZE, CARD_SIZE))
        horizontal = vertical.transpose(Image.Transpose.ROTATE_90)
        diagonal = ImageChops.add(horizontal, vertical, scale=2.0)
        return Image.composite(end, start, diagonal)

    def _font(self, size: int) -> FontType:
        return _load_font(self.settings.font_path, size)


@lru_cache(maxsize=32)
def _load_font(font_path: str | None, size: int) -> FontType:
    if font_path:
        try:
            return ImageFont.truetype(font_path, size)
        except OSError as exc:
            logger.warning("share_card_font_unavailable", font_path=font_path, error=str(exc))
    return ImageFont.load_default(size=size)


__all__ = [
    "ShareCardGenerator",
    "aqi_font_size",
    "city_font_size",
    "share_filename",
    "wrap_text",
]
