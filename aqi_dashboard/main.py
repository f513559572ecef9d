"""Application entrypoint."""

from __future__ import annotations

from aqi_dashboard.cli import app
from aqi_dashboard.logging import configure_logging


def main() -> None:
    configure_logging()
    app()


if __name__ == "__main__":
    main()
