"""Domain-specific exceptions."""


class ServiceError(Exception):
    pass


class MalformedResponse(ServiceError):
    """Provider answered "ok" but the payload lacks required fields."""


class ShareCardError(ServiceError):
    pass
