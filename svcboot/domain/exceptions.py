"""Service-level exceptions."""


class ServiceError(Exception):
    """Base exception for service errors."""

    pass


class ConfigurationError(ServiceError):
    """Raised when required configuration is missing or invalid."""

    pass


class DatabaseNotConfiguredError(ConfigurationError):
    """Raised when a handler asks for a database the service does not have."""

    pass


class UnknownServiceError(ServiceError):
    """Raised when a service name is not in the registry."""

    pass


class RequestBodyError(ServiceError):
    """Base exception for request bodies the parser refuses."""

    pass


class MalformedBodyError(RequestBodyError):
    """Raised when a JSON or URL-encoded body cannot be parsed."""

    pass


class PayloadTooLargeError(RequestBodyError):
    """Raised when a request body exceeds the configured limit."""

    def __init__(self, limit: int, length: int | None = None):
        self.limit = limit
        self.length = length
        super().__init__(f"Request body exceeds the {limit} byte limit")
