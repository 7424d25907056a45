"""Gateway error definitions for udlgate."""

from enum import Enum


class ErrorKind(str, Enum):
    """The closed set of failures a client can observe."""

    UNAUTHORIZED = "Unauthorized"
    BAD_REQUEST = "BadRequest"
    NOT_FOUND = "NotFound"
    METHOD_NOT_ALLOWED = "MethodNotAllowed"
    INTERNAL_ERROR = "InternalError"


# The only kind -> status mapping in the gateway.
STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.METHOD_NOT_ALLOWED: 405,
    ErrorKind.INTERNAL_ERROR: 500,
}


class GatewayError(Exception):
    """A client-visible error with a kind and a message.

    Attributes:
        kind: The taxonomy entry, which decides the HTTP status.
        message: Human-readable description rendered as ``{"error": message}``.
    """

    def __init__(self, kind: ErrorKind, message: str) -> None:
        """Initialize the gateway error.

        Args:
            kind: Error kind.
            message: Error description.
        """
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def http_status(self) -> int:
        """HTTP status code for this error's kind."""
        return STATUS_BY_KIND[self.kind]


# -- Common pre-defined errors ------------------------------------------------


class Unauthorized(GatewayError):
    """Missing or wrong credential."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(ErrorKind.UNAUTHORIZED, message)


class BadRequest(GatewayError):
    """Missing or malformed request input."""

    def __init__(self, message: str = "Bad request") -> None:
        super().__init__(ErrorKind.BAD_REQUEST, message)


class NotFound(GatewayError):
    """Unknown route, object or upload session."""

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(ErrorKind.NOT_FOUND, message)


class MethodNotAllowed(GatewayError):
    """The route exists but not for this HTTP method."""

    def __init__(self, message: str = "Method not allowed") -> None:
        super().__init__(ErrorKind.METHOD_NOT_ALLOWED, message)


class InternalError(GatewayError):
    """An unexpected failure. The message never carries internal detail."""

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(ErrorKind.INTERNAL_ERROR, message)
