"""Error definitions for the presign service.

Every error carries the HTTP status it maps to. The request boundary renders
all of them uniformly as ``{"error": message}``.
"""


class PresignError(Exception):
    """Base error for the presign pipeline.

    Attributes:
        kind: Short machine-readable error kind (e.g. "AuthError").
        message: Human-readable error description, returned to the caller.
        http_status: The HTTP status code to return.
    """

    kind = "PresignError"

    def __init__(self, message: str, http_status: int = 500) -> None:
        """Initialize the error.

        Args:
            message: Error description.
            http_status: HTTP status code (default 500).
        """
        super().__init__(message)
        self.message = message
        self.http_status = http_status


class ValidationError(PresignError):
    """Malformed request body, unsupported mode, or unusable object key."""

    kind = "ValidationError"

    def __init__(self, message: str = "Invalid request") -> None:
        super().__init__(message, http_status=400)


class AuthError(PresignError):
    """Missing, malformed, or rejected bearer credential."""

    kind = "AuthError"

    def __init__(self, message: str = "unauthorized") -> None:
        super().__init__(message, http_status=401)


class AccessDenied(PresignError):
    """The resolved object key lies outside the caller's own namespace."""

    kind = "AccessDenied"

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message, http_status=403)


class ConfigError(PresignError):
    """Required signing or identity configuration is absent."""

    kind = "ConfigError"

    def __init__(self, message: str = "Storage configuration missing") -> None:
        super().__init__(message, http_status=500)


class SigningError(PresignError):
    """Unexpected failure inside the cryptographic pipeline."""

    kind = "SigningError"

    def __init__(self, message: str = "Signing failed") -> None:
        super().__init__(message, http_status=500)
