class DevhanceError(Exception):
    """Base exception for DevHance application errors.

    Every subclass maps to one HTTP status and carries a message that is safe to
    return to the client.
    """

    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        self.message = message
        super().__init__(message)


class Unauthorized(DevhanceError):
    """Missing or invalid credentials."""

    status_code = 401


class Forbidden(DevhanceError):
    """Authenticated, but not the owner of the resource."""

    status_code = 403


class NotFound(DevhanceError):
    """Resource does not exist."""

    status_code = 404


class ValidationError(DevhanceError):
    """Malformed input, with field-level messages."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", errors: list[dict] | None = None):
        self.errors = errors or []
        super().__init__(message)

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors=[{"field": field, "message": message}])


class Conflict(DevhanceError):
    """Uniqueness violation (duplicate username, duplicate like)."""

    status_code = 409

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class UpstreamError(DevhanceError):
    """A collaborator (storage, media host, identity provider) failed."""

    status_code = 502


class StorageError(UpstreamError):
    """Raised when a database write or read fails."""

    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message)


class MediaUploadError(UpstreamError):
    """Raised when any image in an upload batch fails."""

    def __init__(self, message: str = "Failed to upload images"):
        super().__init__(message)
