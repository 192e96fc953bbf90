"""Error taxonomy for the link shortener.

The first group is what callers of the core see. ``CacheUnavailable`` and
``StorageError`` are raised by the backing layers and translated by the
service before anything reaches the HTTP boundary.

Hierarchy
=========
::
    ShortenerError
    ├─ InvalidInput          400
    ├─ Conflict              409
    ├─ NotFound              404
    ├─ Unavailable           503 (retryable)
    ├─ RateLimited           429
    ├─ CacheUnavailable      internal
    └─ StorageError          internal
       └─ DuplicateShortCode
"""

__all__ = [
    "ShortenerError",
    "InvalidInput",
    "Conflict",
    "NotFound",
    "Unavailable",
    "RateLimited",
    "CacheUnavailable",
    "StorageError",
    "DuplicateShortCode",
]


class ShortenerError(Exception):
    """Base class for every error raised by the shortener core."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(ShortenerError):
    status_code = 400
    default_message = "Invalid input"


class Conflict(ShortenerError):
    status_code = 409
    default_message = "Short code already exists"


class NotFound(ShortenerError):
    status_code = 404
    default_message = "Short code not found"


class Unavailable(ShortenerError):
    status_code = 503
    default_message = "Service temporarily unavailable"


class RateLimited(ShortenerError):
    status_code = 429
    default_message = "Too many requests"

    def __init__(self, message: str | None = None, retry_after: int | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class CacheUnavailable(ShortenerError):
    """The Redis cache could not serve a request."""

    default_message = "Cache error"


class StorageError(ShortenerError):
    """The durable store could not serve a request."""

    default_message = "Database error"


class DuplicateShortCode(StorageError):
    """An active link already owns the short code."""

    default_message = "Short code already exists"
