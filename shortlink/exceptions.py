"""Error taxonomy for the shortlink core.

Classes:
    ShortLinkError:
        Base class for every error raised by the core. Carries a stable
        machine-readable ``code`` used by the HTTP layer.

    URLValidationError:
        Malformed target URL or invalid custom code. Raised before any
        allocation attempt.

    CodeTakenError:
        The requested short code is already reserved in the store.

    AllocationExhaustedError:
        Auto-generated codes collided more often than the attempt budget allows.

    URLNotFoundError:
        The code is absent, or logically expired where expiry matters.

    StoreUnavailableError:
        The durable store could not be reached in time. Always surfaced.

    CacheUnavailableError:
        Redis could not be reached in time. Never leaves ``shortlink.cache``.

Example:
    >>> from shortlink.exceptions import CodeTakenError
    >>> raise CodeTakenError("demo")
    Traceback (most recent call last):
        ...
    shortlink.exceptions.CodeTakenError: Short code already exists: demo
"""

__all__ = [
    "AllocationExhaustedError",
    "CacheUnavailableError",
    "CodeTakenError",
    "ShortLinkError",
    "StoreUnavailableError",
    "URLNotFoundError",
    "URLValidationError",
]


class ShortLinkError(Exception):
    """Generic base class for shortlink errors."""

    code = "INTERNAL_ERROR"


class URLValidationError(ShortLinkError):
    """Raised when a target URL or custom code fails validation."""

    code = "INVALID_URL"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class CodeTakenError(ShortLinkError):
    """Raised when inserting a record whose short code already exists."""

    code = "CODE_EXISTS"

    def __init__(self, short_code: str) -> None:
        super().__init__(f"Short code already exists: {short_code}")
        self.short_code = short_code


class AllocationExhaustedError(ShortLinkError):
    """Raised when every generated candidate collided with an existing code."""

    code = "ALLOCATION_EXHAUSTED"

    def __init__(self, attempts: int, length: int) -> None:
        super().__init__(f"Could not allocate a unique {length}-character code after {attempts} attempts")
        self.attempts = attempts
        self.length = length


class URLNotFoundError(ShortLinkError):
    """Raised when a short code does not exist or is no longer servable."""

    code = "NOT_FOUND"

    def __init__(self, short_code: str) -> None:
        super().__init__(f"URL not found: {short_code}")
        self.short_code = short_code


class StoreUnavailableError(ShortLinkError):
    """Raised when the durable store is unreachable, e.g. pool timeout or lost connection."""

    code = "STORE_UNAVAILABLE"


class CacheUnavailableError(ShortLinkError):
    """Raised inside the cache layer when Redis fails or times out."""

    code = "CACHE_UNAVAILABLE"
