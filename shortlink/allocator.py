"""Short code generation and reservation.

Generated codes are drawn uniformly from the 62-character alphanumeric alphabet
with nanoid and reserved by inserting the record. The store's primary key
decides whether a code is free; the allocator never checks first and inserts
second.

Flow Diagram — allocate()
=========================
::
    ┌──────────────┐
    │ custom code? │
    └──────┬───────┘
    ┌──────┴──────────────┐
    │ YES                 │ NO
    ▼                     ▼
┌──────────┐      ┌───────────────┐
│ validate │      │ draw candidate│◄──────────┐
│ charset  │      └──────┬────────┘           │
│ + length │             ▼                    │
└────┬─────┘      ┌───────────────┐ collision │
     ▼            │ store.insert  ├───────────┤ attempts left
┌──────────┐      └──────┬────────┘           │
│ insert   │             ▼                    ▼ budget spent
│ once     │          record        AllocationExhaustedError
└────┬─────┘
     ▼
 record or CodeTakenError

Key Behaviours
===============
- Custom codes are user intent: one attempt, CodeTakenError on collision.
- Generated codes retry with a fresh candidate up to max_attempts.
- The code length is never changed to escape collisions.
- Codes that match a fixed route (health, metrics, docs, redoc) are never
  issued; custom requests for them fail with INVALID_CODE.
"""

import datetime
import logging
import re
from collections.abc import Callable

from nanoid import generate
from prometheus_client import Counter

from shortlink.config import MAX_CODE_LENGTH, Settings
from shortlink.exceptions import AllocationExhaustedError, CodeTakenError, URLValidationError
from shortlink.schemas import URLRecord, utcnow
from shortlink.store import URLStore

__all__ = ["ALPHABET", "RESERVED_CODES", "CodeAllocator", "generate_short_code", "validate_code"]

logger = logging.getLogger(__name__)

ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
CODE_PATTERN = re.compile(r"^[A-Za-z0-9]+$")
# Paths served by fixed routes; a link under one of these could never redirect.
RESERVED_CODES = frozenset({"health", "metrics", "docs", "redoc"})

ALLOCATION_COLLISIONS_TOTAL = Counter(
    "shortlink_allocation_collisions_total",
    "Generated short codes that collided with an existing code",
)
ALLOCATION_EXHAUSTED_TOTAL = Counter(
    "shortlink_allocation_exhausted_total",
    "Allocations that ran out of attempts",
)


def generate_short_code(length: int) -> str:
    assert isinstance(length, int) and 1 <= length <= MAX_CODE_LENGTH, f"length must be 1-16, got {length!r}"
    return generate(ALPHABET, length)


def validate_code(code: str, min_length: int = 1, max_length: int = MAX_CODE_LENGTH) -> str:
    if not min_length <= len(code) <= max_length:
        raise URLValidationError(
            f"Custom code must be {min_length}-{max_length} characters",
            code="INVALID_CODE",
        )
    if not CODE_PATTERN.match(code):
        raise URLValidationError("Custom code must be alphanumeric", code="INVALID_CODE")
    if code in RESERVED_CODES:
        raise URLValidationError(f"Custom code is reserved: {code}", code="INVALID_CODE")
    return code


class CodeAllocator:
    """Allocates unique short codes by reserving them in the store."""

    def __init__(
        self,
        store: URLStore,
        length: int = 8,
        max_attempts: int = 10,
        custom_min_length: int = 1,
        custom_max_length: int = MAX_CODE_LENGTH,
        generator: Callable[[int], str] = generate_short_code,
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self._store = store
        self._length = length
        self._max_attempts = max_attempts
        self._custom_min_length = custom_min_length
        self._custom_max_length = custom_max_length
        self._generator = generator
        self._clock = clock

    @classmethod
    def from_settings(
        cls, store: URLStore, settings: Settings, clock: Callable[[], datetime.datetime] = utcnow
    ) -> "CodeAllocator":
        return cls(
            store,
            length=settings.SHORT_CODE_LENGTH,
            max_attempts=settings.SHORT_CODE_MAX_ATTEMPTS,
            custom_min_length=settings.CUSTOM_CODE_MIN_LENGTH,
            custom_max_length=settings.CUSTOM_CODE_MAX_LENGTH,
            clock=clock,
        )

    async def allocate(
        self,
        target_url: str,
        expires_at: datetime.datetime | None = None,
        length: int | None = None,
        custom_code: str | None = None,
    ) -> URLRecord:
        """Reserve a code for ``target_url`` and return the stored record.

        Args:
            target_url: Already validated destination URL.
            expires_at: Optional expiry timestamp (UTC).
            length: Generated code length, defaults to the configured length.
            custom_code: Caller-chosen code; reserved once, never retried.

        Raises:
            URLValidationError: Invalid custom code or length.
            CodeTakenError: The custom code is already reserved.
            AllocationExhaustedError: Every generated candidate collided.
            StoreUnavailableError: The store could not be reached.
        """
        created_at = self._clock()
        if custom_code is not None:
            validate_code(custom_code, self._custom_min_length, self._custom_max_length)
            record = URLRecord(code=custom_code, target_url=target_url, created_at=created_at, expires_at=expires_at)
            return await self._store.insert(record)

        length = self._length if length is None else length
        if not 1 <= length <= MAX_CODE_LENGTH:
            raise URLValidationError(f"Code length must be 1-{MAX_CODE_LENGTH}", code="INVALID_CODE")

        for attempt in range(1, self._max_attempts + 1):
            candidate = self._generator(length)
            if candidate in RESERVED_CODES:
                ALLOCATION_COLLISIONS_TOTAL.inc()
                logger.info(f"Skipping reserved short code on attempt {attempt}/{self._max_attempts}: {candidate}")
                continue
            record = URLRecord(code=candidate, target_url=target_url, created_at=created_at, expires_at=expires_at)
            try:
                return await self._store.insert(record)
            except CodeTakenError:
                ALLOCATION_COLLISIONS_TOTAL.inc()
                logger.info(f"Short code collision on attempt {attempt}/{self._max_attempts}: {candidate}")

        ALLOCATION_EXHAUSTED_TOTAL.inc()
        logger.error(f"Short code allocation exhausted after {self._max_attempts} attempts (length={length})")
        raise AllocationExhaustedError(self._max_attempts, length)
