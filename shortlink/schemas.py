"""Pydantic schemas for the shortlink core and its HTTP surface.

Schema Hierarchy
=================
::
    URLRecord (Domain / cache payload)
    ├─ code: str
    ├─ target_url: str
    ├─ created_at: datetime (UTC)
    ├─ expires_at: datetime | None
    ├─ click_count: int
    └─ last_clicked_at: datetime | None

    URLCreate (Input)
    ├─ url: str
    ├─ custom_code: str | None
    └─ expiry_hours: int | None (1-87600)

    URLResponse / URLInfo (Output)
    └─ URLRecord fields + short_url (+ is_expired for URLInfo)

    PaginatedURLs (Output)
    ├─ data: list[URLInfo]
    └─ pagination: PaginationMeta

    URLStats, SweepResponse, HealthResponse, ErrorResponse (Output)

Key Behaviours
===============
- URLRecord is what the store returns and what the cache serializes as JSON.
- Every timestamp is normalized to timezone-aware UTC on validation, because
  some backends (SQLite) hand back naive values.
- Target URL syntax is validated by the service layer, not here, so that direct
  callers of the core get the same checks as HTTP callers.
"""

import datetime

from pydantic import BaseModel, Field, field_validator

from shortlink.enums import HealthStatus

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "PaginatedURLs",
    "PaginationMeta",
    "SweepResponse",
    "URLCreate",
    "URLInfo",
    "URLRecord",
    "URLResponse",
    "URLStats",
    "as_utc",
    "utcnow",
]

MAX_EXPIRY_HOURS = 87600


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value.astimezone(datetime.UTC)


class URLRecord(BaseModel):
    """A short code mapping as stored durably and mirrored in Redis."""

    code: str
    target_url: str
    created_at: datetime.datetime
    expires_at: datetime.datetime | None = None
    click_count: int = Field(0, ge=0)
    last_clicked_at: datetime.datetime | None = None

    model_config = {"from_attributes": True, "frozen": True}

    @field_validator("created_at", "expires_at", "last_clicked_at")
    @classmethod
    def normalize_timestamp(cls, v: datetime.datetime | None) -> datetime.datetime | None:
        return as_utc(v)

    def is_expired(self, now: datetime.datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class URLCreate(BaseModel):
    url: str = Field(..., min_length=1, max_length=8192)
    custom_code: str | None = None
    expiry_hours: int | None = Field(None, ge=1, le=MAX_EXPIRY_HOURS)


class URLResponse(BaseModel):
    code: str
    short_url: str
    target_url: str
    created_at: datetime.datetime
    expires_at: datetime.datetime | None
    click_count: int

    @classmethod
    def from_record(cls, record: URLRecord, base_url: str) -> "URLResponse":
        return cls(
            code=record.code,
            short_url=f"{base_url.rstrip('/')}/{record.code}",
            target_url=record.target_url,
            created_at=record.created_at,
            expires_at=record.expires_at,
            click_count=record.click_count,
        )


class URLInfo(BaseModel):
    code: str
    short_url: str
    target_url: str
    created_at: datetime.datetime
    expires_at: datetime.datetime | None
    click_count: int
    last_clicked_at: datetime.datetime | None
    is_expired: bool

    @classmethod
    def from_record(cls, record: URLRecord, base_url: str, now: datetime.datetime) -> "URLInfo":
        return cls(
            code=record.code,
            short_url=f"{base_url.rstrip('/')}/{record.code}",
            target_url=record.target_url,
            created_at=record.created_at,
            expires_at=record.expires_at,
            click_count=record.click_count,
            last_clicked_at=record.last_clicked_at,
            is_expired=record.is_expired(now),
        )


class PaginationMeta(BaseModel):
    total: int
    limit: int
    offset: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, total: int, limit: int, offset: int) -> "PaginationMeta":
        return cls(
            total=total,
            limit=limit,
            offset=offset,
            has_next=offset + limit < total,
            has_prev=offset > 0,
        )


class PaginatedURLs(BaseModel):
    data: list[URLInfo]
    pagination: PaginationMeta


class URLStats(BaseModel):
    """Aggregate counts computed by the store in a single query."""

    total: int = Field(..., description="All stored records, expired or not")
    active: int = Field(..., description="Records without expiry or expiring in the future")
    expired: int = Field(..., description="Records past expiry but not yet swept")
    total_clicks: int


class SweepResponse(BaseModel):
    removed: int
    swept_at: datetime.datetime


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus
    timestamp: datetime.datetime


class ErrorResponse(BaseModel):
    error: str = Field(..., examples=["NOT_FOUND"])
    message: str = Field(..., examples=["URL not found: abc123"])
