"""Pydantic schemas for request/response validation in the short link service.

Schema Hierarchy
=================
::
    ShortLinkCreate (Input)
    ├─ url: str | None (presence checked by the service → 400)
    ├─ shortcode: str | None (alias custom_code; rules checked by the service)
    └─ validity_minutes: int | None (alias validity; > 0 checked by the service)

    ShortLinkUpdate (Input)
    ├─ url: str | None
    └─ validity_minutes: int | None

    ShortLinkCreated (Output)      {shortLink, expiry, shortcode}
    ShortLinkStats (Output)        {originalURL, createdAt, expiryDate, clickCount, clickLogs}
    ShortLinkList (Output)         {shortenedUrls: [{…, clickCount, isActive}], totalUrls}
    ShortLinkUpdated (Output)      {…, wasExpired, isNowActive}
    ShortLinkDeleted (Output)      {message, shortcode, wasExpired}
    SecurityCheckResponse (Output) {safe, reason, reachability}
    HealthResponse (Output)        {status, database, cache}
    ErrorResponse (Output)         {detail, error, reason?}

Key Behaviours
===============
- Output field names are camelCase on the wire (aliases) and snake_case in
  Python; both are accepted on construction.
- Value rules (custom code shape, positive validity) are enforced by
  LinkService so they surface as InvalidInput with the {detail, error} body.
- An empty shortcode is treated as "generate one for me".
- All datetime fields are timezone-aware UTC and serialize as ISO-8601.
"""

import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from shortlink.enums import HealthStatus, Reachability

__all__ = [
    "ShortLinkCreate",
    "ShortLinkUpdate",
    "ShortLinkCreated",
    "ShortLinkUpdated",
    "ShortLinkDeleted",
    "ShortLinkStats",
    "ShortLinkSummary",
    "ShortLinkList",
    "ClickLog",
    "SecurityCheckRequest",
    "SecurityCheckResponse",
    "HealthResponse",
    "ErrorResponse",
]


class ShortLinkCreate(BaseModel):
    url: str | None = None
    shortcode: str | None = Field(
        default=None,
        validation_alias=AliasChoices("shortcode", "custom_code"),
    )
    validity_minutes: int | None = Field(
        default=None,
        validation_alias=AliasChoices("validity_minutes", "validity"),
    )


class ShortLinkUpdate(BaseModel):
    url: str | None = None
    validity_minutes: int | None = Field(
        default=None,
        validation_alias=AliasChoices("validity_minutes", "validity"),
    )


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ShortLinkCreated(_WireModel):
    short_link: str = Field(alias="shortLink")
    expiry: datetime.datetime
    shortcode: str


class ShortLinkUpdated(_WireModel):
    message: str = "Short URL updated successfully"
    short_link: str = Field(alias="shortLink")
    original_url: str = Field(alias="originalURL")
    expiry: datetime.datetime
    shortcode: str
    was_expired: bool = Field(alias="wasExpired")
    is_now_active: bool = Field(alias="isNowActive")


class ShortLinkDeleted(_WireModel):
    message: str = "Short URL deleted successfully"
    shortcode: str
    was_expired: bool = Field(alias="wasExpired")


class ClickLog(BaseModel):
    timestamp: datetime.datetime
    referrer: str
    location: str

    model_config = {"from_attributes": True}


class ShortLinkStats(_WireModel):
    original_url: str = Field(alias="originalURL")
    created_at: datetime.datetime = Field(alias="createdAt")
    expiry_date: datetime.datetime = Field(alias="expiryDate")
    click_count: int = Field(alias="clickCount")
    click_logs: list[ClickLog] = Field(alias="clickLogs")


class ShortLinkSummary(_WireModel):
    shortcode: str
    short_link: str = Field(alias="shortLink")
    original_url: str = Field(alias="originalURL")
    created_at: datetime.datetime = Field(alias="createdAt")
    expiry_date: datetime.datetime = Field(alias="expiryDate")
    click_count: int = Field(alias="clickCount")
    is_active: bool = Field(alias="isActive")


class ShortLinkList(_WireModel):
    shortened_urls: list[ShortLinkSummary] = Field(alias="shortenedUrls")
    total_urls: int = Field(alias="totalUrls")


class SecurityCheckRequest(BaseModel):
    url: str | None = None


class SecurityCheckResponse(BaseModel):
    safe: bool
    reason: str
    reachability: Reachability


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus


class ErrorResponse(BaseModel):
    detail: str
    error: str
    reason: str | None = None
