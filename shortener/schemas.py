"""Pydantic schemas for request/response validation in the link shortener.

Schema Hierarchy
=================
::
    LinkCreate (Input)
    ├─ url: str
    ├─ custom_code: str | None        (alias customCode)
    └─ expires_in_hours: int | None   (alias expiresInHours)

    LinkCreatedResponse (Output)
    ├─ short_url: str
    └─ short_code: str

    LinkResponse (Output)
    ├─ id: UUID
    ├─ short_code: str
    ├─ original_url: str
    ├─ short_url: str
    ├─ clicks: int
    ├─ created_at: datetime
    └─ expires_at: datetime | None

    AnalyticsResponse (Output)
    ├─ short_code: str
    ├─ clicks: int          (durable counter)
    ├─ cached_clicks: int   (cache-hit counter)
    └─ total_clicks: int

    HealthResponse (Output)
    ├─ status / database / cache: HealthStatus

Key Behaviours
===============
- URL syntax and custom code format are checked by the link service, so a
  bad value is a 400 from the service rather than a 422 from parsing.
- Input accepts both snake_case names and the camelCase names the web
  frontend sends.
- All datetime fields are timezone-aware.
"""

import datetime
import uuid

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from shortener.enums import HealthStatus

__all__ = [
    "LinkCreate",
    "LinkCreatedResponse",
    "LinkResponse",
    "AnalyticsResponse",
    "HealthResponse",
    "ErrorResponse",
]


class LinkCreate(BaseModel):
    url: str
    custom_code: str | None = Field(
        None, validation_alias=AliasChoices("custom_code", "customCode")
    )
    expires_in_hours: int | None = Field(
        None, validation_alias=AliasChoices("expires_in_hours", "expiresInHours")
    )


class LinkCreatedResponse(BaseModel):
    short_url: str
    short_code: str


class LinkResponse(BaseModel):
    id: uuid.UUID
    short_code: str
    original_url: str
    short_url: str
    clicks: int
    created_at: datetime.datetime
    expires_at: datetime.datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class AnalyticsResponse(BaseModel):
    short_code: str
    clicks: int
    cached_clicks: int
    total_clicks: int


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus


class ErrorResponse(BaseModel):
    error: str
