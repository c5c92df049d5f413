"""Pydantic schemas for the TV and dashboard routes."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PairingViewResponse(CamelModel):
    phase: str
    code: str | None = None
    countdown_seconds: int | None = None
    countdown: str | None = None
    link_url: str | None = None
    device_id: str | None = None
    location_id: str | None = None
    error: str | None = None


class MediaItemPayload(CamelModel):
    id: str
    url: str
    type: str
    order: int
    duration: float
    name: str = ""


class PlaybackViewResponse(CamelModel):
    phase: str
    offline: bool
    device_id: str
    location_id: str
    current_index: int | None = None
    item_count: int | None = None
    current_item: MediaItemPayload | None = None
    carousel_id: str | None = None
    carousel_name: str | None = None
    error: str | None = None


class LocationSubmitRequest(CamelModel):
    location_id: str = Field(..., min_length=1, max_length=128)


class LinkDeviceRequest(CamelModel):
    code: str = Field(..., min_length=4, max_length=16)
    location_id: str | None = Field(default=None, min_length=1, max_length=128)


class LinkDeviceResponse(CamelModel):
    code: str
    status: str
    device_id: str | None
    location_id: str | None = None
    owner_id: str | None = None


class SessionSignInRequest(CamelModel):
    token: str = Field(..., min_length=1)


class SessionResponse(CamelModel):
    signed_in: bool
    uid: str | None = None
    email: str | None = None


class HealthResponse(CamelModel):
    status: str
    device: dict[str, Any] | None = None


__all__ = [
    "HealthResponse",
    "LinkDeviceRequest",
    "LinkDeviceResponse",
    "LocationSubmitRequest",
    "MediaItemPayload",
    "PairingViewResponse",
    "PlaybackViewResponse",
    "SessionResponse",
    "SessionSignInRequest",
]
