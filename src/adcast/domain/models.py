"""Domain models for TV pairing and carousel playback.

The module exposes lightweight dataclasses mirroring the documents kept in the
``tvSetup``, ``tvs`` and ``carousels`` collections. Document field names stay
camelCase (``createdAt``, ``deviceId``) because dashboard clients share the
same store; the dataclasses use snake_case and convert at the boundary via
``from_document``/``to_document``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Union


def parse_timestamp(value: Any) -> datetime | None:
    """Return an aware datetime for ISO strings/datetimes, ``None`` otherwise."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class PairingStatus(str, Enum):
    """Stored status of a pairing record.

    ``pending`` is written by the coordinator. A dashboard claim moves it to
    ``linked``; ``expired`` may be written by an external sweeper. Both are
    terminal, a record never returns to ``pending``.
    """

    PENDING = "pending"
    LINKED = "linked"
    EXPIRED = "expired"


class CarouselStatus(str, Enum):
    ACTIVE = "active"
    DRAFT = "draft"
    ARCHIVED = "archived"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


@dataclass(slots=True)
class PairingRecord:
    """One in-flight or completed device-linking attempt keyed by ``code``."""

    code: str
    created_at: datetime
    status: PairingStatus = PairingStatus.PENDING
    device_id: str | None = None
    location_id: str | None = None
    owner_id: str | None = None

    @property
    def is_linked(self) -> bool:
        return self.status is PairingStatus.LINKED and bool(self.device_id)

    @classmethod
    def from_document(cls, code: str, data: Mapping[str, Any]) -> "PairingRecord":
        created_at = parse_timestamp(data.get("createdAt"))
        if created_at is None:
            raise ValueError(f"pairing record '{code}' has no createdAt")
        try:
            status = PairingStatus(data.get("status", PairingStatus.PENDING.value))
        except ValueError as exc:
            raise ValueError(f"pairing record '{code}' has unknown status") from exc
        return cls(
            code=code,
            created_at=created_at,
            status=status,
            device_id=data.get("deviceId") or None,
            location_id=data.get("locationId") or None,
            owner_id=data.get("ownerId") or None,
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "createdAt": format_timestamp(self.created_at),
            "status": self.status.value,
            "deviceId": self.device_id,
            "locationId": self.location_id,
            "ownerId": self.owner_id,
        }


@dataclass(frozen=True, slots=True)
class Identity:
    """Signed-in dashboard operator as reported by the identity provider."""

    uid: str
    email: str | None = None


@dataclass(frozen=True, slots=True)
class DeviceIdentity:
    """Durable identity of a paired TV; both fields are always present."""

    device_id: str
    location_id: str


@dataclass(frozen=True, slots=True)
class MediaItem:
    """Single playable unit of a carousel."""

    id: str
    url: str
    type: MediaType
    order: int
    duration: float
    name: str = ""

    @classmethod
    def from_document(
        cls, data: Mapping[str, Any], *, default_duration: float
    ) -> "MediaItem":
        try:
            duration = float(data.get("duration") or 0)
        except (TypeError, ValueError):
            duration = 0.0
        if duration <= 0:
            duration = default_duration
        return cls(
            id=str(data["id"]),
            url=str(data.get("url") or ""),
            type=MediaType(data.get("type", MediaType.IMAGE.value)),
            order=int(data.get("order", 0)),
            duration=duration,
            name=str(data.get("name") or ""),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "type": self.type.value,
            "order": self.order,
            "duration": self.duration,
            "name": self.name,
        }


@dataclass(frozen=True, slots=True)
class CarouselSchedule:
    start_date: datetime | None = None
    end_date: datetime | None = None
    display_duration: float = 5.0

    @classmethod
    def from_document(cls, data: Mapping[str, Any] | None) -> "CarouselSchedule":
        data = data or {}
        try:
            display_duration = float(data.get("displayDuration") or 5.0)
        except (TypeError, ValueError):
            display_duration = 5.0
        return cls(
            start_date=parse_timestamp(data.get("startDate")),
            end_date=parse_timestamp(data.get("endDate")),
            display_duration=display_duration if display_duration > 0 else 5.0,
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "startDate": format_timestamp(self.start_date),
            "endDate": format_timestamp(self.end_date),
            "displayDuration": self.display_duration,
        }


@dataclass(slots=True)
class Carousel:
    """Named, ordered sequence of media items assigned to locations.

    ``items`` is always sorted by ``MediaItem.order``; ties keep the stored
    order so authoring order survives a round trip through the cache.
    """

    id: str
    name: str
    status: CarouselStatus
    locations: frozenset[str] = field(default_factory=frozenset)
    items: tuple[MediaItem, ...] = ()
    schedule: CarouselSchedule = field(default_factory=CarouselSchedule)
    updated_at: datetime | None = None

    def is_eligible(self, location_id: str) -> bool:
        return self.status is CarouselStatus.ACTIVE and location_id in self.locations

    @classmethod
    def from_document(cls, carousel_id: str, data: Mapping[str, Any]) -> "Carousel":
        schedule = CarouselSchedule.from_document(data.get("schedule"))
        raw_items = data.get("items") or []
        items = [
            MediaItem.from_document(item, default_duration=schedule.display_duration)
            for item in raw_items
        ]
        items.sort(key=lambda item: item.order)
        return cls(
            id=carousel_id,
            name=str(data.get("name") or ""),
            status=CarouselStatus(data.get("status", CarouselStatus.DRAFT.value)),
            locations=frozenset(str(location) for location in data.get("locations") or ()),
            items=tuple(items),
            schedule=schedule,
            updated_at=parse_timestamp(data.get("updatedAt")),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "locations": sorted(self.locations),
            "items": [item.to_document() for item in self.items],
            "schedule": self.schedule.to_document(),
            "updatedAt": format_timestamp(self.updated_at),
        }


@dataclass(frozen=True, slots=True)
class Unclaimed:
    """The device has not been claimed by any account."""


@dataclass(frozen=True, slots=True)
class ClaimedNoLocation:
    """Claimed by the dashboard; ``device_id`` is held in memory only."""

    device_id: str


@dataclass(frozen=True, slots=True)
class Ready:
    """Both halves of the identity are known and may be persisted."""

    device_id: str
    location_id: str

    def to_identity(self) -> DeviceIdentity:
        return DeviceIdentity(device_id=self.device_id, location_id=self.location_id)


IdentityState = Union[Unclaimed, ClaimedNoLocation, Ready]


__all__ = [
    "Carousel",
    "CarouselSchedule",
    "CarouselStatus",
    "ClaimedNoLocation",
    "DeviceIdentity",
    "Identity",
    "IdentityState",
    "MediaItem",
    "MediaType",
    "PairingRecord",
    "PairingStatus",
    "Ready",
    "Unclaimed",
    "format_timestamp",
    "parse_timestamp",
]
