"""Deadline helpers for pairing codes and media playback.

A pairing code is valid for ``ttl_seconds`` after ``createdAt``. The record's
age is checked on the client in addition to any TTL the document store may
enforce, so a record still reading ``pending`` is treated as expired once its
window has elapsed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from .models import MediaItem, MediaType, PairingRecord, PairingStatus


@dataclass(frozen=True, slots=True)
class PairingCountdown:
    """Snapshot of a pairing code's remaining validity."""

    expires_at: datetime
    remaining_seconds: int
    is_expired: bool


def _align(reference: datetime, other: datetime) -> datetime:
    if reference.tzinfo is not None and other.tzinfo is None:
        return other.replace(tzinfo=reference.tzinfo)
    if reference.tzinfo is None and other.tzinfo is not None:
        return other.replace(tzinfo=None)
    return other


def calculate_pairing_expires_at(created_at: datetime, *, ttl_seconds: int) -> datetime:
    """Return ``created_at + ttl``."""

    if ttl_seconds <= 0:
        raise ValueError("ttl_seconds must be positive")
    return created_at + timedelta(seconds=ttl_seconds)


def calculate_countdown(
    created_at: datetime, *, now: datetime, ttl_seconds: int
) -> PairingCountdown:
    """Build a :class:`PairingCountdown` for display and expiry checks."""

    expires_at = calculate_pairing_expires_at(created_at, ttl_seconds=ttl_seconds)
    now = _align(expires_at, now)
    delta = (expires_at - now).total_seconds()
    # Round up so the display reads 5:00 right after publication, 0:00 only at expiry.
    remaining = max(int(-(-delta // 1)), 0)
    return PairingCountdown(
        expires_at=expires_at,
        remaining_seconds=remaining,
        is_expired=expires_at <= now,
    )


def is_record_expired(record: PairingRecord, *, now: datetime, ttl_seconds: int) -> bool:
    """Return ``True`` when the record is expired by status or by age."""

    if record.status is PairingStatus.EXPIRED:
        return True
    return calculate_countdown(
        record.created_at, now=now, ttl_seconds=ttl_seconds
    ).is_expired


def format_countdown(seconds: int) -> str:
    """Render remaining seconds as ``M:SS``."""

    seconds = max(int(seconds), 0)
    minutes, rest = divmod(seconds, 60)
    return f"{minutes}:{rest:02d}"


def fallback_delay_seconds(item: MediaItem, *, grace_seconds: float) -> float:
    """Time after which the rotation advances past ``item`` on its own.

    Images are shown for exactly ``duration``. Videos normally end through
    their own end-of-playback event; the timer only guards against a media
    element that never signals completion.
    """

    if grace_seconds < 0:
        raise ValueError("grace_seconds must not be negative")
    if item.type is MediaType.VIDEO:
        return item.duration + grace_seconds
    return item.duration


__all__ = [
    "PairingCountdown",
    "calculate_countdown",
    "calculate_pairing_expires_at",
    "fallback_delay_seconds",
    "format_countdown",
    "is_record_expired",
]
