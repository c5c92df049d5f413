"""Domain models and deadline rules for pairing and playback."""

from .deadlines import (
    PairingCountdown,
    calculate_countdown,
    calculate_pairing_expires_at,
    fallback_delay_seconds,
    format_countdown,
    is_record_expired,
)
from .models import (
    Carousel,
    CarouselSchedule,
    CarouselStatus,
    ClaimedNoLocation,
    DeviceIdentity,
    Identity,
    IdentityState,
    MediaItem,
    MediaType,
    PairingRecord,
    PairingStatus,
    Ready,
    Unclaimed,
)

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
    "PairingCountdown",
    "PairingRecord",
    "PairingStatus",
    "Ready",
    "Unclaimed",
    "calculate_countdown",
    "calculate_pairing_expires_at",
    "fallback_delay_seconds",
    "format_countdown",
    "is_record_expired",
]
