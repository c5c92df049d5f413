"""Unattended playback: carousel resolution, offline cache and rotation."""

from .cache import CACHE_KEY, CarouselCache
from .client import PlaybackClient, PlaybackPhase, PlaybackView
from .resolver import CarouselResolver, Resolution, select_carousel
from .rotation import RotationEngine, RotationProgress
from .surface import LoggingSurface

__all__ = [
    "CACHE_KEY",
    "CarouselCache",
    "CarouselResolver",
    "LoggingSurface",
    "PlaybackClient",
    "PlaybackPhase",
    "PlaybackView",
    "Resolution",
    "RotationEngine",
    "RotationProgress",
    "select_carousel",
]
