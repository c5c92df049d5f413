"""Application configuration for adcast.

Defaults follow the pairing contract: a pairing code is valid for 300 seconds,
a video that never reports completion is cut ``video_grace_seconds`` after its
nominal duration, and the device probes connectivity every 15 seconds. Real
values are injected through ``ADCAST_*`` environment variables.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db


def _default_storage_path() -> Path:
    return Path("./var/device-storage.json")


class Settings(BaseSettings):
    """Pydantic settings container for the device runtime and dashboard API."""

    model_config = cast(Any, SettingsConfigDict(env_prefix="ADCAST_"))

    database_url: str = Field(
        default="sqlite:///adcast.db",
        description="SQLAlchemy URL of the shared document store.",
    )
    local_storage_path: Path = Field(
        default_factory=_default_storage_path,
        description="JSON file backing device-local persistent storage.",
    )
    pairing_ttl_seconds: int = Field(
        default=300,
        ge=30,
        le=900,
        description="Validity window of a pairing code in seconds.",
    )
    pairing_code_length: int = Field(
        default=6,
        ge=6,
        le=10,
        description="Number of characters in a human-enterable pairing code.",
    )
    pairing_max_generation_attempts: int = Field(
        default=3,
        ge=1,
        description="Fresh codes tried before pairing enters the failed phase.",
    )
    link_base_url: str = Field(
        default="https://advertiser-genius.com",
        description="Dashboard origin encoded into the pairing QR code.",
    )
    video_grace_seconds: float = Field(
        default=10.0,
        ge=0.0,
        description="Extra time granted to a video before the fallback timer advances.",
    )
    error_backoff_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Pause after a full rotation cycle in which every item failed.",
    )
    watch_retry_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Delay before a playing TV re-attaches store watches ended by an error.",
    )
    connectivity_probe_url: str | None = Field(
        default=None,
        description="URL probed to detect connectivity; unset means always online.",
    )
    connectivity_interval_seconds: float = Field(
        default=15.0,
        ge=1.0,
        description="Interval between connectivity probes in seconds.",
    )
    connectivity_timeout_seconds: float = Field(
        default=5.0,
        ge=0.1,
        description="Timeout applied to a single connectivity probe in seconds.",
    )
    store_poll_interval_seconds: float = Field(
        default=2.0,
        ge=0.1,
        description="Polling interval used to pick up changes made by other processes.",
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum level of emitted log events (DEBUG, INFO, WARNING, ...).",
    )
    jwt_signing_key: str = Field(
        default="change-me",
        min_length=1,
        description="HS256 key used to verify dashboard operator ID tokens.",
    )
    device_enabled: bool = Field(
        default=True,
        description="Run the TV pairing/playback runtime inside the API process.",
    )


@dataclass(slots=True)
class AppConfig:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker[Session]


def load_config(settings: Settings | None = None) -> AppConfig:
    """Load configuration from environment and prepare the database."""
    resolved = settings or Settings()
    resolved.local_storage_path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(resolved.database_url, future=True)
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)

    init_db(engine)

    return AppConfig(
        settings=resolved,
        engine=engine,
        session_factory=session_factory,
    )


__all__ = ["AppConfig", "Settings", "load_config"]
