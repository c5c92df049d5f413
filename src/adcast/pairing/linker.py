"""Dashboard-side claim of a pairing code."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable
from uuid import uuid4

import structlog

from ..domain.deadlines import is_record_expired
from ..domain.models import Identity, PairingRecord, PairingStatus, format_timestamp
from ..exceptions import (
    ExpiredPairingError,
    InvalidPairingStateError,
    PairingAlreadyLinkedError,
    PairingNotFoundError,
    PairingOwnershipError,
    UnauthenticatedError,
)
from ..interfaces import DocumentStore
from ..store.documents import TV_SETUP, TVS

logger = structlog.get_logger(__name__)


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


def normalize_code(code: str) -> str:
    return code.strip().upper()


class PairingLinker:
    """Validate and apply claims made by signed-in dashboard operators."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        ttl_seconds: int = 300,
        clock: Callable[[], datetime] | None = None,
        device_id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds
        self._clock = clock or _default_clock
        self._device_id_factory = device_id_factory or (lambda: uuid4().hex)

    async def load(self, code: str) -> PairingRecord:
        code = normalize_code(code)
        data = await self._store.get_record(TV_SETUP, code)
        if data is None:
            raise PairingNotFoundError(f"pairing code '{code}' not found")
        try:
            return PairingRecord.from_document(code, data)
        except ValueError as exc:
            raise PairingNotFoundError(f"pairing code '{code}' is malformed") from exc

    async def claim(
        self,
        code: str,
        *,
        owner: Identity | None,
        device_id: str | None = None,
        location_id: str | None = None,
    ) -> PairingRecord:
        """Mark a pending code as ``linked`` to ``owner``.

        A new ``device_id`` is minted unless the caller supplies one. When
        ``location_id`` is given the device skips the location step.
        """

        if owner is None:
            raise UnauthenticatedError("sign in to link a device")
        record = await self.load(code)
        if record.status is PairingStatus.LINKED:
            raise PairingAlreadyLinkedError(f"pairing code '{record.code}' is already linked")
        if is_record_expired(record, now=self._clock(), ttl_seconds=self._ttl_seconds):
            raise ExpiredPairingError(f"pairing code '{record.code}' has expired")
        if record.owner_id and record.owner_id != owner.uid:
            raise PairingOwnershipError(f"pairing code '{record.code}' belongs to another account")

        record.status = PairingStatus.LINKED
        record.device_id = device_id or self._device_id_factory()
        record.owner_id = owner.uid
        fields: dict[str, str] = {
            "status": record.status.value,
            "deviceId": record.device_id,
            "ownerId": owner.uid,
        }
        if location_id:
            record.location_id = location_id
            fields["locationId"] = location_id
        await self._store.update_record(TV_SETUP, record.code, fields)
        logger.info(
            "pairing.link.claimed",
            code=record.code,
            device_id=record.device_id,
            owner_id=owner.uid,
            location_id=record.location_id,
        )
        return record

    async def assign_location(
        self, code: str, location_id: str, *, owner: Identity | None
    ) -> PairingRecord:
        """Attach a location to a code that was claimed without one."""

        if owner is None:
            raise UnauthenticatedError("sign in to link a device")
        if not location_id:
            raise ValueError("location_id must not be empty")
        record = await self.load(code)
        if record.status is not PairingStatus.LINKED:
            raise InvalidPairingStateError(f"pairing code '{record.code}' has not been claimed")
        if record.owner_id and record.owner_id != owner.uid:
            raise PairingOwnershipError(f"pairing code '{record.code}' belongs to another account")
        if record.location_id == location_id:
            return record
        if record.location_id:
            raise InvalidPairingStateError(
                f"pairing code '{record.code}' already has a location assigned"
            )
        record.location_id = location_id
        await self._store.update_record(TV_SETUP, record.code, {"locationId": location_id})
        logger.info("pairing.link.located", code=record.code, location_id=location_id)
        return record

    async def relocate_device(
        self, device_id: str, location_id: str, *, owner: Identity | None
    ) -> None:
        """Move a paired device to another location; the TV follows the change."""

        if owner is None:
            raise UnauthenticatedError("sign in to manage devices")
        if not location_id:
            raise ValueError("location_id must not be empty")
        data = await self._store.get_record(TVS, device_id)
        if data is None:
            raise PairingNotFoundError(f"device '{device_id}' not found")
        current_owner = data.get("ownerId")
        if current_owner and current_owner != owner.uid:
            raise PairingOwnershipError(f"device '{device_id}' belongs to another account")
        await self._store.update_record(
            TVS,
            device_id,
            {"locationId": location_id, "updatedAt": format_timestamp(self._clock())},
        )
        logger.info("pairing.device.relocated", device_id=device_id, location_id=location_id)


__all__ = ["PairingLinker", "normalize_code"]
