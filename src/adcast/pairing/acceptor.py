"""Device-side pairing: boot-time identity check and both-or-neither persistence."""

from __future__ import annotations

from typing import Callable

import structlog

from ..domain.models import (
    ClaimedNoLocation,
    DeviceIdentity,
    IdentityState,
    Ready,
    Unclaimed,
    format_timestamp,
)
from ..exceptions import IncompleteIdentityError, InvalidPairingStateError, PersistenceError
from ..interfaces import DocumentStore, IdentityProvider, LocalStorage, Scheduler
from ..runtime import BackgroundTasks
from ..store.documents import TVS
from .coordinator import PairingCoordinator, PairingPhase, PairingResult, PairingView

logger = structlog.get_logger(__name__)

DEVICE_ID_KEY = "device_id"
LOCATION_ID_KEY = "location_id"


class IdentityStore:
    """Reads and writes :class:`DeviceIdentity` in device-local storage."""

    def __init__(self, storage: LocalStorage) -> None:
        self._storage = storage

    def load(self) -> DeviceIdentity | None:
        device_id = self._storage.get(DEVICE_ID_KEY) or None
        location_id = self._storage.get(LOCATION_ID_KEY) or None
        if device_id and location_id:
            return DeviceIdentity(device_id=device_id, location_id=location_id)
        if device_id is None and location_id is None:
            return None
        raise IncompleteIdentityError(
            "device-local storage holds half of a device identity",
            device_id=device_id,
        )

    def save(self, identity: DeviceIdentity) -> None:
        self._storage.set_many(
            {DEVICE_ID_KEY: identity.device_id, LOCATION_ID_KEY: identity.location_id}
        )

    def clear(self) -> None:
        self._storage.remove_many([DEVICE_ID_KEY, LOCATION_ID_KEY])


class PairingAcceptor:
    """Passive party of the pairing protocol running on the TV.

    The claimed ``device_id`` is kept in memory (:class:`ClaimedNoLocation`)
    until a location is known; only :class:`Ready` identities reach local
    storage, after the ``tvs`` document was written.
    """

    def __init__(
        self,
        storage: LocalStorage,
        store: DocumentStore,
        scheduler: Scheduler,
        *,
        ttl_seconds: int = 300,
        max_generation_attempts: int = 3,
        code_factory: Callable[[], str] | None = None,
        identity_provider: IdentityProvider | None = None,
        link_base_url: str = "https://advertiser-genius.com",
        on_ready: Callable[[DeviceIdentity], None] | None = None,
    ) -> None:
        self._identities = IdentityStore(storage)
        self._store = store
        self._scheduler = scheduler
        self._on_ready = on_ready
        self._state: IdentityState = Unclaimed()
        self._error: str | None = None
        self._completing_locally = False
        self._claim: PairingResult | None = None
        self._tasks = BackgroundTasks("pairing.acceptor")
        self.coordinator = PairingCoordinator(
            store,
            scheduler,
            ttl_seconds=ttl_seconds,
            max_generation_attempts=max_generation_attempts,
            code_factory=code_factory,
            identity_provider=identity_provider,
            link_base_url=link_base_url,
            on_claimed=self._on_claimed,
            on_complete=self._on_complete,
        )

    @property
    def state(self) -> IdentityState:
        return self._state

    @property
    def identity(self) -> DeviceIdentity | None:
        state = self._state
        return state.to_identity() if isinstance(state, Ready) else None

    @property
    def view(self) -> PairingView:
        state = self._state
        if isinstance(state, Ready):
            return PairingView(
                phase=PairingPhase.COMPLETE,
                device_id=state.device_id,
                location_id=state.location_id,
            )
        if isinstance(state, ClaimedNoLocation):
            return PairingView(
                phase=PairingPhase.AWAITING_LOCATION,
                code=self.coordinator.code,
                device_id=state.device_id,
                error=self._error,
            )
        return self.coordinator.view

    def boot(self) -> IdentityState:
        """Load the stored identity; a half-formed one is discarded."""

        try:
            identity = self._identities.load()
        except IncompleteIdentityError as exc:
            logger.warning("pairing.identity.incomplete", device_id=exc.device_id)
            self._identities.clear()
            if exc.device_id:
                self._state = ClaimedNoLocation(device_id=exc.device_id)
            else:
                self._state = Unclaimed()
            return self._state

        if identity is None:
            self._state = Unclaimed()
            logger.info("pairing.identity.missing")
        else:
            self._state = Ready(device_id=identity.device_id, location_id=identity.location_id)
            logger.info(
                "pairing.identity.loaded",
                device_id=identity.device_id,
                location_id=identity.location_id,
            )
        return self._state

    async def start(self) -> PairingView:
        """Open a claimable session when the device has nobody's identity yet."""

        if isinstance(self._state, Unclaimed):
            await self.coordinator.start()
        return self.view

    async def retry(self) -> PairingView:
        if not isinstance(self._state, Unclaimed):
            raise InvalidPairingStateError("device was already claimed")
        await self.coordinator.retry()
        return self.view

    async def submit_location(self, location_id: str) -> DeviceIdentity:
        """Attach ``location_id`` to the claimed device and persist the identity.

        Raises :class:`PersistenceError` when either write fails; the device
        stays claimed so the operator can submit again.
        """

        if not location_id:
            raise ValueError("location_id must not be empty")
        state = self._state
        if isinstance(state, Ready):
            raise InvalidPairingStateError("device is already paired")
        if not isinstance(state, ClaimedNoLocation):
            raise InvalidPairingStateError("device has not been claimed yet")
        if self.coordinator.phase is PairingPhase.AWAITING_LOCATION:
            self._completing_locally = True
            try:
                self.coordinator.provide_location(location_id)
            finally:
                self._completing_locally = False
        return await self._commit(state.device_id, location_id)

    def reassign_location(self, location_id: str) -> DeviceIdentity:
        """Persist a dashboard-side location change for an already paired device."""

        state = self._state
        if not isinstance(state, Ready):
            raise InvalidPairingStateError("device is not paired")
        identity = DeviceIdentity(device_id=state.device_id, location_id=location_id)
        self._identities.save(identity)
        self._state = Ready(device_id=identity.device_id, location_id=location_id)
        logger.info(
            "pairing.identity.relocated",
            device_id=identity.device_id,
            previous_location_id=state.location_id,
            location_id=location_id,
        )
        return identity

    async def settle(self) -> None:
        """Wait for an identity commit triggered by a store-side completion."""
        await self._tasks.drain()

    def forget(self) -> None:
        """Drop the stored identity and return to :class:`Unclaimed`."""
        self._identities.clear()
        self._state = Unclaimed()
        self._claim = None
        self._error = None

    def close(self) -> None:
        self.coordinator.cancel()
        self._tasks.cancel_all()

    def _on_claimed(self, device_id: str) -> None:
        self._state = ClaimedNoLocation(device_id=device_id)
        self._error = None

    def _on_complete(self, result: PairingResult) -> None:
        self._claim = result
        self._state = ClaimedNoLocation(device_id=result.device_id)
        if self._completing_locally:
            return
        self._tasks.spawn(self._commit_in_background(result.device_id, result.location_id))

    async def _commit_in_background(self, device_id: str, location_id: str) -> None:
        try:
            await self._commit(device_id, location_id)
        except PersistenceError:
            # Already recorded on the view; the operator re-submits the location.
            return

    async def _commit(self, device_id: str, location_id: str) -> DeviceIdentity:
        identity = DeviceIdentity(device_id=device_id, location_id=location_id)
        fields: dict[str, str] = {
            "locationId": location_id,
            "updatedAt": format_timestamp(self._scheduler.now()) or "",
        }
        claim = self._claim
        if claim is not None and claim.device_id == device_id:
            if claim.code:
                fields["pairingCode"] = claim.code
            if claim.owner_id:
                fields["ownerId"] = claim.owner_id
        try:
            await self._store.update_record(TVS, device_id, fields)
            self._identities.save(identity)
        except PersistenceError as exc:
            self._error = str(exc)
            logger.warning(
                "pairing.identity.persist_failed",
                device_id=device_id,
                location_id=location_id,
                error=str(exc),
            )
            raise
        self._state = Ready(device_id=device_id, location_id=location_id)
        self._error = None
        logger.info("pairing.identity.persisted", device_id=device_id, location_id=location_id)
        if self._on_ready is not None:
            self._on_ready(identity)
        return identity


__all__ = ["DEVICE_ID_KEY", "IdentityStore", "LOCATION_ID_KEY", "PairingAcceptor"]
