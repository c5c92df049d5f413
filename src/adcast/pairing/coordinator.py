"""Pairing coordinator: publishes a one-time code and watches for the claim.

A session walks ``generating -> code_ready -> awaiting_location -> complete``.
``failed`` and ``expired`` end a session early; :meth:`PairingCoordinator.retry`
always starts over with a brand-new code. Every session carries a numeric
token so that timers and store callbacks belonging to an older session are
dropped instead of mutating the current one.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Callable, Mapping

import structlog

from ..domain.deadlines import calculate_countdown, format_countdown, is_record_expired
from ..domain.models import PairingRecord
from ..exceptions import InvalidPairingStateError, PersistenceError
from ..interfaces import DocumentStore, IdentityProvider, Scheduler, Subscription, TimerHandle
from ..store.documents import TV_SETUP
from . import codes

logger = structlog.get_logger(__name__)


class PairingPhase(str, Enum):
    GENERATING = "generating"
    CODE_READY = "code_ready"
    AWAITING_LOCATION = "awaiting_location"
    COMPLETE = "complete"
    EXPIRED = "expired"
    FAILED = "failed"


_OBSERVING = (PairingPhase.CODE_READY, PairingPhase.AWAITING_LOCATION)


@dataclass(frozen=True, slots=True)
class PairingResult:
    """Identity handed to the playback client once a session completes."""

    device_id: str
    location_id: str
    code: str | None = None
    owner_id: str | None = None


@dataclass(frozen=True, slots=True)
class PairingView:
    """Read-only snapshot rendered by the setup screen."""

    phase: PairingPhase
    code: str | None = None
    countdown_seconds: int | None = None
    link_url: str | None = None
    device_id: str | None = None
    location_id: str | None = None
    error: str | None = None

    @property
    def countdown(self) -> str | None:
        if self.countdown_seconds is None:
            return None
        return format_countdown(self.countdown_seconds)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "phase": self.phase.value,
            "code": self.code,
            "countdownSeconds": self.countdown_seconds,
            "countdown": self.countdown,
            "linkUrl": self.link_url,
            "deviceId": self.device_id,
            "locationId": self.location_id,
            "error": self.error,
        }
        return {key: value for key, value in payload.items() if value is not None}


class PairingCoordinator:
    """Drive one pairing session at a time against the ``tvSetup`` collection."""

    def __init__(
        self,
        store: DocumentStore,
        scheduler: Scheduler,
        *,
        ttl_seconds: int = 300,
        max_generation_attempts: int = 3,
        code_factory: Callable[[], str] | None = None,
        identity_provider: IdentityProvider | None = None,
        link_base_url: str = "https://advertiser-genius.com",
        on_claimed: Callable[[str], None] | None = None,
        on_complete: Callable[[PairingResult], None] | None = None,
        on_change: Callable[[PairingView], None] | None = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_generation_attempts < 1:
            raise ValueError("max_generation_attempts must be at least 1")
        self._store = store
        self._scheduler = scheduler
        self._ttl_seconds = ttl_seconds
        self._max_attempts = max_generation_attempts
        self._code_factory = code_factory or codes.generate_code
        self._identity_provider = identity_provider
        self._link_base_url = link_base_url
        self._on_claimed = on_claimed
        self._on_complete = on_complete
        self._on_change = on_change

        self._session = 0
        self._phase = PairingPhase.GENERATING
        self._record: PairingRecord | None = None
        self._device_id: str | None = None
        self._location_id: str | None = None
        self._error: str | None = None
        self._subscription: Subscription | None = None
        self._expiry_timer: TimerHandle | None = None

    # -- read side ----------------------------------------------------------

    @property
    def phase(self) -> PairingPhase:
        return self._phase

    @property
    def code(self) -> str | None:
        return self._record.code if self._record is not None else None

    @property
    def is_observing(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def view(self) -> PairingView:
        code = self.code
        countdown_seconds: int | None = None
        if self._record is not None and self._phase is PairingPhase.CODE_READY:
            countdown_seconds = calculate_countdown(
                self._record.created_at,
                now=self._scheduler.now(),
                ttl_seconds=self._ttl_seconds,
            ).remaining_seconds
        elif self._phase is PairingPhase.EXPIRED:
            countdown_seconds = 0
        return PairingView(
            phase=self._phase,
            code=code,
            countdown_seconds=countdown_seconds,
            link_url=codes.build_link_url(self._link_base_url, code) if code else None,
            device_id=self._device_id,
            location_id=self._location_id,
            error=self._error,
        )

    # -- operations ---------------------------------------------------------

    async def generate_code(self) -> PairingRecord:
        """Publish a fresh ``pending`` record, trying new codes on write failures.

        Raises :class:`PersistenceError` once ``max_generation_attempts`` codes
        could not be written. A code that failed to publish is never reused.
        """

        last_error: PersistenceError | None = None
        for attempt in range(1, self._max_attempts + 1):
            record = PairingRecord(
                code=self._code_factory(),
                created_at=self._scheduler.now(),
                owner_id=self._owner_id(),
            )
            try:
                await self._store.create_record(TV_SETUP, record.code, record.to_document())
            except PersistenceError as exc:
                last_error = exc
                logger.warning(
                    "pairing.code.publish_failed",
                    code=record.code,
                    attempt=attempt,
                    error=str(exc),
                )
                continue
            logger.info("pairing.code.published", code=record.code, attempt=attempt)
            return record
        raise PersistenceError(
            f"pairing code could not be published after {self._max_attempts} attempts"
        ) from last_error

    async def start(self) -> PairingView:
        """Begin a new session: publish a code, arm the TTL and observe the record."""

        session = self._begin_session()
        try:
            record = await self.generate_code()
        except PersistenceError as exc:
            if session == self._session:
                self._fail(str(exc))
            return self.view
        if session != self._session:
            return self.view

        self._record = record
        self._expiry_timer = self._scheduler.call_later(
            float(self._ttl_seconds), partial(self._on_expiry_timer, session)
        )
        self._set_phase(PairingPhase.CODE_READY)
        self.observe(record.code)
        return self.view

    def observe(self, code: str) -> None:
        """Subscribe to the record keyed by ``code`` for the current session."""

        if self._phase is not PairingPhase.CODE_READY or code != self.code:
            raise InvalidPairingStateError(f"cannot observe '{code}' in phase {self._phase.value}")
        if self._subscription is not None:
            self._subscription.unsubscribe()
        session = self._session
        subscription = self._store.subscribe_doc(
            TV_SETUP,
            code,
            partial(self._on_record, session),
            on_error=partial(self._on_subscription_error, session),
        )
        if session == self._session and self._phase in _OBSERVING:
            self._subscription = subscription
        else:
            # The initial snapshot already ended the session.
            subscription.unsubscribe()

    def provide_location(self, location_id: str) -> PairingResult:
        """Complete an ``awaiting_location`` session with a locally entered location."""

        if not location_id:
            raise ValueError("location_id must not be empty")
        if self._phase is not PairingPhase.AWAITING_LOCATION or self._device_id is None:
            raise InvalidPairingStateError(
                f"location cannot be provided in phase {self._phase.value}"
            )
        return self._complete(location_id)

    async def retry(self) -> PairingView:
        """Start over with a new code after ``failed``/``expired`` (or mid-session)."""

        if self._phase is PairingPhase.COMPLETE:
            raise InvalidPairingStateError("pairing session already completed")
        logger.info("pairing.session.retry", previous_phase=self._phase.value, code=self.code)
        return await self.start()

    def cancel(self) -> None:
        """Tear down observers and timers; late callbacks are ignored."""

        self._session += 1
        self._teardown()

    # -- internals ----------------------------------------------------------

    def _begin_session(self) -> int:
        self._session += 1
        self._teardown()
        self._record = None
        self._device_id = None
        self._location_id = None
        self._error = None
        self._set_phase(PairingPhase.GENERATING)
        return self._session

    def _owner_id(self) -> str | None:
        if self._identity_provider is None:
            return None
        identity = self._identity_provider.current_identity()
        return identity.uid if identity is not None else None

    def _on_record(self, session: int, data: Mapping[str, Any] | None) -> None:
        if session != self._session or self._phase not in _OBSERVING or data is None:
            return
        code = self.code
        if code is None:
            return
        try:
            record = PairingRecord.from_document(code, data)
        except ValueError as exc:
            logger.warning("pairing.record.invalid", code=code, error=str(exc))
            return

        if self._phase is PairingPhase.CODE_READY:
            if is_record_expired(record, now=self._scheduler.now(), ttl_seconds=self._ttl_seconds):
                logger.info("pairing.claim.ignored", code=code, reason="expired")
                self._expire()
                return
            if not record.is_linked:
                return
            self._record = record
            self._device_id = record.device_id
            if record.location_id:
                self._complete(record.location_id)
                return
            self._cancel_expiry()
            self._set_phase(PairingPhase.AWAITING_LOCATION)
            logger.info("pairing.claimed", code=code, device_id=record.device_id)
            if self._on_claimed is not None:
                self._on_claimed(record.device_id)
            return

        if record.location_id:
            self._record = record
            self._complete(record.location_id)

    def _on_subscription_error(self, session: int, exc: Exception) -> None:
        if session != self._session or self._phase not in _OBSERVING:
            return
        logger.warning("pairing.subscription.failed", code=self.code, error=str(exc))
        self._fail(f"pairing record could not be observed: {exc}")

    def _on_expiry_timer(self, session: int) -> None:
        if session != self._session or self._phase is not PairingPhase.CODE_READY:
            return
        self._expiry_timer = None
        self._expire()

    def _expire(self) -> None:
        logger.info("pairing.code.expired", code=self.code)
        self._teardown()
        self._error = "pairing code expired"
        self._set_phase(PairingPhase.EXPIRED)

    def _fail(self, message: str) -> None:
        logger.error("pairing.session.failed", code=self.code, error=message)
        self._teardown()
        self._error = message
        self._set_phase(PairingPhase.FAILED)

    def _complete(self, location_id: str) -> PairingResult:
        if self._device_id is None:
            raise InvalidPairingStateError("pairing session has no claimed device")
        self._location_id = location_id
        self._teardown()
        self._set_phase(PairingPhase.COMPLETE)
        result = PairingResult(
            device_id=self._device_id,
            location_id=location_id,
            code=self.code,
            owner_id=self._record.owner_id if self._record is not None else None,
        )
        logger.info(
            "pairing.complete",
            code=result.code,
            device_id=result.device_id,
            location_id=result.location_id,
        )
        if self._on_complete is not None:
            self._on_complete(result)
        return result

    def _cancel_expiry(self) -> None:
        if self._expiry_timer is not None:
            self._expiry_timer.cancel()
            self._expiry_timer = None

    def _teardown(self) -> None:
        self._cancel_expiry()
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _set_phase(self, phase: PairingPhase) -> None:
        self._phase = phase
        if self._on_change is not None:
            self._on_change(self.view)


__all__ = ["PairingCoordinator", "PairingPhase", "PairingResult", "PairingView"]
