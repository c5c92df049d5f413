"""Domain level exceptions and helpers for store adapters."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from sqlalchemy import exc as sa_exc

__all__ = [
    "AdcastError",
    "PersistenceError",
    "QueryError",
    "MediaError",
    "ExpiredPairingError",
    "IncompleteIdentityError",
    "PairingNotFoundError",
    "PairingAlreadyLinkedError",
    "PairingOwnershipError",
    "UnauthenticatedError",
    "InvalidPairingStateError",
    "handle_store_errors",
]


class AdcastError(Exception):
    """Base class for application specific errors."""


class PersistenceError(AdcastError):
    """Raised when a local storage or document store write was not committed."""


class QueryError(AdcastError):
    """Raised when a document store read or subscription failed."""


class MediaError(AdcastError):
    """Raised when a media asset cannot be loaded or decoded."""

    def __init__(self, message: str, *, item_id: str | None = None) -> None:
        super().__init__(message)
        self.item_id = item_id


class ExpiredPairingError(AdcastError):
    """Raised when a pairing code outlived its TTL before being claimed."""


class IncompleteIdentityError(AdcastError):
    """Raised when device-local storage holds only half of a device identity."""

    def __init__(self, message: str, *, device_id: str | None = None) -> None:
        super().__init__(message)
        self.device_id = device_id


class PairingNotFoundError(AdcastError):
    """Raised when no pairing record exists for a code."""


class PairingAlreadyLinkedError(AdcastError):
    """Raised when a pairing record was already claimed."""


class PairingOwnershipError(AdcastError):
    """Raised when a pairing record belongs to another account."""


class UnauthenticatedError(AdcastError):
    """Raised when an operation needs a signed-in identity."""


class InvalidPairingStateError(AdcastError):
    """Raised when a pairing operation is not allowed in the current phase."""


@dataclass(slots=True)
class _EntityContext:
    """Internal helper describing the entity for error messages."""

    entity: str | None = None

    def format(self, message: str) -> str:
        if self.entity:
            return f"{self.entity}: {message}"
        return message


@contextmanager
def handle_store_errors(*, entity: str | None = None, write: bool) -> Iterator[None]:
    """Translate SQLAlchemy errors into :class:`PersistenceError`/:class:`QueryError`."""

    context = _EntityContext(entity)
    try:
        yield
    except sa_exc.SQLAlchemyError as exc:
        if write:
            raise PersistenceError(context.format("write was not committed")) from exc
        raise QueryError(context.format("read failed")) from exc
