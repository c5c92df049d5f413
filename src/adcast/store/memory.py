"""In-process document store with synchronous push subscriptions."""

from __future__ import annotations

import copy
from typing import Any, Iterable, Mapping

import structlog

from ..exceptions import PersistenceError
from .documents import (
    Document,
    DocumentCallback,
    ErrorCallback,
    Filter,
    QueryCallback,
    matches_all,
)
from .subscriptions import CallbackSubscription, SubscriptionHub

logger = structlog.get_logger(__name__)


class InMemoryDocumentStore:
    """Document store kept in a dictionary.

    Every committed write is pushed to matching subscribers before the write
    coroutine returns, so callbacks for one key are observed in commit order.
    Used by single-process deployments and by the test suite.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._hub = SubscriptionHub()

    async def create_record(
        self, collection: str, record_id: str, fields: Mapping[str, Any]
    ) -> None:
        records = self._collections.setdefault(collection, {})
        if record_id in records:
            raise PersistenceError(f"{collection}/{record_id} already exists")
        records[record_id] = copy.deepcopy(dict(fields))
        self._notify(collection, record_id)

    async def get_record(self, collection: str, record_id: str) -> dict[str, Any] | None:
        record = self._collections.get(collection, {}).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def update_record(
        self, collection: str, record_id: str, fields: Mapping[str, Any]
    ) -> None:
        records = self._collections.setdefault(collection, {})
        merged = dict(records.get(record_id, {}))
        merged.update(copy.deepcopy(dict(fields)))
        records[record_id] = merged
        self._notify(collection, record_id)

    async def query(self, collection: str, filters: Iterable[Filter]) -> list[Document]:
        return self._select(collection, tuple(filters))

    def subscribe(
        self,
        collection: str,
        filters: Iterable[Filter],
        callback: QueryCallback,
        *,
        on_error: ErrorCallback | None = None,
    ) -> CallbackSubscription:
        watch = self._hub.watch_query(collection, filters, callback, on_error)
        self._hub.deliver_query(watch, self._select(collection, watch.filters))
        return watch.subscription

    def subscribe_doc(
        self,
        collection: str,
        record_id: str,
        callback: DocumentCallback,
        *,
        on_error: ErrorCallback | None = None,
    ) -> CallbackSubscription:
        watch = self._hub.watch_doc(collection, record_id, callback, on_error)
        self._hub.deliver_doc(watch, self._collections.get(collection, {}).get(record_id))
        return watch.subscription

    def _select(self, collection: str, filters: tuple[Filter, ...]) -> list[Document]:
        records = self._collections.get(collection, {})
        return [
            Document(id=record_id, fields=copy.deepcopy(fields))
            for record_id, fields in sorted(records.items())
            if matches_all(filters, fields)
        ]

    def _notify(self, collection: str, record_id: str) -> None:
        fields = self._collections.get(collection, {}).get(record_id)
        for watch in self._hub.docs_for(collection, record_id):
            self._hub.deliver_doc(watch, fields)
        for watch in self._hub.queries_for(collection):
            self._hub.deliver_query(watch, self._select(collection, watch.filters))
        logger.debug("store.memory.committed", collection=collection, record_id=record_id)


__all__ = ["InMemoryDocumentStore"]
