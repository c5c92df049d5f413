"""Subscription bookkeeping shared by the document store implementations."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence

import structlog

from .documents import Document, Filter

logger = structlog.get_logger(__name__)


class CallbackSubscription:
    """Cancelable handle; ``unsubscribe`` detaches the callback synchronously."""

    __slots__ = ("_active", "_on_unsubscribe")

    def __init__(self, on_unsubscribe: Callable[["CallbackSubscription"], None] | None = None) -> None:
        self._active = True
        self._on_unsubscribe = on_unsubscribe

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._on_unsubscribe is not None:
            self._on_unsubscribe(self)
            self._on_unsubscribe = None


def fingerprint(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


@dataclass(slots=True)
class _Watch:
    subscription: CallbackSubscription
    collection: str
    on_error: Callable[[Exception], None] | None
    last_fingerprint: str | None = None


@dataclass(slots=True)
class DocWatch(_Watch):
    record_id: str = ""
    callback: Callable[[Mapping[str, Any] | None], None] | None = None


@dataclass(slots=True)
class QueryWatch(_Watch):
    filters: tuple[Filter, ...] = ()
    callback: Callable[[Sequence[Document]], None] | None = None


@dataclass
class SubscriptionHub:
    """Registry of document/query watchers with change-only delivery."""

    doc_watches: list[DocWatch] = field(default_factory=list)
    query_watches: list[QueryWatch] = field(default_factory=list)

    def watch_doc(
        self,
        collection: str,
        record_id: str,
        callback: Callable[[Mapping[str, Any] | None], None],
        on_error: Callable[[Exception], None] | None,
    ) -> DocWatch:
        subscription = CallbackSubscription(self._detach)
        watch = DocWatch(
            subscription=subscription,
            collection=collection,
            on_error=on_error,
            record_id=record_id,
            callback=callback,
        )
        self.doc_watches.append(watch)
        return watch

    def watch_query(
        self,
        collection: str,
        filters: Iterable[Filter],
        callback: Callable[[Sequence[Document]], None],
        on_error: Callable[[Exception], None] | None,
    ) -> QueryWatch:
        subscription = CallbackSubscription(self._detach)
        watch = QueryWatch(
            subscription=subscription,
            collection=collection,
            on_error=on_error,
            filters=tuple(filters),
            callback=callback,
        )
        self.query_watches.append(watch)
        return watch

    def docs_for(self, collection: str, record_id: str) -> list[DocWatch]:
        return [
            watch
            for watch in self.doc_watches
            if watch.collection == collection and watch.record_id == record_id
        ]

    def queries_for(self, collection: str) -> list[QueryWatch]:
        return [watch for watch in self.query_watches if watch.collection == collection]

    def deliver_doc(self, watch: DocWatch, fields: Mapping[str, Any] | None) -> None:
        if not watch.subscription.active or watch.callback is None:
            return
        current = fingerprint(fields)
        if current == watch.last_fingerprint:
            return
        watch.last_fingerprint = current
        snapshot = dict(fields) if fields is not None else None
        self._invoke(watch, watch.callback, snapshot)

    def deliver_query(self, watch: QueryWatch, documents: Sequence[Document]) -> None:
        if not watch.subscription.active or watch.callback is None:
            return
        current = fingerprint([[doc.id, doc.fields] for doc in documents])
        if current == watch.last_fingerprint:
            return
        watch.last_fingerprint = current
        self._invoke(watch, watch.callback, list(documents))

    def fail(self, watch: _Watch, exc: Exception) -> None:
        """Report ``exc`` and terminate the watch; listeners are not retried."""
        if not watch.subscription.active:
            return
        watch.subscription.unsubscribe()
        if watch.on_error is None:
            logger.warning(
                "store.subscription.failed",
                collection=watch.collection,
                error=str(exc),
            )
            return
        watch.on_error(exc)

    def _invoke(self, watch: _Watch, callback: Callable[[Any], None], payload: Any) -> None:
        try:
            callback(payload)
        except Exception:
            logger.exception("store.subscription.callback_failed", collection=watch.collection)

    def _detach(self, subscription: CallbackSubscription) -> None:
        self.doc_watches = [w for w in self.doc_watches if w.subscription is not subscription]
        self.query_watches = [w for w in self.query_watches if w.subscription is not subscription]


__all__ = [
    "CallbackSubscription",
    "DocWatch",
    "QueryWatch",
    "SubscriptionHub",
    "fingerprint",
]
