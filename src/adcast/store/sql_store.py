"""SQLAlchemy-backed document store shared by the API and TV processes."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from datetime import datetime
from typing import Any, Iterable, Mapping

import sqlalchemy as sa
import structlog
from sqlalchemy.orm import Session

from ..db.db_models import DocumentModel
from ..exceptions import PersistenceError, handle_store_errors
from .documents import (
    Document,
    DocumentCallback,
    ErrorCallback,
    Filter,
    QueryCallback,
    matches_all,
)
from .subscriptions import CallbackSubscription, DocWatch, QueryWatch, SubscriptionHub

logger = structlog.get_logger(__name__)


def _encode(fields: Mapping[str, Any]) -> str:
    return json.dumps(dict(fields), sort_keys=True, default=str)


def _decode(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    data = json.loads(raw)
    return data if isinstance(data, dict) else {}


class SqlDocumentStore:
    """Document store persisted in the ``documents`` table.

    Blocking session work runs in worker threads. Writes made through this
    instance are pushed to its subscribers right after commit; writes made by
    other processes are picked up by :meth:`refresh`, which the lifespan calls
    every ``store_poll_interval_seconds``.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory
        self._hub = SubscriptionHub()
        self._pending: set[asyncio.Task[None]] = set()

    # -- blocking helpers -------------------------------------------------

    def _create_sync(self, collection: str, record_id: str, fields: Mapping[str, Any]) -> None:
        with handle_store_errors(entity=f"{collection}/{record_id}", write=True):
            with self._session_factory() as session:
                if session.get(DocumentModel, (collection, record_id)) is not None:
                    raise PersistenceError(f"{collection}/{record_id} already exists")
                session.add(
                    DocumentModel(
                        collection=collection,
                        record_id=record_id,
                        data=_encode(fields),
                        version=1,
                        updated_at=datetime.utcnow(),
                    )
                )
                session.commit()

    def _get_sync(self, collection: str, record_id: str) -> dict[str, Any] | None:
        with handle_store_errors(entity=f"{collection}/{record_id}", write=False):
            with self._session_factory() as session:
                model = session.get(DocumentModel, (collection, record_id))
                if model is None:
                    return None
                return _decode(model.data)

    def _update_sync(self, collection: str, record_id: str, fields: Mapping[str, Any]) -> None:
        with handle_store_errors(entity=f"{collection}/{record_id}", write=True):
            with self._session_factory() as session:
                model = session.get(DocumentModel, (collection, record_id))
                if model is None:
                    session.add(
                        DocumentModel(
                            collection=collection,
                            record_id=record_id,
                            data=_encode(fields),
                            version=1,
                            updated_at=datetime.utcnow(),
                        )
                    )
                else:
                    merged = _decode(model.data)
                    merged.update(fields)
                    model.data = _encode(merged)
                    model.version += 1
                    model.updated_at = datetime.utcnow()
                session.commit()

    def _select_sync(self, collection: str, filters: tuple[Filter, ...]) -> list[Document]:
        with handle_store_errors(entity=collection, write=False):
            with self._session_factory() as session:
                stmt = (
                    sa.select(DocumentModel)
                    .where(DocumentModel.collection == collection)
                    .order_by(DocumentModel.record_id)
                )
                rows = session.execute(stmt).scalars().all()
                documents = [Document(id=row.record_id, fields=_decode(row.data)) for row in rows]
        return [doc for doc in documents if matches_all(filters, doc.fields)]

    # -- DocumentStore ----------------------------------------------------

    async def create_record(
        self, collection: str, record_id: str, fields: Mapping[str, Any]
    ) -> None:
        await asyncio.to_thread(self._create_sync, collection, record_id, fields)
        await self._fan_out(collection, record_id)

    async def get_record(self, collection: str, record_id: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._get_sync, collection, record_id)

    async def update_record(
        self, collection: str, record_id: str, fields: Mapping[str, Any]
    ) -> None:
        await asyncio.to_thread(self._update_sync, collection, record_id, fields)
        await self._fan_out(collection, record_id)

    async def query(self, collection: str, filters: Iterable[Filter]) -> list[Document]:
        return await asyncio.to_thread(self._select_sync, collection, tuple(filters))

    def subscribe(
        self,
        collection: str,
        filters: Iterable[Filter],
        callback: QueryCallback,
        *,
        on_error: ErrorCallback | None = None,
    ) -> CallbackSubscription:
        watch = self._hub.watch_query(collection, filters, callback, on_error)
        self._spawn(self._refresh_query(watch))
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
        self._spawn(self._refresh_doc(watch))
        return watch.subscription

    # -- change propagation -----------------------------------------------

    async def refresh(self) -> None:
        """Re-read every watched document/query and deliver what changed."""

        for doc_watch in list(self._hub.doc_watches):
            await self._refresh_doc(doc_watch)
        for query_watch in list(self._hub.query_watches):
            await self._refresh_query(query_watch)

    async def wait_idle(self) -> None:
        """Wait until initial snapshots scheduled by ``subscribe`` were delivered."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _fan_out(self, collection: str, record_id: str) -> None:
        for doc_watch in self._hub.docs_for(collection, record_id):
            await self._refresh_doc(doc_watch)
        for query_watch in self._hub.queries_for(collection):
            await self._refresh_query(query_watch)
        logger.debug("store.sql.committed", collection=collection, record_id=record_id)

    async def _refresh_doc(self, watch: DocWatch) -> None:
        if not watch.subscription.active:
            return
        try:
            fields = await asyncio.to_thread(self._get_sync, watch.collection, watch.record_id)
        except Exception as exc:
            self._hub.fail(watch, exc)
            return
        self._hub.deliver_doc(watch, fields)

    async def _refresh_query(self, watch: QueryWatch) -> None:
        if not watch.subscription.active:
            return
        try:
            documents = await asyncio.to_thread(self._select_sync, watch.collection, watch.filters)
        except Exception as exc:
            self._hub.fail(watch, exc)
            return
        self._hub.deliver_query(watch, documents)

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


__all__ = ["SqlDocumentStore"]
