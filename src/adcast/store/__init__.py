"""Document store and device-local storage adapters."""

from .documents import (
    ARRAY_CONTAINS,
    CAROUSELS,
    EQUALS,
    TV_SETUP,
    TVS,
    Document,
    Filter,
    matches_all,
)
from .local_storage import JsonFileStorage
from .memory import InMemoryDocumentStore
from .sql_store import SqlDocumentStore
from .subscriptions import CallbackSubscription, SubscriptionHub

__all__ = [
    "ARRAY_CONTAINS",
    "CAROUSELS",
    "CallbackSubscription",
    "Document",
    "EQUALS",
    "Filter",
    "InMemoryDocumentStore",
    "JsonFileStorage",
    "SqlDocumentStore",
    "SubscriptionHub",
    "TVS",
    "TV_SETUP",
    "matches_all",
]
