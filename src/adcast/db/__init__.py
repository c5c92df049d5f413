"""Database helpers backing the shared document store."""

from .db_init import init_db
from .db_models import Base, DocumentModel

__all__ = ["Base", "DocumentModel", "init_db"]
