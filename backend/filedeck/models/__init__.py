"""SQLAlchemy ORM models for filedeck."""

from filedeck.models.base import Base
from filedeck.models.kv_entry import KvEntry

__all__ = [
    "Base",
    "KvEntry",
]
