"""Persistence layer for civicwatch."""

from .base import AffairStore, pair_key
from .sqlite_store import SQLiteStore

__all__ = [
    "AffairStore",
    "SQLiteStore",
    "pair_key",
]
