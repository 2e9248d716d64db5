"""Persistence layer for the library cache."""

from librarysync.infrastructure.persistence.database import Database
from librarysync.infrastructure.persistence.library_store import SqlAlchemyLibraryStore
from librarysync.infrastructure.persistence.memory_store import InMemoryLibraryStore

__all__ = ["Database", "InMemoryLibraryStore", "SqlAlchemyLibraryStore"]
