from financials.repositories.base import FinancialsStore
from financials.repositories.local_store import LocalFileStore
from financials.repositories.memory_store import InMemoryFinancialsStore
from financials.repositories.sql_store import SqlFinancialsStore

__all__ = [
    "FinancialsStore",
    "InMemoryFinancialsStore",
    "LocalFileStore",
    "SqlFinancialsStore",
]
