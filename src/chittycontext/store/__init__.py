"""Key-value store contract and backends."""

from chittycontext.store.base import DAY_SECONDS, KeyValueStore
from chittycontext.store.memory import InMemoryKeyValueStore
from chittycontext.store.sql import SqlKeyValueStore

__all__ = [
    "DAY_SECONDS",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SqlKeyValueStore",
]
