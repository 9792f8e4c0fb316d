"""Store adapters for order state and the ledger.

Public surface
--------------
- :class:`OrderStore` / :class:`LedgerStore`: the contracts the engine uses.
- :class:`MemoryOrderStore` / :class:`MemoryLedgerStore`: in-process stores.
- :class:`SqliteOrderStore`: durable order state in SQLite.

The durable ledger store lives in :mod:`trackchain.ledger.jsonl`.
"""

from trackchain.store.base import LedgerStore, OrderStore
from trackchain.store.memory import MemoryLedgerStore, MemoryOrderStore
from trackchain.store.sqlite import SqliteOrderStore

__all__ = [
    "LedgerStore",
    "MemoryLedgerStore",
    "MemoryOrderStore",
    "OrderStore",
    "SqliteOrderStore",
]
