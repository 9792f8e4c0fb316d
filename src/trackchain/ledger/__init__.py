"""Ledger package: hash-chained, append-only audit trail.

The ledger is the **authoritative record** of every order lifecycle event.
Order state in the order store is derived from it: the service always appends
to the ledger before it saves the order.

Public surface
--------------
- :class:`LedgerEngine`      — append, history and chain verification.
- :class:`LedgerHistory`     — restartable per-order record view.
- :class:`ChainVerification` — result of :meth:`LedgerEngine.verify_chain`.
- :class:`JsonlLedgerStore`  — durable, checksummed JSONL ledger store.
"""

from trackchain.ledger.engine import ChainVerification, LedgerEngine, LedgerHistory
from trackchain.ledger.jsonl import JsonlLedgerStore

__all__ = [
    "ChainVerification",
    "JsonlLedgerStore",
    "LedgerEngine",
    "LedgerHistory",
]
