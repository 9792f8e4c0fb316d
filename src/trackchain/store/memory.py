"""In-process store adapters.

Used by the test-suite and by the ``memory`` storage backend.  State lives in
plain dicts guarded by a lock; nothing survives the process.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator

from trackchain.models import LedgerRecord, LocationFix, Order


class MemoryOrderStore:
    """Dict-backed :class:`~trackchain.store.base.OrderStore`."""

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._locations: dict[str, list[LocationFix]] = {}
        self._lock = threading.Lock()

    def load_order(self, order_id: str) -> Order | None:
        with self._lock:
            return self._orders.get(order_id)

    def save_order(self, order: Order) -> None:
        with self._lock:
            self._orders[order.order_id] = order

    def append_location(self, order_id: str, fix: LocationFix) -> None:
        with self._lock:
            self._locations.setdefault(order_id, []).append(fix)

    def query_locations(self, order_id: str) -> Iterator[LocationFix]:
        with self._lock:
            snapshot = list(self._locations.get(order_id, ()))
        yield from snapshot

    def list_orders(self) -> list[Order]:
        with self._lock:
            # dicts keep insertion order, which is creation order here
            return list(self._orders.values())


class MemoryLedgerStore:
    """List-backed :class:`~trackchain.store.base.LedgerStore`.

    Records are kept in one global append-ordered list (the shared ledger)
    plus a per-order index for cheap lookups.
    """

    def __init__(self) -> None:
        self._records: list[LedgerRecord] = []
        self._by_order: dict[str, list[LedgerRecord]] = {}
        self._lock = threading.Lock()

    def append_ledger_record(self, record: LedgerRecord) -> None:
        with self._lock:
            self._records.append(record)
            self._by_order.setdefault(record.order_id, []).append(record)

    def query_ledger(self, order_id: str) -> Iterator[LedgerRecord]:
        with self._lock:
            snapshot = list(self._by_order.get(order_id, ()))
        yield from snapshot

    def last_record(self, order_id: str) -> LedgerRecord | None:
        with self._lock:
            records = self._by_order.get(order_id)
            return records[-1] if records else None

    def __len__(self) -> int:
        return len(self._records)
