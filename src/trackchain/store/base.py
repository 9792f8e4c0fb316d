"""Store contracts consumed by the engine.

The engine never touches files or SQL directly.  It talks to two narrow
interfaces, and any persistence technology that satisfies them can back a
deployment:

- :class:`OrderStore`: current order state plus the standalone GPS
  location index.
- :class:`LedgerStore`: the shared, append-only ledger, queried by order id.

Contract every adapter must honour:

1. ``save_order``, ``append_location`` and ``append_ledger_record`` are
   durable before they return.
2. A record passed to ``append_ledger_record`` is either fully visible to
   later queries or not visible at all.
3. ``query_*`` yield in append order (oldest first) and return an empty
   iterator, not an error, for unknown order ids.
4. Infrastructure failures raise :class:`~trackchain.errors.StoreReadError`
   or :class:`~trackchain.errors.StoreWriteError`.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Protocol, runtime_checkable

from trackchain.models import LedgerRecord, LocationFix, Order


@runtime_checkable
class OrderStore(Protocol):
    """Persistence for order state and the per-order location index."""

    def load_order(self, order_id: str) -> Order | None:
        """Return the order, or None if it does not exist."""
        ...

    def save_order(self, order: Order) -> None:
        """Insert or replace the order's current state."""
        ...

    def append_location(self, order_id: str, fix: LocationFix) -> None:
        """Mirror an accepted fix into the standalone location index."""
        ...

    def query_locations(self, order_id: str) -> Iterator[LocationFix]:
        """Yield the order's indexed fixes, oldest first."""
        ...

    def list_orders(self) -> list[Order]:
        """Return every order in creation order."""
        ...


@runtime_checkable
class LedgerStore(Protocol):
    """Append-only storage for ledger records shared by all orders."""

    def append_ledger_record(self, record: LedgerRecord) -> None:
        """Durably append one record."""
        ...

    def query_ledger(self, order_id: str) -> Iterator[LedgerRecord]:
        """Yield the order's records in append order."""
        ...

    def last_record(self, order_id: str) -> LedgerRecord | None:
        """Return the order's most recent record, or None."""
        ...
