"""SQLite-backed order store.

Orders are stored as one JSON document per row (the output of
:meth:`Order.to_dict`) next to a few indexed scalar columns.  The GPS
location index is a separate append-only table keyed by order id.

Every public method wraps SQLite failures in
:class:`~trackchain.errors.StoreReadError` or
:class:`~trackchain.errors.StoreWriteError`, carrying a stable operation name
such as ``"orders.save_order"``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import NoReturn

from trackchain.errors import (
    StoreError,
    StoreOperationContext,
    StoreReadError,
    StoreWriteError,
)
from trackchain.models import LocationFix, Order
from trackchain.store.connection import connection_scope

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS orders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id TEXT NOT NULL UNIQUE,
        customer_id TEXT NOT NULL,
        status TEXT NOT NULL,
        created_at TEXT NOT NULL,
        document TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS order_locations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id TEXT NOT NULL,
        gps_tracker_id TEXT NOT NULL,
        recorded_at TEXT NOT NULL,
        document TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_orders_customer_id ON orders(customer_id)",
    "CREATE INDEX IF NOT EXISTS idx_order_locations_order_id ON order_locations(order_id, id)",
)


def _raise_read_error(operation: str, exc: Exception, *, details: str | None = None) -> NoReturn:
    """Raise a typed store read error while preserving chained cause."""
    if isinstance(exc, StoreError):
        raise exc
    raise StoreReadError(
        context=StoreOperationContext(operation=operation, details=details),
        cause=exc,
    ) from exc


def _raise_write_error(operation: str, exc: Exception, *, details: str | None = None) -> NoReturn:
    """Raise a typed store write error while preserving chained cause."""
    if isinstance(exc, StoreError):
        raise exc
    raise StoreWriteError(
        context=StoreOperationContext(operation=operation, details=details),
        cause=exc,
    ) from exc


def _dumps(document: dict) -> str:
    return json.dumps(document, ensure_ascii=False, sort_keys=True)


class SqliteOrderStore:
    """:class:`~trackchain.store.base.OrderStore` over a single SQLite file.

    Args:
        db_path: Database file.  Parent directories are created on first
            connection; call :meth:`init_schema` before use.
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)

    def __repr__(self) -> str:
        return f"SqliteOrderStore({str(self.db_path)!r})"

    def init_schema(self) -> None:
        """Create tables and indexes if they do not exist.  Idempotent."""
        try:
            with connection_scope(self.db_path, write=True) as conn:
                cursor = conn.cursor()
                for statement in SCHEMA_STATEMENTS:
                    cursor.execute(statement)
        except Exception as exc:
            _raise_write_error("orders.init_schema", exc, details=f"path={self.db_path}")
        logger.info("Order store schema ready at %s", self.db_path)

    def load_order(self, order_id: str) -> Order | None:
        try:
            with connection_scope(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT document FROM orders WHERE order_id = ? LIMIT 1",
                    (order_id,),
                )
                row = cursor.fetchone()
            if row is None:
                return None
            return Order.from_dict(json.loads(row[0]))
        except Exception as exc:
            _raise_read_error("orders.load_order", exc, details=f"order_id={order_id!r}")

    def save_order(self, order: Order) -> None:
        try:
            with connection_scope(self.db_path, write=True) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    INSERT INTO orders (order_id, customer_id, status, created_at, document)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(order_id) DO UPDATE SET
                        status = excluded.status,
                        document = excluded.document
                    """,
                    (
                        order.order_id,
                        order.customer_id,
                        order.status.value,
                        order.created_at.isoformat(),
                        _dumps(order.to_dict()),
                    ),
                )
        except Exception as exc:
            _raise_write_error("orders.save_order", exc, details=f"order_id={order.order_id!r}")

    def append_location(self, order_id: str, fix: LocationFix) -> None:
        try:
            with connection_scope(self.db_path, write=True) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    INSERT INTO order_locations (order_id, gps_tracker_id, recorded_at, document)
                    VALUES (?, ?, ?, ?)
                    """,
                    (order_id, fix.gps_tracker_id, fix.timestamp.isoformat(), _dumps(fix.to_dict())),
                )
        except Exception as exc:
            _raise_write_error("orders.append_location", exc, details=f"order_id={order_id!r}")

    def query_locations(self, order_id: str) -> Iterator[LocationFix]:
        try:
            with connection_scope(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "SELECT document FROM order_locations WHERE order_id = ? ORDER BY id",
                    (order_id,),
                )
                rows = cursor.fetchall()
            fixes = [LocationFix.from_dict(json.loads(row[0])) for row in rows]
        except Exception as exc:
            _raise_read_error("orders.query_locations", exc, details=f"order_id={order_id!r}")
        return iter(fixes)

    def list_orders(self) -> list[Order]:
        try:
            with connection_scope(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT document FROM orders ORDER BY id")
                rows = cursor.fetchall()
            return [Order.from_dict(json.loads(row[0])) for row in rows]
        except Exception as exc:
            _raise_read_error("orders.list_orders", exc)
