"""Contract tests shared by every OrderStore adapter.

The same assertions run against :class:`MemoryOrderStore` and
:class:`SqliteOrderStore`, so the engine can rely on identical behaviour from
either backend.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from tests.constants import BERLIN, EPOCH, HAMBURG
from trackchain.models import LocationFix, Order, QrDescriptor
from trackchain.status import OrderStatus
from trackchain.store.base import LedgerStore, OrderStore
from trackchain.store.memory import MemoryLedgerStore, MemoryOrderStore
from trackchain.store.sqlite import SqliteOrderStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path) -> OrderStore:
    if request.param == "memory":
        return MemoryOrderStore()
    sqlite_store = SqliteOrderStore(tmp_path / "orders.db")
    sqlite_store.init_schema()
    return sqlite_store


def _order(order_id: str = "ORD-1", **changes) -> Order:
    base = Order(
        order_id=order_id,
        customer_id="C1",
        product_name="Widget",
        quantity=5,
        created_at=EPOCH,
        content_hash="f" * 64,
        transaction_id="0x" + "a" * 64,
    )
    return replace(base, **changes)


def _fix(codec, lat_lon, seconds: int = 0) -> LocationFix:
    return LocationFix.signed(
        codec,
        latitude=lat_lon[0],
        longitude=lat_lon[1],
        gps_tracker_id="GPS-1",
        timestamp=EPOCH + timedelta(seconds=seconds),
    )


@pytest.mark.unit
def test_adapters_satisfy_protocols(tmp_path) -> None:
    assert isinstance(MemoryOrderStore(), OrderStore)
    assert isinstance(SqliteOrderStore(tmp_path / "x.db"), OrderStore)
    assert isinstance(MemoryLedgerStore(), LedgerStore)


@pytest.mark.db
class TestOrderStoreContract:
    def test_load_missing_returns_none(self, store: OrderStore) -> None:
        assert store.load_order("ORD-NOPE") is None

    def test_save_then_load(self, store: OrderStore) -> None:
        order = _order()
        store.save_order(order)
        assert store.load_order("ORD-1") == order

    def test_save_replaces_current_state(self, store: OrderStore, codec) -> None:
        store.save_order(_order())
        updated = _order(
            status=OrderStatus.IN_TRANSIT,
            gps_tracker_id="GPS-1",
            qr_code=QrDescriptor(data="{}", hash="q" * 64, generated_at=EPOCH),
            locations=(_fix(codec, BERLIN),),
        )
        store.save_order(updated)

        assert store.load_order("ORD-1") == updated
        assert len(store.list_orders()) == 1

    def test_list_orders_in_creation_order(self, store: OrderStore) -> None:
        for order_id in ("ORD-B", "ORD-A", "ORD-C"):
            store.save_order(_order(order_id))
        store.save_order(_order("ORD-B", status=OrderStatus.PACKED))

        assert [o.order_id for o in store.list_orders()] == ["ORD-B", "ORD-A", "ORD-C"]

    def test_list_orders_empty(self, store: OrderStore) -> None:
        assert store.list_orders() == []

    def test_location_index_is_append_only_and_ordered(self, store: OrderStore, codec) -> None:
        first, second = _fix(codec, BERLIN, 0), _fix(codec, HAMBURG, 60)
        store.append_location("ORD-1", first)
        store.append_location("ORD-2", _fix(codec, BERLIN, 5))
        store.append_location("ORD-1", second)

        assert list(store.query_locations("ORD-1")) == [first, second]

    def test_query_locations_unknown_order_is_empty(self, store: OrderStore) -> None:
        assert list(store.query_locations("ORD-NOPE")) == []

    def test_fix_signature_survives_storage(self, store: OrderStore, codec) -> None:
        store.append_location("ORD-1", _fix(codec, BERLIN))
        (stored,) = store.query_locations("ORD-1")
        assert codec.verify(*stored.signing_fields(), signature=stored.signature)
