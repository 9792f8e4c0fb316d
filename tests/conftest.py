"""
Shared pytest fixtures for the TrackChain test suite.

This module provides fixtures that are automatically available to all test files:
- A codec bound to the test signing key
- A deterministic clock
- In-memory and on-disk (SQLite + JSONL) stores
- Fully wired OrderService instances over either backend
- A factory for signed GPS fixes

Plain helpers (``StepClock``, ``advance_to``) live in ``tests/helpers.py``.

Every fixture is function-scoped so tests never share state.
"""

from collections.abc import Callable
from pathlib import Path

import pytest

from tests.constants import TEST_SIGNING_KEY
from tests.helpers import StepClock
from trackchain.codec import HashCodec
from trackchain.ledger.engine import LedgerEngine
from trackchain.ledger.jsonl import JsonlLedgerStore
from trackchain.models import LocationFix
from trackchain.service import OrderService
from trackchain.store.memory import MemoryLedgerStore, MemoryOrderStore
from trackchain.store.sqlite import SqliteOrderStore
from trackchain.tracking import LocationValidator

# ============================================================================
# PRIMITIVES
# ============================================================================


@pytest.fixture
def codec() -> HashCodec:
    return HashCodec(TEST_SIGNING_KEY)


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


# ============================================================================
# STORE FIXTURES
# ============================================================================


@pytest.fixture
def order_store() -> MemoryOrderStore:
    return MemoryOrderStore()


@pytest.fixture
def ledger_store() -> MemoryLedgerStore:
    return MemoryLedgerStore()


@pytest.fixture
def ledger(ledger_store: MemoryLedgerStore, codec: HashCodec, clock: StepClock) -> LedgerEngine:
    return LedgerEngine(ledger_store, codec, clock=clock)


@pytest.fixture
def sqlite_order_store(tmp_path: Path) -> SqliteOrderStore:
    """SQLite order store in a temp directory, schema initialised."""
    store = SqliteOrderStore(tmp_path / "trackchain.db")
    store.init_schema()
    return store


@pytest.fixture
def jsonl_ledger_store(tmp_path: Path) -> JsonlLedgerStore:
    return JsonlLedgerStore(tmp_path / "ledger" / "ledger.jsonl")


# ============================================================================
# SERVICE FIXTURES
# ============================================================================


@pytest.fixture
def service(
    order_store: MemoryOrderStore,
    ledger: LedgerEngine,
    codec: HashCodec,
    clock: StepClock,
) -> OrderService:
    """OrderService over in-memory stores with the default 500 km limit."""
    return OrderService(
        orders=order_store,
        ledger=ledger,
        codec=codec,
        validator=LocationValidator(codec),
        verification_base_url="https://verify.example.test/verify",
        clock=clock,
    )


@pytest.fixture
def sqlite_service(
    sqlite_order_store: SqliteOrderStore,
    jsonl_ledger_store: JsonlLedgerStore,
    codec: HashCodec,
    clock: StepClock,
) -> OrderService:
    """OrderService over a SQLite order store and a JSONL ledger."""
    return OrderService(
        orders=sqlite_order_store,
        ledger=LedgerEngine(jsonl_ledger_store, codec, clock=clock),
        codec=codec,
        clock=clock,
    )


# ============================================================================
# HELPERS
# ============================================================================


@pytest.fixture
def make_fix(codec: HashCodec, clock: StepClock) -> Callable[..., LocationFix]:
    """
    Factory for fixes signed with the test key.

    Usage:
        fix = make_fix(order.gps_tracker_id, *BERLIN)
    """

    def _make(tracker_id: str, latitude: float, longitude: float) -> LocationFix:
        return LocationFix.signed(
            codec,
            latitude=latitude,
            longitude=longitude,
            gps_tracker_id=tracker_id,
            timestamp=clock(),
        )

    return _make


