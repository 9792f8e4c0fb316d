"""Tests for the JSONL ledger store.

Each test writes to pytest's ``tmp_path`` so no test ever touches the real
``data/ledger/`` directory.

Test organisation
-----------------
- :class:`TestAppend`    — file creation, envelope layout, checksums.
- :class:`TestQuery`     — per-order filtering, persistence, ordering.
- :class:`TestFailures`  — unreadable and unwritable ledgers.
- :class:`TestTamper`    — edits to the file caught by the engine.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest

from trackchain.errors import StoreReadError, StoreWriteError
from trackchain.ledger import jsonl as jsonl_module
from trackchain.ledger.engine import LedgerEngine
from trackchain.ledger.jsonl import JsonlLedgerStore
from trackchain.models import EventType

pytestmark = pytest.mark.db


def _lines(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


def _rewrite(path: Path, envelopes: list[dict]) -> None:
    path.write_text(
        "".join(json.dumps(e, ensure_ascii=False, sort_keys=True) + "\n" for e in envelopes),
        encoding="utf-8",
    )


@pytest.fixture
def engine(jsonl_ledger_store: JsonlLedgerStore, codec, clock) -> LedgerEngine:
    return LedgerEngine(jsonl_ledger_store, codec, clock=clock)


# ── TestAppend ────────────────────────────────────────────────────────────────


class TestAppend:
    def test_creates_file_and_parent_directories(self, engine, jsonl_ledger_store) -> None:
        assert not jsonl_ledger_store.path.exists()
        engine.append("ORD-1", EventType.CREATED, {})
        assert jsonl_ledger_store.path.exists()

    def test_one_line_per_record(self, engine, jsonl_ledger_store) -> None:
        for n in range(3):
            engine.append("ORD-1", EventType.LOCATION_UPDATED, {"n": n})
        assert len(_lines(jsonl_ledger_store.path)) == 3

    def test_envelope_fields(self, engine, jsonl_ledger_store) -> None:
        record = engine.append("ORD-1", EventType.CREATED, {"customerId": "C1"})
        envelope = _lines(jsonl_ledger_store.path)[0]
        assert envelope["transaction_id"] == record.transaction_id
        assert envelope["order_id"] == "ORD-1"
        assert envelope["event_type"] == "created"
        assert envelope["payload"] == {"customerId": "C1"}
        assert envelope["record_hash"] == record.record_hash
        assert envelope["prev_hash"] is None
        assert envelope["_checksum"].startswith("sha256:")

    def test_checksum_covers_body(self, engine, jsonl_ledger_store) -> None:
        engine.append("ORD-1", EventType.CREATED, {"customerId": "Müller"})
        envelope = _lines(jsonl_ledger_store.path)[0]
        recorded = envelope.pop("_checksum")
        canonical = json.dumps(envelope, ensure_ascii=False, sort_keys=True)
        assert recorded == "sha256:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()


# ── TestQuery ─────────────────────────────────────────────────────────────────


class TestQuery:
    def test_records_read_back_equal_and_verify(self, engine, jsonl_ledger_store) -> None:
        written = [
            engine.append("ORD-1", EventType.CREATED, {"quantity": 5, "productId": None}),
            engine.append("ORD-1", EventType.LOCATION_UPDATED, {"latitude": 52.52}),
        ]
        read = list(jsonl_ledger_store.query_ledger("ORD-1"))
        assert read == written
        assert all(engine.verify_record(r) for r in read)
        assert engine.verify_chain("ORD-1").ok

    def test_filters_interleaved_orders(self, engine, jsonl_ledger_store) -> None:
        engine.append("ORD-A", EventType.CREATED, {})
        engine.append("ORD-B", EventType.CREATED, {})
        engine.append("ORD-A", EventType.DISPATCHED, {})
        assert [r.event_type for r in jsonl_ledger_store.query_ledger("ORD-A")] == [
            EventType.CREATED,
            EventType.DISPATCHED,
        ]

    def test_last_record(self, engine, jsonl_ledger_store) -> None:
        engine.append("ORD-A", EventType.CREATED, {})
        last = engine.append("ORD-A", EventType.DISPATCHED, {})
        engine.append("ORD-B", EventType.CREATED, {})
        assert jsonl_ledger_store.last_record("ORD-A") == last

    def test_missing_file_reads_as_empty(self, jsonl_ledger_store) -> None:
        assert list(jsonl_ledger_store.query_ledger("ORD-1")) == []
        assert jsonl_ledger_store.last_record("ORD-1") is None

    def test_chain_continues_across_store_instances(self, jsonl_ledger_store, codec, clock) -> None:
        first = LedgerEngine(jsonl_ledger_store, codec, clock=clock)
        created = first.append("ORD-1", EventType.CREATED, {})

        reopened = LedgerEngine(JsonlLedgerStore(jsonl_ledger_store.path), codec, clock=clock)
        dispatched = reopened.append("ORD-1", EventType.DISPATCHED, {})

        assert dispatched.prev_hash == created.record_hash
        assert reopened.verify_chain("ORD-1").ok

    def test_last_record_only_reads_new_bytes(
        self, engine, jsonl_ledger_store, monkeypatch
    ) -> None:
        offsets: list[int] = []
        original = jsonl_module._read_from_locked

        def recording(path: Path, offset: int) -> bytes:
            offsets.append(offset)
            return original(path, offset)

        monkeypatch.setattr(jsonl_module, "_read_from_locked", recording)
        for n in range(3):
            engine.append("ORD-1", EventType.LOCATION_UPDATED, {"n": n})

        assert offsets[0] == 0
        assert offsets[1:] == sorted(offsets[1:])
        assert all(offset > 0 for offset in offsets[1:])
        size = jsonl_ledger_store.path.stat().st_size
        jsonl_ledger_store.last_record("ORD-1")
        assert offsets[-1] < size

    def test_last_record_sees_appends_from_another_writer(
        self, engine, jsonl_ledger_store, codec, clock
    ) -> None:
        engine.append("ORD-1", EventType.CREATED, {})
        other = LedgerEngine(JsonlLedgerStore(jsonl_ledger_store.path), codec, clock=clock)
        foreign = other.append("ORD-1", EventType.DISPATCHED, {})

        assert jsonl_ledger_store.last_record("ORD-1") == foreign
        assert engine.append("ORD-1", EventType.STATUS_UPDATED, {}).prev_hash == (
            foreign.record_hash
        )
        assert engine.verify_chain("ORD-1").ok

    def test_last_record_rescans_after_file_shrinks(self, engine, jsonl_ledger_store) -> None:
        first = engine.append("ORD-1", EventType.CREATED, {})
        engine.append("ORD-1", EventType.DISPATCHED, {})
        engine.append("ORD-1", EventType.STATUS_UPDATED, {})
        _rewrite(jsonl_ledger_store.path, _lines(jsonl_ledger_store.path)[:1])

        assert jsonl_ledger_store.last_record("ORD-1") == first

    def test_blank_lines_are_skipped(self, engine, jsonl_ledger_store) -> None:
        engine.append("ORD-1", EventType.CREATED, {})
        with jsonl_ledger_store.path.open("a", encoding="utf-8") as fh:
            fh.write("\n\n")
        assert len(list(jsonl_ledger_store.query_ledger("ORD-1"))) == 1


# ── TestFailures ──────────────────────────────────────────────────────────────


class TestFailures:
    def test_unwritable_path_raises_store_write_error(self, tmp_path: Path, codec) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        broken = LedgerEngine(JsonlLedgerStore(blocker / "ledger.jsonl"), codec)
        with pytest.raises(StoreWriteError) as excinfo:
            broken.append("ORD-1", EventType.CREATED, {})
        assert excinfo.value.context.operation == "ledger.append_ledger_record"
        assert isinstance(excinfo.value.cause, OSError)

    def test_malformed_line_raises_store_read_error(self, engine, jsonl_ledger_store) -> None:
        engine.append("ORD-1", EventType.CREATED, {})
        with jsonl_ledger_store.path.open("a", encoding="utf-8") as fh:
            fh.write('{"transaction_id": "0x1", "order_id"\n')
        with pytest.raises(StoreReadError, match="line 2"):
            list(jsonl_ledger_store.query_ledger("ORD-1"))

    def test_record_missing_fields_raises_store_read_error(
        self, engine, jsonl_ledger_store
    ) -> None:
        engine.append("ORD-1", EventType.CREATED, {})
        envelopes = _lines(jsonl_ledger_store.path)
        del envelopes[0]["record_hash"]
        _rewrite(jsonl_ledger_store.path, envelopes)
        with pytest.raises(StoreReadError, match="malformed record"):
            list(jsonl_ledger_store.query_ledger("ORD-1"))


# ── TestTamper ────────────────────────────────────────────────────────────────


class TestTamper:
    def test_edited_payload_fails_chain(self, engine, jsonl_ledger_store, caplog) -> None:
        engine.append("ORD-1", EventType.CREATED, {"quantity": 5})
        target = engine.append("ORD-1", EventType.DISPATCHED, {"gpsTrackerId": "GPS-1"})

        envelopes = _lines(jsonl_ledger_store.path)
        envelopes[1]["payload"]["gpsTrackerId"] = "GPS-EVIL"
        _rewrite(jsonl_ledger_store.path, envelopes)

        with caplog.at_level("WARNING", logger="trackchain"):
            result = engine.verify_chain("ORD-1")
        assert not result.ok
        assert result.transaction_id == target.transaction_id
        assert any("checksum mismatch" in r.getMessage() for r in caplog.records)

    def test_deleted_line_fails_chain(self, engine, jsonl_ledger_store) -> None:
        engine.append("ORD-1", EventType.CREATED, {})
        engine.append("ORD-1", EventType.DISPATCHED, {})
        last = engine.append("ORD-1", EventType.STATUS_UPDATED, {})

        envelopes = _lines(jsonl_ledger_store.path)
        del envelopes[1]
        _rewrite(jsonl_ledger_store.path, envelopes)

        result = engine.verify_chain("ORD-1")
        assert not result.ok
        assert result.transaction_id == last.transaction_id
