"""Hash-chained ledger engine.

:class:`LedgerEngine` is the only writer of ledger records.  It turns an
``(order_id, event_type, payload)`` triple into a stamped, hashed
:class:`~trackchain.models.LedgerRecord` and hands it to a
:class:`~trackchain.store.base.LedgerStore`.

Append sequence (``append``):

1. Acquire the engine lock.
2. Look up the order's last record and take its ``record_hash`` as
   ``prev_hash`` (``None`` for the first record).
3. Mint a transaction id and stamp the clock.
4. Hash the record body (order id, event type, payload, timestamp,
   ``prev_hash``).
5. Persist through the store.  A store failure propagates and nothing is
   returned.
6. Release the lock.

Verification walks an order's records oldest first and checks, for each one,
that its ``record_hash`` still matches its body and that its ``prev_hash``
equals the previous record's ``record_hash``.  Editing, removing or
reordering any record therefore fails verification at a named transaction.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from trackchain.codec import HashCodec
from trackchain.errors import TamperDetected
from trackchain.models import EventType, LedgerRecord, record_hash_fields, utc_now
from trackchain.store.base import LedgerStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainVerification:
    """Result of :meth:`LedgerEngine.verify_chain`.

    Attributes:
        order_id:       Order that was checked.
        ok:             True if every record and link verified.
        checked:        Number of records inspected (up to and including the
                        failing one).
        transaction_id: First failing record, or None when ``ok``.
        reason:         Human-readable failure reason, or None when ``ok``.
    """

    order_id: str
    ok: bool
    checked: int
    transaction_id: str | None = None
    reason: str | None = None


class LedgerHistory:
    """Restartable view over one order's ledger records.

    Each iteration re-queries the store, so records appended after the view
    was created are included and a fully consumed view can be iterated
    again.
    """

    def __init__(self, store: LedgerStore, order_id: str) -> None:
        self._store = store
        self.order_id = order_id

    def __iter__(self) -> Iterator[LedgerRecord]:
        return iter(self._store.query_ledger(self.order_id))

    def __repr__(self) -> str:
        return f"LedgerHistory(order_id={self.order_id!r})"


class LedgerEngine:
    """Append and verify hash-chained ledger records.

    Args:
        store: Backing ledger store.
        codec: Hash codec used for transaction ids and record hashes.
        clock: Zero-argument callable returning an aware UTC ``datetime``.
               Tests inject a fixed clock.
    """

    def __init__(
        self,
        store: LedgerStore,
        codec: HashCodec,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._codec = codec
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def store(self) -> LedgerStore:
        return self._store

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def append(
        self,
        order_id: str,
        event_type: EventType,
        payload: Mapping[str, Any],
    ) -> LedgerRecord:
        """Create, hash and persist one record; return it.

        Raises:
            ValueError: If ``order_id`` is empty.
            StoreWriteError: If the store cannot persist the record.
        """
        if not order_id:
            raise ValueError("append: order_id must be a non-empty string.")

        with self._lock:
            previous = self._store.last_record(order_id)
            prev_hash = previous.record_hash if previous is not None else None
            timestamp = self._clock()
            body = dict(payload)
            record = LedgerRecord(
                transaction_id=self._codec.new_transaction_id(),
                order_id=order_id,
                event_type=event_type,
                timestamp=timestamp,
                payload=body,
                record_hash=self._codec.content_hash(
                    record_hash_fields(
                        order_id=order_id,
                        event_type=event_type,
                        payload=body,
                        timestamp=timestamp,
                        prev_hash=prev_hash,
                    )
                ),
                prev_hash=prev_hash,
            )
            self._store.append_ledger_record(record)

        logger.debug(
            "ledger: %s %s for order %s", event_type.value, record.transaction_id, order_id
        )
        return record

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def history_for(self, order_id: str) -> LedgerHistory:
        """Return a lazy, restartable iterable of the order's records, oldest first."""
        return LedgerHistory(self._store, order_id)

    def verify_record(self, record: LedgerRecord) -> bool:
        """Return True iff ``record_hash`` matches the record's current body."""
        return self._codec.content_hash(record.hash_fields()) == record.record_hash

    def verify_chain(self, order_id: str) -> ChainVerification:
        """Check every record hash and ``prev_hash`` link for ``order_id``.

        An order with no records verifies trivially (``checked == 0``).
        """
        expected_prev: str | None = None
        checked = 0
        for record in self.history_for(order_id):
            checked += 1
            if not self.verify_record(record):
                return ChainVerification(
                    order_id, False, checked, record.transaction_id, "record hash mismatch"
                )
            if record.prev_hash != expected_prev:
                return ChainVerification(
                    order_id, False, checked, record.transaction_id, "broken chain link"
                )
            expected_prev = record.record_hash
        return ChainVerification(order_id, True, checked)

    def assert_intact(self, order_id: str) -> int:
        """Verify the chain and return the record count.

        Raises:
            TamperDetected: On the first record that fails verification.
        """
        result = self.verify_chain(order_id)
        if not result.ok:
            logger.warning(
                "Ledger tamper detected for order %s at %s: %s",
                order_id,
                result.transaction_id,
                result.reason,
            )
            raise TamperDetected(order_id, result.transaction_id, result.reason or "unknown")
        return result.checked
