"""JSONL ledger store.

Storage
-------
Every order's records live in one shared, append-only JSONL file::

    data/ledger/ledger.jsonl

Records from different orders interleave in append order.  The directory and
file are created automatically on the first write.

Envelope format
---------------
Every line is a self-contained JSON object: the fields of
:meth:`LedgerRecord.to_dict` plus a ``_checksum``:

.. code-block:: json

    {
      "transaction_id": "0x3f9a...",
      "order_id":       "ORD-1718000000000-a1b2c3d4e5",
      "event_type":     "created",
      "timestamp":      "2026-02-27T14:23:01.452345+00:00",
      "payload":        {"customerId": "CUST-1", "...": "..."},
      "record_hash":    "b94f3e...",
      "prev_hash":      null,
      "_checksum":      "sha256:0c1d..."
    }

``_checksum`` covers the line body (every field except ``_checksum``,
serialised with ``sort_keys=True``) and only detects storage corruption.
Tamper evidence comes from ``record_hash`` and ``prev_hash``, which the
:class:`~trackchain.ledger.engine.LedgerEngine` checks.

Concurrency
-----------
``fcntl.flock(LOCK_EX)`` is held for every append and ``LOCK_SH`` while a
reader snapshots the file.  This serialises writers within a single process
and across processes on the same host.

**Platform note:** ``fcntl`` is POSIX-only (Darwin + Linux).
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import logging
import threading
from collections.abc import Iterable, Iterator
from pathlib import Path

from trackchain.errors import StoreOperationContext, StoreReadError, StoreWriteError
from trackchain.models import LedgerRecord

logger = logging.getLogger(__name__)

_CHECKSUM_PREFIX = "sha256:"


def _compute_checksum(body: dict) -> str:
    """SHA-256 hex digest of the canonical JSON serialisation of ``body``."""
    canonical = json.dumps(body, ensure_ascii=False, sort_keys=True)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def encode_line(record: LedgerRecord) -> str:
    """Serialise ``record`` to one checksummed JSONL line (no trailing newline)."""
    body = record.to_dict()
    envelope = {**body, "_checksum": _CHECKSUM_PREFIX + _compute_checksum(body)}
    return json.dumps(envelope, ensure_ascii=False, sort_keys=True)


def _append_line_locked(path: Path, line: str) -> None:
    """Append a single newline-terminated line to ``path`` under an exclusive lock.

    Raises:
        OSError: If the directory creation, file open, or write fails.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fcntl.flock(fh, fcntl.LOCK_EX)
        try:
            fh.write(line + "\n")
            fh.flush()
        finally:
            fcntl.flock(fh, fcntl.LOCK_UN)


def _read_lines_locked(path: Path) -> list[str]:
    """Snapshot every line of ``path`` under a shared lock."""
    with path.open("r", encoding="utf-8") as fh:
        fcntl.flock(fh, fcntl.LOCK_SH)
        try:
            return fh.readlines()
        finally:
            fcntl.flock(fh, fcntl.LOCK_UN)


def _read_from_locked(path: Path, offset: int) -> bytes:
    """Return the bytes of ``path`` from ``offset`` to the end, under a shared lock."""
    with path.open("rb") as fh:
        fcntl.flock(fh, fcntl.LOCK_SH)
        try:
            fh.seek(offset)
            return fh.read()
        finally:
            fcntl.flock(fh, fcntl.LOCK_UN)


def _read_error(details: str, exc: Exception | None = None) -> StoreReadError:
    return StoreReadError(
        context=StoreOperationContext(operation="ledger.query_ledger", details=details),
        cause=exc,
    )


class JsonlLedgerStore:
    """:class:`~trackchain.store.base.LedgerStore` over one append-only JSONL file.

    Args:
        path: Ledger file.  Created, with its parent directories, on the
            first append.

    A line that is not valid JSON raises :exc:`StoreReadError` on read.  A
    line whose ``_checksum`` does not match is still returned, with a
    warning, so the engine's chain verification can name the record.

    :meth:`last_record` keeps the newest record of every order seen so far
    and only parses bytes appended since its previous call.  If the file
    shrinks the cache is rebuilt from the start.  Edits inside the already
    scanned region go unnoticed here; :meth:`query_ledger` always reads the
    whole file, so chain verification still sees them.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._tails_lock = threading.Lock()
        self._tails: dict[str, LedgerRecord] = {}
        self._scanned_bytes = 0
        self._scanned_lines = 0

    def __repr__(self) -> str:
        return f"JsonlLedgerStore({str(self.path)!r})"

    def append_ledger_record(self, record: LedgerRecord) -> None:
        line = encode_line(record)
        try:
            _append_line_locked(self.path, line)
        except OSError as exc:
            raise StoreWriteError(
                context=StoreOperationContext(
                    operation="ledger.append_ledger_record",
                    details=f"transaction_id={record.transaction_id!r} path={self.path}",
                ),
                cause=exc,
            ) from exc
        logger.debug(
            "ledger: appended %r record %s for %s",
            record.event_type.value,
            record.transaction_id,
            record.order_id,
        )

    def query_ledger(self, order_id: str) -> Iterator[LedgerRecord]:
        if not self.path.exists():
            return
        try:
            lines = _read_lines_locked(self.path)
        except OSError as exc:
            raise _read_error(f"path={self.path}", exc) from exc

        for envelope in self._envelopes(enumerate(lines, start=1)):
            if envelope.get("order_id") == order_id:
                yield _to_record(envelope)

    def last_record(self, order_id: str) -> LedgerRecord | None:
        with self._tails_lock:
            self._refresh_tails()
            return self._tails.get(order_id)

    def _refresh_tails(self) -> None:
        """Fold lines appended since the previous scan into ``_tails``."""
        try:
            size = self.path.stat().st_size
        except (FileNotFoundError, NotADirectoryError):
            size = 0
        except OSError as exc:
            raise _read_error(f"path={self.path}", exc) from exc

        if size < self._scanned_bytes:
            logger.warning("ledger: %s shrank; rescanning from the start", self.path.name)
            self._tails.clear()
            self._scanned_bytes = self._scanned_lines = 0
        if size == self._scanned_bytes:
            return

        try:
            chunk = _read_from_locked(self.path, self._scanned_bytes)
        except OSError as exc:
            raise _read_error(f"path={self.path}", exc) from exc
        complete = chunk[: chunk.rfind(b"\n") + 1]
        raw_lines = complete.split(b"\n")[:-1]
        try:
            numbered = [
                (self._scanned_lines + n, raw.decode("utf-8"))
                for n, raw in enumerate(raw_lines, start=1)
            ]
        except UnicodeDecodeError as exc:
            raise _read_error(f"{self.path} is not valid UTF-8", exc) from exc

        for envelope in self._envelopes(numbered):
            record = _to_record(envelope)
            self._tails[record.order_id] = record
        self._scanned_bytes += len(complete)
        self._scanned_lines += len(raw_lines)

    def _envelopes(self, numbered_lines: Iterable[tuple[int, str]]) -> Iterator[dict]:
        for lineno, raw in numbered_lines:
            line = raw.strip()
            if not line:
                continue
            try:
                envelope = json.loads(line)
            except json.JSONDecodeError as exc:
                raise _read_error(f"line {lineno} of {self.path} is not valid JSON", exc) from exc
            if not isinstance(envelope, dict):
                raise _read_error(f"line {lineno} of {self.path} is not a JSON object")

            recorded = envelope.pop("_checksum", None)
            expected = _CHECKSUM_PREFIX + _compute_checksum(envelope)
            if recorded != expected:
                logger.warning(
                    "ledger: checksum mismatch on line %d of %s (transaction %s)",
                    lineno,
                    self.path.name,
                    envelope.get("transaction_id"),
                )
            yield envelope


def _to_record(envelope: dict) -> LedgerRecord:
    try:
        return LedgerRecord.from_dict(envelope)
    except (KeyError, TypeError, ValueError) as exc:
        raise _read_error(f"malformed record {envelope.get('transaction_id')!r}", exc) from exc
