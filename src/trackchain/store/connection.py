"""Per-operation SQLite connections for :mod:`trackchain.store.sqlite`.

Every store call opens its own connection and closes it before returning, so
a :class:`~trackchain.store.sqlite.SqliteOrderStore` can be shared between
threads without sharing a ``sqlite3.Connection``.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager, suppress
from pathlib import Path

# Milliseconds a connection waits on a locked database before failing.
BUSY_TIMEOUT_MS = 5000


def configure_connection(connection: sqlite3.Connection) -> sqlite3.Connection:
    """Set the busy timeout and switch the database to write-ahead logging."""
    connection.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
    connection.execute("PRAGMA journal_mode = WAL")
    return connection


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Open ``db_path``, creating its directory first if needed."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return configure_connection(sqlite3.connect(str(db_path)))


@contextmanager
def connection_scope(db_path: Path, *, write: bool = False) -> Iterator[sqlite3.Connection]:
    """Open a connection for the duration of one store operation.

    With ``write=True`` the block's statements form one transaction: committed
    when the block exits normally, rolled back when it raises.  The block's
    exception always propagates, even if the rollback itself fails.  The
    connection is closed in every case.
    """
    connection = get_connection(db_path)
    try:
        yield connection
    except BaseException:
        if write:
            with suppress(sqlite3.Error):
                connection.rollback()
        raise
    else:
        if write:
            connection.commit()
    finally:
        connection.close()
