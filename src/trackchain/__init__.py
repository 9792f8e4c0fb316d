"""TrackChain: tamper-evident shipment tracking.

Every order moves through a fixed lifecycle, each step is recorded as a
hash-chained ledger record, and GPS fixes are accepted only from the order's
signed tracker.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("trackchain")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
