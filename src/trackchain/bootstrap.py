"""Wire an :class:`~trackchain.service.OrderService` from configuration.

This is the one place that reads the signing key out of the configuration and
turns storage settings into concrete store adapters.  Everything else receives
its collaborators through constructor arguments.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from datetime import datetime

from trackchain import config as config_module
from trackchain.codec import HashCodec
from trackchain.config import TrackChainConfig
from trackchain.errors import ConfigurationError
from trackchain.ledger.engine import LedgerEngine
from trackchain.ledger.jsonl import JsonlLedgerStore
from trackchain.models import utc_now
from trackchain.service import OrderService
from trackchain.store.base import LedgerStore, OrderStore
from trackchain.store.memory import MemoryLedgerStore, MemoryOrderStore
from trackchain.store.sqlite import SqliteOrderStore
from trackchain.tracking import LocationValidator

logger = logging.getLogger(__name__)


def resolve_signing_key(cfg: TrackChainConfig) -> str:
    """Return the configured GPS signing key.

    Outside production a missing key is replaced by a random per-process key,
    which means fixes signed by a previous process will no longer verify.

    Raises:
        ConfigurationError: If no key is configured in production mode.
    """
    key = cfg.tracking.signing_key
    if key:
        return key
    if cfg.is_production:
        raise ConfigurationError(
            "No GPS signing key configured. Set [tracking] signing_key or "
            "TRACKCHAIN_SIGNING_KEY before running in production."
        )
    logger.warning(
        "No GPS signing key configured; using a random key for this process only. "
        "Set TRACKCHAIN_SIGNING_KEY to verify fixes across restarts."
    )
    return secrets.token_hex(32)


def build_stores(cfg: TrackChainConfig) -> tuple[OrderStore, LedgerStore]:
    """Create the order and ledger stores for ``cfg.storage.backend``."""
    if cfg.storage.backend == "sqlite":
        orders = SqliteOrderStore(cfg.storage.absolute_db_path)
        orders.init_schema()
        ledger_store: LedgerStore = JsonlLedgerStore(cfg.storage.absolute_ledger_path)
        return orders, ledger_store
    return MemoryOrderStore(), MemoryLedgerStore()


def build_service(
    cfg: TrackChainConfig | None = None,
    *,
    clock: Callable[[], datetime] = utc_now,
) -> OrderService:
    """Build a fully wired service.

    Args:
        cfg: Configuration to use.  Defaults to the module-level
             :data:`trackchain.config.config` singleton as it is at call time.
        clock: Clock shared by the ledger engine and the service.

    Raises:
        ConfigurationError: See :func:`resolve_signing_key`.
    """
    cfg = cfg or config_module.config
    codec = HashCodec(resolve_signing_key(cfg))
    orders, ledger_store = build_stores(cfg)
    logger.info(
        "TrackChain service ready (backend=%s, production=%s)",
        cfg.storage.backend,
        cfg.is_production,
    )
    return OrderService(
        orders=orders,
        ledger=LedgerEngine(ledger_store, codec, clock=clock),
        codec=codec,
        validator=LocationValidator(codec, max_jump_km=cfg.tracking.max_jump_km),
        verification_base_url=cfg.tracking.verification_base_url,
        clock=clock,
    )
