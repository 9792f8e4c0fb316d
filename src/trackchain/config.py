"""
Engine configuration management.

This module handles loading and accessing TrackChain configuration from
multiple sources with a clear priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/trackchain.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The
TrackChainConfig dataclass provides typed access to all settings.

The GPS signing key is *read* here but never used from here: it is handed to
:class:`~trackchain.codec.HashCodec` by :func:`trackchain.bootstrap.build_service`
when the service is constructed.

Usage:
    from trackchain.config import config

    print(config.storage.backend)
    print(config.tracking.max_jump_km)
    print(config.is_production)

Environment Variable Mapping:
    TRACKCHAIN_STORAGE_BACKEND  -> storage.backend
    TRACKCHAIN_DB_PATH          -> storage.db_path
    TRACKCHAIN_LEDGER_PATH      -> storage.ledger_path
    TRACKCHAIN_SIGNING_KEY      -> tracking.signing_key
    TRACKCHAIN_MAX_JUMP_KM      -> tracking.max_jump_km
    TRACKCHAIN_VERIFY_BASE_URL  -> tracking.verification_base_url
    TRACKCHAIN_PRODUCTION       -> security.production
    TRACKCHAIN_LOG_LEVEL        -> logging.level
"""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/, data/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Config file paths
CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "trackchain.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "trackchain.example.ini"


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


def _resolve(path: str) -> Path:
    p = Path(path)
    if p.is_absolute():
        return p
    return PROJECT_ROOT / p


@dataclass
class StorageSettings:
    """Persistence backend configuration."""

    backend: Literal["memory", "sqlite"] = "memory"
    db_path: str = "data/trackchain.db"
    ledger_path: str = "data/ledger/ledger.jsonl"

    @property
    def absolute_db_path(self) -> Path:
        """Get absolute path to the SQLite order database."""
        return _resolve(self.db_path)

    @property
    def absolute_ledger_path(self) -> Path:
        """Get absolute path to the JSONL ledger file."""
        return _resolve(self.ledger_path)


@dataclass
class TrackingSettings:
    """GPS tracking and verification configuration."""

    signing_key: str | None = None
    max_jump_km: float = 500.0
    verification_base_url: str = "http://localhost:3000/verify"


@dataclass
class SecuritySettings:
    """Security-related configuration."""

    production: bool = False


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed", "json"] = "detailed"


@dataclass
class TrackChainConfig:
    """
    Complete engine configuration.

    This is the main configuration object that aggregates all settings sections.
    Access via the module-level `config` singleton.
    """

    storage: StorageSettings = field(default_factory=StorageSettings)
    tracking: TrackingSettings = field(default_factory=TrackingSettings)
    security: SecuritySettings = field(default_factory=SecuritySettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @property
    def is_production(self) -> bool:
        """Convenience property for production mode check."""
        return self.security.production


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_bool(value: str) -> bool:
    """Parse a string value to boolean."""
    return value.lower() in ("true", "yes", "1", "on", "enabled")


def _load_from_ini(parser: configparser.ConfigParser, cfg: TrackChainConfig) -> None:
    """Load configuration from parsed INI file into TrackChainConfig."""
    # Storage section
    if parser.has_section("storage"):
        if parser.has_option("storage", "backend"):
            val = parser.get("storage", "backend").lower()
            if val in ("memory", "sqlite"):
                cfg.storage.backend = val  # type: ignore[assignment]
        if parser.has_option("storage", "db_path"):
            cfg.storage.db_path = parser.get("storage", "db_path")
        if parser.has_option("storage", "ledger_path"):
            cfg.storage.ledger_path = parser.get("storage", "ledger_path")

    # Tracking section
    if parser.has_section("tracking"):
        if parser.has_option("tracking", "signing_key"):
            cfg.tracking.signing_key = parser.get("tracking", "signing_key") or None
        if parser.has_option("tracking", "max_jump_km"):
            cfg.tracking.max_jump_km = parser.getfloat("tracking", "max_jump_km")
        if parser.has_option("tracking", "verification_base_url"):
            cfg.tracking.verification_base_url = parser.get(
                "tracking", "verification_base_url"
            )

    # Security section
    if parser.has_section("security"):
        if parser.has_option("security", "production"):
            cfg.security.production = _parse_bool(parser.get("security", "production"))

    # Logging section
    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed", "json"):
                cfg.logging.format = val  # type: ignore[assignment]


def _apply_env_overrides(cfg: TrackChainConfig) -> None:
    """Apply environment variable overrides to configuration."""
    # Storage settings
    if env_backend := os.getenv("TRACKCHAIN_STORAGE_BACKEND"):
        if env_backend.lower() in ("memory", "sqlite"):
            cfg.storage.backend = env_backend.lower()  # type: ignore[assignment]
    if env_db := os.getenv("TRACKCHAIN_DB_PATH"):
        cfg.storage.db_path = env_db
    if env_ledger := os.getenv("TRACKCHAIN_LEDGER_PATH"):
        cfg.storage.ledger_path = env_ledger

    # Tracking settings
    if env_key := os.getenv("TRACKCHAIN_SIGNING_KEY"):
        cfg.tracking.signing_key = env_key
    if env_jump := os.getenv("TRACKCHAIN_MAX_JUMP_KM"):
        cfg.tracking.max_jump_km = float(env_jump)
    if env_url := os.getenv("TRACKCHAIN_VERIFY_BASE_URL"):
        cfg.tracking.verification_base_url = env_url

    # Security settings
    if env_production := os.getenv("TRACKCHAIN_PRODUCTION"):
        cfg.security.production = _parse_bool(env_production)

    # Logging settings
    if env_log := os.getenv("TRACKCHAIN_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()


def load_config() -> TrackChainConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/trackchain.ini
        3. config/trackchain.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        TrackChainConfig: Fully populated configuration object.
    """
    cfg = TrackChainConfig()

    # Determine which config file to use
    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        # Use example as fallback for development
        config_file = CONFIG_EXAMPLE

    # Load from INI file if available
    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file)
        _load_from_ini(parser, cfg)

    # Apply environment variable overrides (highest priority)
    _apply_env_overrides(cfg)

    return cfg


def reload_config() -> "TrackChainConfig":
    """
    Reload configuration from disk and environment.

    This updates the module-level `config` singleton. Services that were
    already built keep the settings they were constructed with.

    Returns:
        TrackChainConfig: The newly loaded configuration.
    """
    global config
    config = load_config()
    return config


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

# Load configuration once at module import time
config = load_config()


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def get_config_status() -> dict:
    """
    Get configuration status for diagnostics.

    The signing key itself is never included, only whether one is set.
    """
    return {
        "config_file_exists": CONFIG_FILE.exists(),
        "config_file_path": str(CONFIG_FILE),
        "using_example": not CONFIG_FILE.exists() and CONFIG_EXAMPLE.exists(),
        "production_mode": config.is_production,
        "storage_backend": config.storage.backend,
        "signing_key_configured": bool(config.tracking.signing_key),
        "max_jump_km": config.tracking.max_jump_km,
    }


def print_config_summary() -> None:
    """Print a summary of current configuration to stdout."""
    status = get_config_status()
    print("\n" + "=" * 60)
    print("TRACKCHAIN CONFIGURATION")
    print("=" * 60)
    print(f"Config file: {status['config_file_path']}")
    print(f"File exists: {status['config_file_exists']}")
    if status["using_example"]:
        print("WARNING: Using example config (copy to trackchain.ini for production)")
    print("-" * 60)
    print(f"Production:  {config.is_production}")
    print(f"Backend:     {config.storage.backend}")
    if config.storage.backend == "sqlite":
        print(f"Database:    {config.storage.absolute_db_path}")
        print(f"Ledger:      {config.storage.absolute_ledger_path}")
    print(f"Signing key: {'configured' if status['signing_key_configured'] else 'MISSING'}")
    print(f"Max jump:    {config.tracking.max_jump_km} km")
    print(f"Log level:   {config.logging.level}")
    print("=" * 60 + "\n")


# =============================================================================
# TEST HELPERS
# =============================================================================


class use_test_storage:
    """
    Context manager for pointing the SQLite and JSONL paths at a temp dir.

    Usage:
        from trackchain.config import use_test_storage

        def test_something(tmp_path):
            with use_test_storage(tmp_path):
                service = build_service()

    Args:
        root: Directory that receives ``trackchain.db`` and ``ledger.jsonl``.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root)
        self._original: tuple[str, str, str] | None = None

    def __enter__(self) -> Path:
        """Redirect storage paths and force the sqlite backend."""
        self._original = (
            config.storage.backend,
            config.storage.db_path,
            config.storage.ledger_path,
        )
        config.storage.backend = "sqlite"
        config.storage.db_path = str(self.root / "trackchain.db")
        config.storage.ledger_path = str(self.root / "ledger.jsonl")
        return self.root

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Restore original storage settings."""
        if self._original is not None:
            (
                config.storage.backend,
                config.storage.db_path,
                config.storage.ledger_path,
            ) = self._original
        return None
