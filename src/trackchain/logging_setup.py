"""Root logger wiring driven by :class:`~trackchain.config.LoggingSettings`.

Library modules only ever call ``logging.getLogger(__name__)``; handlers are
attached here, by the CLI or by whatever process embeds the engine.
"""

from __future__ import annotations

import json
import logging

from trackchain.config import LoggingSettings

_FORMATS = {
    "simple": "%(levelname)s %(message)s",
    "detailed": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
}


class _JsonFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(settings: LoggingSettings | None = None) -> None:
    """Install a single stream handler on the ``trackchain`` logger.

    Safe to call more than once; previous handlers installed by this function
    are replaced rather than stacked.
    """
    if settings is None:
        from trackchain.config import config

        settings = config.logging

    handler = logging.StreamHandler()
    if settings.format == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_FORMATS[settings.format]))

    root = logging.getLogger("trackchain")
    for existing in list(root.handlers):
        if getattr(existing, "_trackchain_handler", False):
            root.removeHandler(existing)
    handler._trackchain_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.level.upper(), logging.INFO))
