"""Logging setup: plain text for terminals, single-line JSON for aggregators.

Activate JSON output by setting ``PROCSYNC_STRUCTURED_LOGGING=true``.

Output schema per line::

    {
        "timestamp": "2025-05-15T12:34:56.789012+00:00",
        "level": "INFO",
        "logger": "procsync.sync.engine",
        "message": "Procedure synced: calc_total (version 2)",
        "procedure": "calc_total",     // present when passed via extra=
        "file": "calc_total.sql",      // present when passed via extra=
        "exc_info": "Traceback ..."    // present only on exceptions
    }
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import UTC, datetime
from typing import Any

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Structured context keys copied from ``extra=`` into the JSON payload.
_EXTRA_KEYS: tuple[str, ...] = ("procedure", "file", "action", "version")


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Render *record* as a single JSON line."""
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in _EXTRA_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(level: str = "INFO", *, structured: bool = False) -> None:
    """Replace root handlers with a single stream handler.

    Parameters
    ----------
    level:
        Root log level name (``"DEBUG"``, ``"INFO"``, ...).
    structured:
        Emit JSON lines via :class:`JSONFormatter` instead of plain text.
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if structured else logging.Formatter(_TEXT_FORMAT))
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # watchdog is chatty at DEBUG; keep it at WARNING unless asked otherwise.
    logging.getLogger("watchdog").setLevel(logging.WARNING)

    if structured:
        logging.getLogger(__name__).info("Structured JSON logging enabled")
