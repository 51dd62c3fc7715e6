"""Structured logging for the bridge and the local engine's decision logs."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional, TextIO

from cedarling_bridge.core.config import BridgeSettings

LIBRARY_LOGGER = "cedarling_bridge"

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRS: FrozenSet[str] = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _utc_timestamp(created: float) -> str:
    return datetime.fromtimestamp(created, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class JsonFormatter(logging.Formatter):
    """Render a record as one JSON object tagged with the service name."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": _utc_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        extra = {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRS}
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def build_stream_handler(
    service_name: str,
    *,
    json_format: bool = True,
    stream: Optional[TextIO] = None,
) -> logging.Handler:
    """Create a stream handler using the JSON or plain-text format."""

    handler = logging.StreamHandler(stream=stream or sys.stdout)
    if json_format:
        handler.setFormatter(JsonFormatter(service_name))
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    return handler


def configure_logging(settings: BridgeSettings) -> None:
    """Send the library's records to stdout at the configured level.

    Only the ``cedarling_bridge`` logger is touched; the host application's
    root logger is left alone.
    """

    level = getattr(logging, settings.bridge_log_level, logging.INFO)

    logger = logging.getLogger(LIBRARY_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.addHandler(build_stream_handler(settings.service_name, json_format=settings.log_json))
    logger.propagate = False
