"""Decision log sinks for the local engine."""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol, Tuple

from cedarling_bridge.core.logging import build_stream_handler
from cedarling_bridge.schemas.primitives import LogLevel, LogType

LOGGER = logging.getLogger("cedarling_bridge.services.decision_log")

DECISION_LOG_LEVEL = LogLevel.INFO


class DecisionLogger(Protocol):
    def record(self, entry: Dict[str, Any]) -> None:
        ...

    def pop(self) -> List[Dict[str, Any]]:
        ...


class NullDecisionLogger:
    """Drops every entry."""

    def record(self, entry: Dict[str, Any]) -> None:
        return None

    def pop(self) -> List[Dict[str, Any]]:
        return []


class StdOutDecisionLogger:
    """Writes each entry as one JSON line on its own stream handler.

    The handler is private to the sink, so two engine instances with the same
    application name never share or tear down each other's output.
    """

    def __init__(self, application_name: str, level: LogLevel, stream=None) -> None:
        self._level = level
        self._name = f"cedarling_bridge.decisions.{application_name}"
        self._handler = build_stream_handler(application_name, stream=stream)

    def record(self, entry: Dict[str, Any]) -> None:
        if not self._level.allows(DECISION_LOG_LEVEL):
            return
        record = logging.getLogger(self._name).makeRecord(
            self._name, logging.INFO, __file__, 0, "decision", (), None, extra=entry
        )
        self._handler.handle(record)

    def pop(self) -> List[Dict[str, Any]]:
        return []

    def close(self) -> None:
        self._handler.close()


class MemoryLogStore:
    """Bounded in-memory store of decision log entries.

    Entries older than ``ttl`` seconds are discarded (``0`` keeps them until
    popped). When ``max_items`` is reached the oldest entry is evicted. Entries
    whose JSON encoding exceeds ``max_item_size`` bytes are rejected.
    """

    def __init__(
        self,
        level: LogLevel,
        *,
        ttl: int = 0,
        max_items: Optional[int] = None,
        max_item_size: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._level = level
        self._ttl = ttl
        self._max_item_size = max_item_size
        self._clock = clock
        self._entries: Deque[Tuple[float, Dict[str, Any]]] = deque(maxlen=max_items)
        self._lock = threading.Lock()

    def record(self, entry: Dict[str, Any]) -> None:
        if not self._level.allows(DECISION_LOG_LEVEL):
            return
        if self._max_item_size is not None:
            size = len(json.dumps(entry, default=str).encode("utf-8"))
            if size > self._max_item_size:
                LOGGER.warning(
                    "decision_log_entry_dropped",
                    extra={"request_id": entry.get("request_id"), "size": size, "limit": self._max_item_size},
                )
                return
        with self._lock:
            self._expire()
            self._entries.append((self._clock(), entry))

    def pop(self) -> List[Dict[str, Any]]:
        with self._lock:
            self._expire()
            entries = [entry for _, entry in self._entries]
            self._entries.clear()
        return entries

    def __len__(self) -> int:
        with self._lock:
            self._expire()
            return len(self._entries)

    def _expire(self) -> None:
        if not self._ttl:
            return
        cutoff = self._clock() - self._ttl
        while self._entries and self._entries[0][0] <= cutoff:
            self._entries.popleft()


def build_decision_logger(application_name: str, log_config: Dict[str, Any]) -> DecisionLogger:
    """Create the sink described by the ``log_config`` bootstrap payload.

    Raises:
        ValueError: if the log type is unknown, is ``lock``, or is ``memory``
            without a memory configuration.
    """

    log_type = LogType(log_config.get("log_type", LogType.OFF.value))
    level = LogLevel(log_config.get("log_level", LogLevel.INFO.value))

    if log_type is LogType.OFF:
        return NullDecisionLogger()
    if log_type is LogType.STDOUT:
        return StdOutDecisionLogger(application_name, level)
    if log_type is LogType.MEMORY:
        memory = log_config.get("memory")
        if not memory:
            raise ValueError("log type memory requires a memory log configuration")
        return MemoryLogStore(
            level,
            ttl=int(memory.get("log_ttl") or 0),
            max_items=memory.get("max_items"),
            max_item_size=memory.get("max_item_size"),
        )
    raise ValueError("log type lock requires a lock server, which the local engine cannot reach")
