"""Observer list for orchestrator lifecycle events."""

from collections import defaultdict
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from .config import config

logger = config.get_logger(__name__)

Listener = Callable[[dict[str, Any]], None]


class EngineEvent(StrEnum):
    QUERY_STARTED = "query_started"
    QUERY_COMPLETED = "query_completed"
    FALLBACK_TRIGGERED = "fallback_triggered"
    ENGINE_READY = "engine_ready"
    ALL_ENGINES_FAILED = "all_engines_failed"
    METRICS_UPDATED = "metrics_updated"
    PRIMARY_ENGINE_CHANGED = "primary_engine_changed"
    AB_TEST_ASSIGNED = "ab_test_assigned"


class EventEmitter:
    """Synchronous observer list.

    A listener that raises is logged and skipped; the remaining listeners
    still run and the emitting caller never sees the error.
    """

    def __init__(self) -> None:
        self._listeners: defaultdict[str, list[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> None:
        self._listeners[str(event)].append(listener)

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(str(event))
        if listeners and listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(str(event), ()))

    def emit(self, event: str, payload: dict[str, Any] | None = None) -> int:
        """Deliver ``payload`` to every listener of ``event``.

        Returns:
            int: Number of listeners that completed without raising.
        """
        delivered = 0
        for listener in list(self._listeners.get(str(event), ())):
            try:
                listener(dict(payload or {}))
            except Exception:
                logger.exception("Listener for %s failed", event)
            else:
                delivered += 1
        return delivered

    def clear(self) -> None:
        self._listeners.clear()
