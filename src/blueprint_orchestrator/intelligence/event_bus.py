"""In-process publish/subscribe bus for structured trace events."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from typing import Any
from uuid import uuid4

from blueprint_orchestrator.intelligence.models import (
    EventEnvelope,
    EventLevel,
    EventPhase,
    utc_now,
)

logger = logging.getLogger(__name__)

Listener = Callable[[EventEnvelope], None]

_LOG_LEVELS = {"INFO": logging.DEBUG, "WARN": logging.WARNING, "ERROR": logging.ERROR}


class EventBus:
    """Synchronous fan-out with a bounded replay buffer.

    One instance per process, passed explicitly to the supervisor. Listeners
    must not block; a listener that raises is logged and skipped.
    """

    def __init__(self, *, history_limit: int = 500) -> None:
        self._listeners: list[Listener] = []
        self._history: deque[EventEnvelope] = deque(maxlen=history_limit)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: EventEnvelope) -> None:
        self._history.append(event)
        logger.log(
            _LOG_LEVELS.get(event.level, logging.INFO),
            "event job=%s phase=%s type=%s payload=%s",
            event.job_id,
            event.phase,
            event.event_type,
            event.payload,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.exception("Event listener failed for event type=%s", event.event_type)

    def publish(
        self,
        job_id: str,
        phase: EventPhase,
        event_type: str,
        payload: dict[str, Any] | None = None,
        level: EventLevel = "INFO",
    ) -> EventEnvelope:
        envelope = create_envelope(job_id, phase, event_type, payload, level)
        self.emit(envelope)
        return envelope

    def history(self, job_id: str) -> list[EventEnvelope]:
        return [event for event in self._history if event.job_id == job_id]


def create_envelope(
    job_id: str,
    phase: EventPhase,
    event_type: str,
    payload: dict[str, Any] | None = None,
    level: EventLevel = "INFO",
) -> EventEnvelope:
    return EventEnvelope(
        trace_id=str(uuid4()),
        job_id=job_id,
        timestamp=utc_now().isoformat(),
        phase=phase,
        event_type=event_type,
        level=level,
        payload=dict(payload or {}),
    )
