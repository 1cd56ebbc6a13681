"""
Session event channel.

The orchestrator publishes named events here instead of calling back into
the presentation layer; interfaces consume them from a single queue.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator

logger = logging.getLogger(__name__)


class SessionEventType(str, Enum):
    """Types of session events."""

    SESSION_STARTED = "session_started"
    INTERVIEWER_LINE = "interviewer_line"
    CANDIDATE_RESPONSE = "candidate_response"
    TURN_SKIPPED = "turn_skipped"
    TURN_FAILED = "turn_failed"
    NOTIFICATION = "notification"
    INTERVIEWER_SWITCHED = "interviewer_switched"
    SESSION_COMPLETED = "session_completed"
    SESSION_ABORTED = "session_aborted"
    SESSION_RESET = "session_reset"
    FEEDBACK_READY = "feedback_ready"
    FEEDBACK_FAILED = "feedback_failed"


@dataclass
class SessionEvent:
    """A single event emitted by the orchestrator."""

    event_type: SessionEventType
    generation: int
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


class EventChannel:
    """
    Unbounded queue of session events.

    Publishing never blocks; a closed channel ends ``stream()`` once the
    queued events have been consumed.
    """

    _CLOSED = object()

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event_type: SessionEventType, generation: int, **data: Any) -> SessionEvent:
        """
        Queue an event.

        Args:
            event_type: Kind of event.
            generation: Reset generation the event belongs to.
            **data: Event payload.

        Returns:
            The queued event.
        """
        event = SessionEvent(event_type=event_type, generation=generation, data=data)
        if self._closed:
            logger.debug(f"[SESSION] event {event_type.value} dropped, channel closed")
            return event
        self._queue.put_nowait(event)
        return event

    async def get(self) -> SessionEvent | None:
        """Wait for the next event; None once the channel is closed and empty."""
        item = await self._queue.get()
        if item is self._CLOSED:
            self._queue.put_nowait(self._CLOSED)
            return None
        return item

    async def stream(self) -> AsyncIterator[SessionEvent]:
        """Yield events until the channel is closed."""
        while True:
            event = await self.get()
            if event is None:
                return
            yield event

    def drain(self) -> list[SessionEvent]:
        """Return every queued event without waiting."""
        events: list[SessionEvent] = []
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if item is self._CLOSED:
                self._queue.put_nowait(self._CLOSED)
                break
            events.append(item)
        return events

    def close(self) -> None:
        """Stop accepting events and wake any consumer."""
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(self._CLOSED)
