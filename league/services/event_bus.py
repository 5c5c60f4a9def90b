"""
Event bus connecting fight results to the standings, streak, completion and
ranking pipeline.

Design:
- asyncio.Queue for in-process dispatch, consumed by one background task
- handlers run sequentially in subscription order, so a cascade (cup fight
  decided -> season completed -> rankings updated) is processed in order
- a failing handler is logged and does not stop the consumer; the store
  stays consistent because every handler commits its unit of work atomically
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from league.config import Config

logger = logging.getLogger(__name__)


class EventType(Enum):
    FIGHT_DECIDED = "FIGHT_DECIDED"
    CUP_FIGHT_DECIDED = "CUP_FIGHT_DECIDED"
    SEASON_DATA_CHANGED = "SEASON_DATA_CHANGED"
    SEASON_COMPLETED = "SEASON_COMPLETED"
    RANKINGS_UPDATED = "RANKINGS_UPDATED"


@dataclass(frozen=True)
class LeagueEvent:
    """Immutable event payload."""
    event_type: EventType
    payload: Dict[str, Any]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __repr__(self):
        return f"LeagueEvent({self.event_type.value}, {self.payload})"


Handler = Callable[[LeagueEvent], Awaitable[Any]]


class EventBus:
    """
    In-memory event bus with an async consumer.

    Events are dispatched to registered handlers in subscription order.
    If no handler is registered for an event type, a warning is logged.
    """

    def __init__(self, max_queue_size: Optional[int] = None):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size or Config.EVENT_QUEUE_SIZE)
        self._handlers: Dict[EventType, List[Handler]] = {}
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self.failed_events: List[LeagueEvent] = []

    def subscribe(self, event_type: EventType, handler: Handler):
        """Register an async handler for an event type."""
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"EventBus: subscribed {getattr(handler, '__name__', handler)} to {event_type.value}")

    async def emit(self, event_type: EventType, payload: Dict[str, Any]) -> bool:
        """
        Queue an event for async processing.

        Returns:
            False if the queue was full and the event was dropped
        """
        event = LeagueEvent(event_type, payload)
        try:
            self._queue.put_nowait(event)
            logger.debug(f"EventBus: emitted {event}")
            return True
        except asyncio.QueueFull:
            logger.error(f"EventBus: queue full ({self._queue.maxsize}), dropping {event}")
            return False

    async def start(self):
        """Start the background consumer task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._consumer_loop())
        logger.info("EventBus: started consumer loop")

    async def stop(self, drain_timeout: float = 10.0):
        """
        Graceful shutdown.

        Waits until the queue is empty and no handler is running, so events a
        handler emits during shutdown are still dispatched. Only then is the
        stop sentinel queued.
        """
        if not self._running:
            return
        if self._task:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"EventBus: {self._queue.qsize()} events still pending after {drain_timeout}s, "
                    f"stopping anyway"
                )
        self._running = False
        if self._task:
            # Sentinel to unblock the consumer
            await self._queue.put(None)
            try:
                await asyncio.wait_for(self._task, timeout=10.0)
            except asyncio.TimeoutError:
                self._task.cancel()
                logger.warning("EventBus: consumer did not finish in 10s, cancelled")
            self._task = None
        logger.info(f"EventBus: stopped (pending={self._queue.qsize()})")

    async def wait_until_idle(self):
        """Block until every queued event, including cascaded ones, was handled."""
        await self._queue.join()

    async def _consumer_loop(self):
        """Process events sequentially from the queue."""
        while True:
            event = await self._queue.get()
            try:
                if event is None:
                    break
                await self._dispatch(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"EventBus: consumer loop error: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    async def _dispatch(self, event: LeagueEvent):
        """Dispatch an event to all registered handlers."""
        handlers = self._handlers.get(event.event_type, [])
        if not handlers:
            logger.warning(f"EventBus: no handlers for {event.event_type.value}")
            return

        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                self.failed_events.append(event)
                logger.error(
                    f"EventBus: handler {getattr(handler, '__name__', handler)} failed for {event}: {e}",
                    exc_info=True,
                )

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return self._running
