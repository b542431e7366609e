"""Async event bus bridging engine callbacks to server and CLI consumers.

The engine fires events via callback while a run is in progress.
The EventBus queues them for a single consumer loop.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

from agentgate.adapters.events import OrchestratorEvent, dict_to_event
from agentgate.engine.config import EventCallback

logger = logging.getLogger(__name__)

# How long a producer waits on a full queue before dropping the event.
PUT_TIMEOUT_SECONDS = 30.0


class EventBus:
    """Async queue bridging engine callbacks to event consumers."""

    def __init__(self, maxsize: int = 5000) -> None:
        self._queue: asyncio.Queue[OrchestratorEvent] = asyncio.Queue(
            maxsize=maxsize
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    async def _callback(self, data: dict[str, Any]) -> None:
        """Parse an engine event dict and queue it."""
        await self.emit(dict_to_event(data))

    def make_callback(self) -> EventCallback:
        """The coroutine function to install as EngineConfig.event_callback."""
        return self._callback

    async def emit(self, event: OrchestratorEvent) -> None:
        """Queue an event. Dropped (with an error log) if the queue stays full."""
        if self._closed:
            return
        try:
            # Backpressure instead of dropping immediately
            await asyncio.wait_for(self._queue.put(event), timeout=PUT_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.error(
                "EventBus queue blocked for %.0fs, dropping: %s (queue size: %d)",
                PUT_TIMEOUT_SECONDS,
                event.event_type,
                self._queue.qsize(),
            )

    async def consume(self) -> AsyncIterator[OrchestratorEvent]:
        """Yield queued events in order until the bus is closed."""
        while not self._closed:
            try:
                event = await asyncio.wait_for(
                    self._queue.get(), timeout=0.5
                )
            except asyncio.TimeoutError:
                continue
            yield event

    def close(self) -> None:
        """Stop consume() and ignore further emits until reset()."""
        self._closed = True

    def reset(self) -> None:
        """Reset the bus for a new run.

        Leftover events from the previous run are discarded.
        """
        while not self._queue.empty():
            self._queue.get_nowait()
        self._closed = False
