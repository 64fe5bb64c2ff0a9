"""
Domain events published by the fee engine.

Strategies and the orchestrator publish; subscribers (the log writer in
main, tests) receive events from a background dispatch task.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from loguru import logger

# Subscribe with this type to receive every event
ALL_EVENTS = "*"


class Event:
    """A named occurrence with a payload and the time it was created."""

    def __init__(self, event_type: str, data: Dict[str, Any]):
        self.event_type = event_type
        self.data = data
        self.timestamp = time.time()

    def __str__(self) -> str:
        return f"Event(type={self.event_type}, data={self.data})"


Subscriber = Callable[[Event], Awaitable[None]]


class FeeCollectedEvent(Event):
    """Creator fees were claimed."""

    def __init__(self, amount: float, signature: str):
        super().__init__("fee_collected", {"amount": amount, "signature": signature})


class BurnEvent(Event):
    """Bought-back tokens were sent to the incinerator."""

    def __init__(self, tokens: int, sol: float, signature: str):
        """
        Args:
            tokens: Token base units burned
            sol: SOL spent on the buyback
            signature: Burn transaction signature
        """
        super().__init__("burn", {"tokens": tokens, "sol": sol, "signature": signature})


class AirdropEvent(Event):
    """An airdrop run paid at least one holder."""

    def __init__(self, amount: float, recipient_count: int):
        super().__init__("airdrop", {"amount": amount, "recipient_count": recipient_count})


class VolumeEvent(Event):
    """One volume trade confirmed."""

    def __init__(self, amount: float, signature: str):
        super().__init__("volume", {"amount": amount, "signature": signature})


class TreasuryEvent(Event):
    """SOL reached the treasury wallet."""

    def __init__(self, amount: float, signature: str):
        super().__init__("treasury", {"amount": amount, "signature": signature})


class ErrorEvent(Event):
    """A cycle or a strategy failed."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__("error", {"message": message, "context": context or {}})


class EventSystem:
    """
    Queue-backed publish/subscribe.

    publish() only enqueues; a background task started with start() hands
    each event to the subscribers of its type and to ALL_EVENTS
    subscribers. A failing subscriber is logged and does not affect the
    others.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Subscriber]] = {}
        self._queue: asyncio.Queue = asyncio.Queue()
        self._running = False
        self._background_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def subscribe(self, event_type: str, callback: Subscriber):
        """
        Register an async callback.

        Args:
            event_type: Event type to receive, or ALL_EVENTS
            callback: Coroutine function taking the event
        """
        self._subscribers.setdefault(event_type, []).append(callback)
        logger.debug(f"Subscriber added for {event_type}")

    async def publish(self, event: Event):
        await self._queue.put(event)
        logger.debug(f"Queued {event.event_type} event")

    async def _dispatch(self, event: Event):
        targets = self._subscribers.get(event.event_type, []) + self._subscribers.get(ALL_EVENTS, [])
        if not targets:
            return

        results = await asyncio.gather(*(callback(event) for callback in targets), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Subscriber failed on {event.event_type} event: {str(result)}")

    async def _run(self):
        while self._running:
            event = await self._queue.get()
            try:
                await self._dispatch(event)
            finally:
                self._queue.task_done()

    async def drain(self):
        """Wait until every queued event has been dispatched."""
        if self._running:
            await self._queue.join()

    async def start(self):
        if self._running:
            return

        self._running = True
        self._background_task = asyncio.create_task(self._run())
        logger.info("Event dispatch started")

    async def stop(self):
        """Dispatch what is still queued, then stop the background task."""
        if not self._running:
            return

        await self.drain()
        self._running = False
        if self._background_task:
            self._background_task.cancel()
            try:
                await self._background_task
            except asyncio.CancelledError:
                pass
            self._background_task = None

        logger.info("Event dispatch stopped")
