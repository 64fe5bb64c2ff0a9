"""
Shared state handed to the orchestrator and every strategy.
"""

from dataclasses import dataclass, field

from feebot.events.event_system import Event, EventSystem
from feebot.solana.models import EngineStats


@dataclass
class EngineContext:
    """
    Event system, statistics and run mode of one engine instance.

    Constructed once at startup and passed by reference; tests build a
    fresh one per test.
    """
    events: EventSystem = field(default_factory=EventSystem)
    stats: EngineStats = field(default_factory=EngineStats)
    dry_run: bool = False

    async def emit(self, event: Event):
        await self.events.publish(event)
