"""
Pause/cancel signalling for running pipelines.

Control actions are written to the repository first and then signalled
here, so a paused run wakes as soon as its status changes instead of
sleeping out a fixed interval. The wait still has a timeout so a status
change made by another process is picked up eventually.
"""

import asyncio
from typing import Dict

from config.constants import PAUSE_POLL_INTERVAL


class PipelineControl:
    """Per-pipeline asyncio.Event registry"""

    def __init__(self):
        self._events: Dict[str, asyncio.Event] = {}

    def _event(self, pipeline_id: str) -> asyncio.Event:
        event = self._events.get(pipeline_id)
        if event is None:
            event = asyncio.Event()
            self._events[pipeline_id] = event
        return event

    def reset(self, pipeline_id: str) -> None:
        """Call before reading status so a later notify() is not lost."""
        self._event(pipeline_id).clear()

    def notify(self, pipeline_id: str) -> None:
        """Wake a waiting run. Pipelines with no run in progress have no event."""
        event = self._events.get(pipeline_id)
        if event is not None:
            event.set()

    async def wait(self, pipeline_id: str, timeout: float = PAUSE_POLL_INTERVAL) -> bool:
        """True if woken by notify(), False on timeout."""
        try:
            await asyncio.wait_for(self._event(pipeline_id).wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def discard(self, pipeline_id: str) -> None:
        self._events.pop(pipeline_id, None)
