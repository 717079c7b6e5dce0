"""
Stress publisher: a fixed-rate stream of timestamps on a private topic.

There is no backpressure. Publishes are started without waiting for the
previous one, so a rate the connection cannot sustain grows the pending
set without bound.
"""
import asyncio
import logging
import os
import time
from typing import Optional, Set

from mqtt_tool.client.session import Session

logger = logging.getLogger(__name__)


class StressPublisher:
    def __init__(self, session: Session, rate: float, topic: Optional[str] = None):
        if rate <= 0:
            raise ValueError("Stress rate must be positive")
        self.session = session
        self.rate = rate
        self.topic = topic or f"stress/{os.getpid()}"
        self.published = 0
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def publish_once(self):
        payload = str(time.time_ns() // 1_000_000)
        task = asyncio.create_task(self.session.publish(self.topic, payload, retain=False))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self.published += 1

    async def run(self):
        """Publishes until cancelled."""
        interval = 1 / self.rate
        logger.info(f"Stress publishing to {self.topic} at {self.rate}/s")
        try:
            while True:
                self.publish_once()
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info(f"Stress publisher stopped after {self.published} messages ({self.pending} pending).")
            raise
