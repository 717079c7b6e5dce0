"""
Throttled bulk clear of retained messages.

Each input line names one exact topic (no wildcards, nothing is
subscribed). Topics are cleared in input order with a fixed pause
between publishes so the client's outgoing queue is never flooded.
"""
import asyncio
import logging

from mqtt_tool.client.session import Session
from mqtt_tool.retained.lines import Lines, iterate_lines

logger = logging.getLogger(__name__)

DEFAULT_PURGE_DELAY_MS = 50


class PurgeThrottler:
    session: Session
    delay_ms: int

    def __init__(self, session: Session, delay_ms: int = DEFAULT_PURGE_DELAY_MS):
        if delay_ms < 0:
            raise ValueError("Purge delay cannot be negative")
        self.session = session
        self.delay_ms = delay_ms
        self.skipped = 0

    async def drain(self, lines: Lines) -> int:
        """
        Clears the retained message of every topic in `lines`.
        Lines that are not valid publish topics are logged and skipped.
        Returns the number of topics cleared.
        """
        # TODO: publish failures are not detected, so a purge can report topics it never cleared
        cleared = 0
        issued = 0
        number = 0
        async for line in iterate_lines(lines):
            number += 1
            topic = line.strip()
            if not topic:
                continue
            if issued:
                await asyncio.sleep(self.delay_ms / 1000)
            issued += 1
            try:
                await self.session.publish(topic, None, retain=True)
            except ValueError as e:
                logger.warning(f"Skipping invalid topic on line {number} ({topic!r}): {e}")
                self.skipped += 1
                continue
            logger.info(f"purged {topic}")
            cleared += 1
        logger.info(f"Purge finished, {cleared} topics cleared, {self.skipped} skipped.")
        return cleared
