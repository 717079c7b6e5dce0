"""
Pytest Configuration and Fixtures for the mqtt_tool project.

Provides a recording stand-in for the broker session so commands and the
purge/restore loops can be tested without a broker.
"""

import sys
import logging
from typing import List, Optional, Tuple

import pytest

from mqtt_tool.client.models import Delivery


class RecordingSession:
    """Duck-typed `Session` that records what commands ask of it."""

    def __init__(self):
        self.published: List[Tuple[str, Optional[bytes], bool]] = []
        self.subscribed: List[Tuple[str, bool]] = []
        self.handler = None

    def on_message(self, handler):
        if self.handler is not None:
            raise RuntimeError("A message handler is already registered on this session")
        self.handler = handler
        return handler

    async def subscribe(self, topic_filter: str, retain_as_published: bool = False):
        self.subscribed.append((topic_filter, retain_as_published))

    async def publish(self, topic: str, payload, retain: bool = False):
        # same check paho applies before anything is sent
        if "+" in topic or "#" in topic:
            raise ValueError("Publish topic cannot contain wildcards.")
        self.published.append((topic, payload, retain))

    async def join(self):
        return None

    async def deliver(self, topic: str, payload: bytes, retain: bool = False, **kwargs):
        await self.handler(Delivery(topic=topic, payload=payload, retain=retain, **kwargs))


@pytest.fixture
def recording_session():
    return RecordingSession()


@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """
    Configures the Python logging framework globally for all tests.
    Because tests bypass main.py, this ensures our logs are formatted
    and visible during test runs.
    """
    formatter = logging.Formatter(fmt="%(levelname)-8s %(message)s - %(funcName)s:%(lineno)d ")
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
