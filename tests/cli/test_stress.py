import asyncio
import os

import pytest

from mqtt_tool.cli.stress import StressPublisher


@pytest.mark.asyncio
async def test_publishes_increasing_timestamps(recording_session):
    publisher = StressPublisher(recording_session, rate=200)
    task = asyncio.create_task(publisher.run())
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    await asyncio.sleep(0)

    assert publisher.published >= 2
    topics = {topic for topic, _, _ in recording_session.published}
    assert topics == {f"stress/{os.getpid()}"}
    assert all(retain is False for _, _, retain in recording_session.published)
    stamps = [int(payload) for _, payload, _ in recording_session.published]
    assert stamps == sorted(stamps)


def test_rate_must_be_positive(recording_session):
    with pytest.raises(ValueError):
        StressPublisher(recording_session, rate=0)


def test_custom_topic(recording_session):
    assert StressPublisher(recording_session, rate=1, topic="load/test").topic == "load/test"
