import asyncio
import time

import pytest

from mqtt_tool.retained.purge import PurgeThrottler

"""
Purge: one retained clear per topic, strictly in input order, paced by
the fixed delay.
"""


@pytest.mark.asyncio
async def test_clears_every_topic_in_order(recording_session):
    throttler = PurgeThrottler(recording_session, delay_ms=0)
    cleared = await throttler.drain(["a/b\n", "  c/d  \n", "e\n"])
    assert cleared == 3
    assert recording_session.published == [
        ("a/b", None, True),
        ("c/d", None, True),
        ("e", None, True),
    ]
    assert recording_session.subscribed == []


@pytest.mark.asyncio
async def test_blank_lines_are_skipped(recording_session):
    throttler = PurgeThrottler(recording_session, delay_ms=0)
    assert await throttler.drain(["\n", "a\n", "   \n"]) == 1


@pytest.mark.asyncio
async def test_paced_by_delay(recording_session):
    delay_ms = 20
    topics = [f"t/{i}" for i in range(4)]
    throttler = PurgeThrottler(recording_session, delay_ms=delay_ms)

    started = time.monotonic()
    await throttler.drain(topics)
    elapsed = time.monotonic() - started

    assert len(recording_session.published) == 4
    # (K - 1) pauses, small allowance for timer granularity
    assert elapsed >= (len(topics) - 1) * delay_ms / 1000 - 0.005


@pytest.mark.asyncio
async def test_waits_between_publishes(recording_session, mocker):
    sleep = mocker.patch("mqtt_tool.retained.purge.asyncio.sleep", new=mocker.AsyncMock())
    throttler = PurgeThrottler(recording_session, delay_ms=50)
    await throttler.drain(["a", "b", "c"])
    assert sleep.await_count == 2
    sleep.assert_awaited_with(0.05)


@pytest.mark.asyncio
async def test_empty_input(recording_session):
    assert await PurgeThrottler(recording_session).drain([]) == 0
    assert recording_session.published == []


def test_negative_delay_rejected(recording_session):
    with pytest.raises(ValueError):
        PurgeThrottler(recording_session, delay_ms=-1)


@pytest.mark.asyncio
async def test_wildcard_lines_are_skipped(recording_session, caplog):
    throttler = PurgeThrottler(recording_session, delay_ms=0)
    cleared = await throttler.drain(["a/1\n", "b/#\n", "c/1\n"])
    assert cleared == 2
    assert throttler.skipped == 1
    assert recording_session.published == [("a/1", None, True), ("c/1", None, True)]
    assert "line 2" in caplog.text
