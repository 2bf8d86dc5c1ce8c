import asyncio

import pytest

from rocketdriver.bus.queue import LifecycleEvents


@pytest.mark.asyncio
async def test_publish_reaches_sync_and_async_subscribers():
    events = LifecycleEvents()
    seen = []

    async def on_async(name):
        seen.append(("async", name))

    events.subscribe("connected", lambda name: seen.append(("sync", name)))
    events.subscribe("connected", on_async)

    await events.publish("connected", "bot")

    assert seen == [("sync", "bot"), ("async", "bot")]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_block_others():
    events = LifecycleEvents()
    seen = []

    def broken():
        raise RuntimeError("boom")

    events.subscribe("disconnected", broken)
    events.subscribe("disconnected", lambda: seen.append(True))

    await events.publish("disconnected")

    assert seen == [True]


@pytest.mark.asyncio
async def test_emit_schedules_publish():
    events = LifecycleEvents()
    seen = []
    events.subscribe("connected", lambda: seen.append(True))

    events.emit("connected")
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert seen == [True]


def test_unsubscribe():
    events = LifecycleEvents()
    callback = lambda: None  # noqa: E731
    events.subscribe("connected", callback)

    events.unsubscribe("connected", callback)
    events.unsubscribe("connected", callback)

    assert events.subscriber_count("connected") == 0
