import asyncio

import pytest

from league.services.event_bus import EventBus, EventType


@pytest.fixture
async def bus():
    event_bus = EventBus(max_queue_size=10)
    await event_bus.start()
    yield event_bus
    await event_bus.stop()


async def test_handlers_run_in_subscription_order(bus):
    calls = []

    async def first(event):
        calls.append(('first', event.payload['fight_id']))

    async def second(event):
        calls.append(('second', event.payload['fight_id']))

    bus.subscribe(EventType.FIGHT_DECIDED, first)
    bus.subscribe(EventType.FIGHT_DECIDED, second)

    assert await bus.emit(EventType.FIGHT_DECIDED, {'fight_id': 1})
    assert await bus.emit(EventType.FIGHT_DECIDED, {'fight_id': 2})
    await bus.wait_until_idle()

    assert calls == [('first', 1), ('second', 1), ('first', 2), ('second', 2)]


async def test_cascaded_events_finish_before_idle(bus):
    seen = []

    async def on_completed(event):
        seen.append(event.event_type)
        await bus.emit(EventType.RANKINGS_UPDATED, {'version': 1})

    async def on_rankings(event):
        seen.append(event.event_type)

    bus.subscribe(EventType.SEASON_COMPLETED, on_completed)
    bus.subscribe(EventType.RANKINGS_UPDATED, on_rankings)

    await bus.emit(EventType.SEASON_COMPLETED, {})
    await bus.wait_until_idle()

    assert seen == [EventType.SEASON_COMPLETED, EventType.RANKINGS_UPDATED]
    assert bus.pending_count == 0


async def test_failing_handler_does_not_stop_the_consumer(bus):
    handled = []

    async def broken(event):
        raise RuntimeError("boom")

    async def healthy(event):
        handled.append(event.payload)

    bus.subscribe(EventType.SEASON_DATA_CHANGED, broken)
    bus.subscribe(EventType.SEASON_DATA_CHANGED, healthy)

    await bus.emit(EventType.SEASON_DATA_CHANGED, {'competition_id': 1})
    await bus.emit(EventType.SEASON_DATA_CHANGED, {'competition_id': 2})
    await bus.wait_until_idle()

    assert handled == [{'competition_id': 1}, {'competition_id': 2}]
    assert [event.payload for event in bus.failed_events] == [{'competition_id': 1}, {'competition_id': 2}]
    assert bus.is_running


async def test_events_without_handlers_are_consumed(bus):
    await bus.emit(EventType.CUP_FIGHT_DECIDED, {'fight_id': 1})
    await asyncio.wait_for(bus.wait_until_idle(), timeout=1)
    assert bus.failed_events == []


async def test_full_queue_drops_events():
    bus = EventBus(max_queue_size=1)
    assert await bus.emit(EventType.FIGHT_DECIDED, {'fight_id': 1})
    assert not await bus.emit(EventType.FIGHT_DECIDED, {'fight_id': 2})
    assert bus.pending_count == 1


async def test_stop_drains_queued_events():
    bus = EventBus()
    handled = []

    async def handler(event):
        handled.append(event.payload['fight_id'])

    bus.subscribe(EventType.FIGHT_DECIDED, handler)
    await bus.emit(EventType.FIGHT_DECIDED, {'fight_id': 1})
    await bus.emit(EventType.FIGHT_DECIDED, {'fight_id': 2})

    await bus.start()
    await bus.stop()

    assert handled == [1, 2]
    assert not bus.is_running
    # Stopping twice is harmless
    await bus.stop()


async def test_stop_dispatches_events_emitted_while_draining():
    bus = EventBus()
    seen = []

    async def on_completed(event):
        await asyncio.sleep(0)
        await bus.emit(EventType.RANKINGS_UPDATED, {'version': 1})

    async def on_rankings(event):
        seen.append(event.payload['version'])

    bus.subscribe(EventType.SEASON_COMPLETED, on_completed)
    bus.subscribe(EventType.RANKINGS_UPDATED, on_rankings)
    await bus.start()

    await bus.emit(EventType.SEASON_COMPLETED, {})
    await bus.stop()

    assert seen == [1]
    assert bus.pending_count == 0
    assert bus.failed_events == []
