"""
Tests for the event bus.
"""

import logging

import pytest

from accountlink.core.events import (
    BINDING_BOUND,
    BINDING_CLOSED,
    SESSION_UPDATED,
    Event,
    EventBus,
    get_event_bus,
    reset_event_bus,
)


class TestEventBus:
    @pytest.mark.asyncio
    async def test_wildcard_subscription(self):
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event.event_type)

        bus.subscribe("binding.*", handler)
        await bus.publish(Event(event_type=BINDING_BOUND))
        await bus.publish(Event(event_type=SESSION_UPDATED))

        assert seen == [BINDING_BOUND]

    @pytest.mark.asyncio
    async def test_user_filter(self):
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event.user_id)

        bus.subscribe(BINDING_BOUND, handler, user_id="42")
        await bus.publish(Event(event_type=BINDING_BOUND, user_id="42"))
        await bus.publish(Event(event_type=BINDING_BOUND, user_id="7"))

        assert seen == ["42"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self):
        bus = EventBus()
        seen = []

        async def broken(event):
            raise RuntimeError("boom")

        async def fine(event):
            seen.append(event.id)

        bus.subscribe("*", broken)
        bus.subscribe("*", fine)
        delivered = await bus.publish(Event(event_type=SESSION_UPDATED))

        assert delivered == 1
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_failing_handler_is_logged_once(self, caplog):
        bus = EventBus()

        async def broken(event):
            raise RuntimeError("boom")

        bus.subscribe("*", broken)
        with caplog.at_level(logging.DEBUG):
            await bus.publish(Event(event_type=BINDING_BOUND))

        errors = [r for r in caplog.records if r.levelno >= logging.ERROR]
        assert len(errors) == 1
        assert errors[0].exc_info is not None

    @pytest.mark.asyncio
    async def test_handler_may_unsubscribe_itself(self):
        bus = EventBus()
        calls = []

        async def once(event):
            calls.append(event)
            bus.unsubscribe(subscription)

        subscription = bus.subscribe(BINDING_CLOSED, once)
        await bus.publish(Event(event_type=BINDING_CLOSED))
        await bus.publish(Event(event_type=BINDING_CLOSED))

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_history_is_bounded(self):
        bus = EventBus(max_history=3)
        for i in range(5):
            await bus.publish(Event(event_type=BINDING_BOUND, payload={"n": i}))

        assert [e.payload["n"] for e in bus.get_history()] == [2, 3, 4]
        assert len(bus.get_history(limit=2)) == 2

    @pytest.mark.asyncio
    async def test_history_filters(self):
        bus = EventBus()
        await bus.publish(Event(event_type=BINDING_BOUND, user_id="42"))
        await bus.publish(Event(event_type=BINDING_CLOSED, user_id="7"))
        await bus.publish(Event(event_type=SESSION_UPDATED, user_id="42"))

        assert len(bus.get_history("binding.*")) == 2
        assert len(bus.get_history(user_id="42")) == 2
        bus.clear_history()
        assert bus.get_history() == []

    def test_event_ids_and_topic(self):
        first = Event(event_type=BINDING_BOUND)
        second = Event(event_type=SESSION_UPDATED)

        assert first.id != second.id
        assert first.id.startswith("evt_")
        assert first.topic == "binding"
        assert second.topic == "session"

    def test_default_bus_singleton(self):
        reset_event_bus()
        first = get_event_bus()
        assert get_event_bus() is first
        reset_event_bus()
        assert get_event_bus() is not first
