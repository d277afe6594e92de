"""Tests for the in-process event bus and its message types."""

from datetime import date

from pydantic import TypeAdapter

from daygrid.models.task import ScheduledTask
from daygrid.sync.bus import EventBus
from daygrid.sync.events import AnySyncEvent, SlotsUpdated, TaskUpserted, ViewMounted


class TestEventBus:
    """Test publish/subscribe delivery."""

    def test_delivers_to_every_subscriber(self):
        """Test every subscriber gets each event."""
        bus = EventBus()
        seen_a, seen_b = [], []
        bus.subscribe(seen_a.append)
        bus.subscribe(seen_b.append)
        event = SlotsUpdated(origin="day-1", labels=["Morning"])
        bus.publish(event)
        assert seen_a == [event]
        assert seen_b == [event]

    def test_unsubscribe(self):
        """Test unsubscribed handlers stop receiving."""
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe(seen.append)
        unsubscribe()
        bus.publish(SlotsUpdated(origin="day-1", labels=[]))
        assert seen == []
        assert bus.subscriber_count == 0

    def test_reentrant_publish_keeps_order(self):
        """Test that a message published from a handler is delivered after the current one."""
        bus = EventBus()
        order = []

        def replier(event):
            order.append(("replier", event.kind))
            if isinstance(event, ViewMounted):
                bus.publish(SlotsUpdated(origin="week-1", labels=[]))

        bus.subscribe(replier)
        bus.subscribe(lambda event: order.append(("observer", event.kind)))
        bus.publish(ViewMounted(origin="day-1", view_kind="day"))

        assert order == [
            ("replier", "view-mounted"),
            ("observer", "view-mounted"),
            ("replier", "slots-updated"),
            ("observer", "slots-updated"),
        ]


class TestSyncEvents:
    """Test that messages are tagged variants."""

    def test_discriminated_parse(self):
        """Test events parse back to their own type."""
        task = ScheduledTask(id="t1", owner_id="o", day=date(2024, 1, 1), slot="Morning")
        payload = TaskUpserted(origin="day-1", task=task).model_dump(mode="json")
        parsed = TypeAdapter(AnySyncEvent).validate_python(payload)
        assert isinstance(parsed, TaskUpserted)
        assert parsed.task == task
