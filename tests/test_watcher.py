"""
Tests for stack event watching.
"""

import pytest
from botocore.exceptions import EndpointConnectionError

from conftest import client_error, event_pages, stack_event, stack_missing
from stackup.stack.watcher import EventWatcher
from stackup.utils.errors import ServiceError


class TestEventWatcher:
    """Test event stream semantics."""

    def test_zero_marks_existing_events_seen(self, cloudformation) -> None:
        """Test that a fresh watcher only reports events logged after it started."""
        old = [stack_event("e2", 2), stack_event("e1", 1)]
        new = [stack_event("e3", 3)] + old
        cloudformation.get_paginator.return_value.paginate.side_effect = [
            event_pages(old),
            event_pages(new),
        ]

        watcher = EventWatcher(cloudformation, "demo")
        events = watcher.new_events()

        assert [e.event_id for e in events] == ["e3"]
        cloudformation.get_paginator.assert_called_with("describe_stack_events")

    def test_from_start_replays_history_oldest_first(self, cloudformation) -> None:
        """Test replay of the full history in ascending order."""
        cloudformation.get_paginator.return_value.paginate.return_value = event_pages(
            [stack_event("e3", 3), stack_event("e2", 2), stack_event("e1", 1)]
        )

        watcher = EventWatcher(cloudformation, "demo", from_start=True)

        assert [e.event_id for e in watcher.new_events()] == ["e1", "e2", "e3"]

    def test_growing_log_yields_each_event_once(self, cloudformation) -> None:
        """Test that repeated fetches of a growing log never duplicate events."""
        e1, e2, e3, e4 = (stack_event(f"e{i}", i) for i in range(1, 5))
        cloudformation.get_paginator.return_value.paginate.side_effect = [
            event_pages([e1]),
            event_pages([e2, e1]),
            event_pages([e2, e1]),
            event_pages([e4, e3, e2, e1]),
        ]

        watcher = EventWatcher(cloudformation, "demo", from_start=True)
        seen = []
        for _ in range(4):
            seen.extend(e.event_id for e in watcher.new_events())

        assert seen == ["e1", "e2", "e3", "e4"]

    def test_reads_all_pages_of_new_events(self, cloudformation) -> None:
        """Test that events spread over several pages are all reported."""
        cloudformation.get_paginator.return_value.paginate.side_effect = [
            event_pages([stack_event("e1", 1)]),
            event_pages(
                [stack_event("e5", 5), stack_event("e4", 4)],
                [stack_event("e3", 3), stack_event("e2", 2)],
                [stack_event("e1", 1)],
            ),
        ]

        watcher = EventWatcher(cloudformation, "demo")

        assert [e.event_id for e in watcher.new_events()] == ["e2", "e3", "e4", "e5"]

    def test_stops_reading_at_page_with_seen_event(self, cloudformation) -> None:
        """Test that pagination stops once already-seen events are reached."""
        old_page = [stack_event("e2", 2), stack_event("e1", 1)]

        def pages(**kwargs):
            yield {"StackEvents": [stack_event("e4", 4), stack_event("e3", 3)]}
            yield {"StackEvents": old_page}
            raise AssertionError("read past the seen events")

        cloudformation.get_paginator.return_value.paginate.side_effect = [
            event_pages(old_page),
            pages(),
        ]

        watcher = EventWatcher(cloudformation, "demo")

        assert [e.event_id for e in watcher.new_events()] == ["e3", "e4"]

    def test_watermark_tracks_latest_event(self, cloudformation) -> None:
        """Test the cursor position."""
        cloudformation.get_paginator.return_value.paginate.return_value = event_pages(
            [stack_event("e2", 20), stack_event("e1", 10)]
        )

        watcher = EventWatcher(cloudformation, "demo")

        assert watcher.watermark == stack_event("e2", 20)["Timestamp"]

    def test_events_older_than_watermark_are_dropped(self, cloudformation) -> None:
        """Test that late-arriving old events do not move the stream backwards."""
        cloudformation.get_paginator.return_value.paginate.side_effect = [
            event_pages([stack_event("e2", 20)]),
            event_pages([stack_event("e3", 30), stack_event("e2", 20), stack_event("late", 5)]),
        ]

        watcher = EventWatcher(cloudformation, "demo")

        assert [e.event_id for e in watcher.new_events()] == ["e3"]

    def test_absent_stack_has_no_events(self, cloudformation) -> None:
        """Test that a missing stack yields an empty stream."""
        cloudformation.get_paginator.return_value.paginate.side_effect = stack_missing()

        watcher = EventWatcher(cloudformation, "demo")

        assert watcher.new_events() == []
        assert watcher.watermark is None

    def test_other_errors_are_converted(self, cloudformation) -> None:
        """Test that remote failures surface as ServiceError."""
        cloudformation.get_paginator.return_value.paginate.side_effect = client_error(
            "Throttling", "Rate exceeded", "DescribeStackEvents"
        )

        with pytest.raises(ServiceError) as exc_info:
            EventWatcher(cloudformation, "demo", from_start=True).new_events()

        assert exc_info.value.context.error_code == "Throttling"
        assert exc_info.value.context.stack_name == "demo"

    def test_transport_failures_are_converted(self, cloudformation) -> None:
        """Test that a connection failure while reading events surfaces as ServiceError."""
        cloudformation.get_paginator.return_value.paginate.side_effect = EndpointConnectionError(
            endpoint_url="https://cloudformation.us-east-1.amazonaws.com"
        )
        watcher = EventWatcher(cloudformation, "demo", from_start=True)

        with pytest.raises(ServiceError) as exc_info:
            watcher.new_events()

        assert isinstance(exc_info.value.cause, EndpointConnectionError)
        assert exc_info.value.context.operation == "describe_stack_events"

    def test_iteration_returns_new_events(self, cloudformation) -> None:
        """Test iterating over the watcher."""
        cloudformation.get_paginator.return_value.paginate.return_value = event_pages(
            [stack_event("e1", 1)]
        )

        watcher = EventWatcher(cloudformation, "demo", from_start=True)

        assert [e.event_id for e in watcher] == ["e1"]
        assert list(watcher) == []
