"""Observe a stack's event history as a stream of new events."""

from datetime import datetime
from typing import Iterator, List, Optional, Set

from botocore.exceptions import BotoCoreError, ClientError

from stackup.stack.models import StackEvent
from stackup.utils.errors import ErrorContext, client_error_message, error_handler
from stackup.utils.logging import get_logger
from stackup.utils.polling import DEFAULT_POLL_INTERVAL

logger = get_logger(__name__)


def _newest_first(events: List[StackEvent]) -> bool:
    # A single event says nothing about page order
    return len(events) > 1 and all(a.timestamp >= b.timestamp for a, b in zip(events, events[1:]))


class EventWatcher:
    """Yields each newly observed stack event exactly once, oldest first.

    The watcher performs one blocking ``DescribeStackEvents`` fetch (all
    pages up to the last seen event) per call to :meth:`new_events`; it never
    sleeps. Callers are expected to poll at ``poll_interval`` seconds.

    The watermark is the latest event timestamp yielded so far together with
    the ids of events already seen; events older than the watermark are
    dropped so the stream never goes backwards.
    """

    poll_interval = DEFAULT_POLL_INTERVAL

    def __init__(self, cloudformation, stack_name: str, from_start: bool = False):
        """Initialize a watch session.

        Args:
            cloudformation: boto3 CloudFormation client
            stack_name: Stack name or unique stack id
            from_start: Replay the full history instead of only future events
        """
        self.cloudformation = cloudformation
        self.stack_name = stack_name
        self._watermark: Optional[datetime] = None
        self._seen_ids: Set[str] = set()
        if not from_start:
            self.zero()

    @property
    def watermark(self) -> Optional[datetime]:
        return self._watermark

    def zero(self) -> None:
        """Move the cursor to "now": everything currently logged counts as seen."""
        for event in self._fetch():
            self._mark_seen(event)
        logger.debug(f"Event watermark for {self.stack_name}: {self._watermark}")

    def new_events(self) -> List[StackEvent]:
        """Fetch the event log and return unseen events in ascending order."""
        fresh = []
        for event in sorted(self._fetch(), key=lambda e: e.timestamp):
            if event.event_id in self._seen_ids:
                continue
            if self._watermark is not None and event.timestamp < self._watermark:
                logger.debug(f"Dropping out-of-order event {event.event_id}")
                self._seen_ids.add(event.event_id)
                continue
            self._mark_seen(event)
            fresh.append(event)
        return fresh

    def __iter__(self) -> Iterator[StackEvent]:
        return iter(self.new_events())

    def _mark_seen(self, event: StackEvent) -> None:
        self._seen_ids.add(event.event_id)
        if self._watermark is None or event.timestamp > self._watermark:
            self._watermark = event.timestamp

    def _fetch(self) -> List[StackEvent]:
        """Read event pages, stopping at the first page that reaches seen events."""
        events: List[StackEvent] = []
        try:
            paginator = self.cloudformation.get_paginator("describe_stack_events")
            for page in paginator.paginate(StackName=self.stack_name):
                page_events = [StackEvent.from_api(e) for e in page.get("StackEvents", [])]
                events.extend(page_events)
                # Later pages of a newest-first log only hold older events
                if _newest_first(page_events) and any(e.event_id in self._seen_ids for e in page_events):
                    break
        except (ClientError, BotoCoreError) as e:
            if isinstance(e, ClientError) and "does not exist" in client_error_message(e):
                return events
            raise error_handler.handle_exception(
                e, ErrorContext(stack_name=self.stack_name, operation="describe_stack_events")
            ) from e
        return events
