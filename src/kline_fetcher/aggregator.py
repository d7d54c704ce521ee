"""
Event aggregator: the single consumer of a batch's event channel.

Translates progress events into display calls and collects failures for
the retry controller. The sequence id -> display name map lives here and
nowhere else.
"""

import logging
from typing import Dict, List, Set

from core.logging.setup import get_logger
from core.logging.utilities import log_with_context
from kline_fetcher import metrics
from kline_fetcher.channel import EventChannel
from kline_fetcher.progress import ProgressDisplay
from kline_fetcher.schemas.events import (
    Done,
    Failed,
    FailureRecord,
    ProgressEvent,
    Starting,
    Written,
)

logger = get_logger(__name__)


class EventAggregator:
    """
    Drains one channel per batch and keeps run-wide tallies.

    Usage:
        aggregator = EventAggregator(TqdmProgressDisplay())
        failures = await aggregator.drain(channel)
        print(aggregator.completed_count, aggregator.bytes_written)
    """

    def __init__(self, display: ProgressDisplay):
        self.display = display
        self._names: Dict[int, str] = {}
        self._completed: Set[int] = set()
        self.bytes_written = 0

    @property
    def completed_count(self) -> int:
        return len(self._completed)

    @property
    def completed_ids(self) -> Set[int]:
        return set(self._completed)

    async def drain(self, channel: EventChannel) -> List[FailureRecord]:
        """
        Consume events until the channel closes.

        Returns:
            Failure records in the order their Failed events arrived
            (empty list means every file of the batch completed)
        """
        failures: List[FailureRecord] = []
        async for event in channel:
            record = self.handle(event)
            if record is not None:
                failures.append(record)
        return failures

    def handle(self, event: ProgressEvent):
        """Apply one event; returns a FailureRecord for Failed events."""
        if isinstance(event, Starting):
            self._names[event.sequence_id] = event.display_name
            self.display.start(event.sequence_id, event.display_name, event.total_bytes)
        elif isinstance(event, Written):
            self.bytes_written += event.byte_count
            metrics.record_bytes_written(event.byte_count)
            self.display.advance(event.sequence_id, event.byte_count)
        elif isinstance(event, Done):
            self._completed.add(event.sequence_id)
            self._names.pop(event.sequence_id, None)
            self.display.finish(event.sequence_id, "Done")
        elif isinstance(event, Failed):
            name = self._names.pop(event.sequence_id, event.descriptor.display_name)
            error = event.error
            metrics.record_fetch_failure(error.kind.value)
            self.display.abandon(event.sequence_id, f"{error.kind.value}: {error.message}")
            log_with_context(
                logger,
                logging.DEBUG,
                "Recorded fetch failure",
                sequence_id=event.sequence_id,
                file_name=name,
                error_kind=error.kind.value,
            )
            return FailureRecord(event.descriptor, error)
        else:
            raise TypeError(f"Unknown progress event: {event!r}")
        return None
