"""
Unbounded multi-sender, single-receiver event channel.

asyncio.Queue has no notion of "all producers are gone", so the channel
counts sender handles. Once spawning is finished the channel is sealed;
when the last sender is released afterwards, a close marker is queued and
the receiver's iteration ends after draining everything sent before it.
"""

import asyncio
from typing import AsyncIterator, Optional

from kline_fetcher.schemas.events import ProgressEvent

_CLOSED = object()


class ChannelClosedError(RuntimeError):
    """Raised when sending on a released handle or opening a sealed channel."""


class EventSender:
    """
    One producer's handle on an EventChannel.

    Usable as a context manager; leaving the block releases the handle.
    Releasing is idempotent.
    """

    def __init__(self, channel: "EventChannel"):
        self._channel = channel
        self._released = False

    def send(self, event: ProgressEvent) -> None:
        if self._released:
            raise ChannelClosedError("send on a released event sender")
        self._channel._queue.put_nowait(event)

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._channel._release_sender()

    def __enter__(self) -> "EventSender":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class EventChannel:
    """
    Channel carrying progress events from many fetch tasks to one consumer.

    Usage:
        channel = EventChannel()
        for job in jobs:
            spawn(fetch(job, channel.sender()))
        channel.seal()
        async for event in channel:
            ...
    """

    def __init__(self) -> None:
        self._queue: "asyncio.Queue[object]" = asyncio.Queue()
        self._open_senders = 0
        self._sealed = False
        self._closed = False

    def sender(self) -> EventSender:
        """Create a new sender handle. Not allowed once the channel is sealed."""
        if self._sealed:
            raise ChannelClosedError("cannot open a sender on a sealed channel")
        self._open_senders += 1
        return EventSender(self)

    def seal(self) -> None:
        """No more senders will be created; close once all are released."""
        self._sealed = True
        self._maybe_close()

    @property
    def open_senders(self) -> int:
        return self._open_senders

    @property
    def closed(self) -> bool:
        return self._closed

    def _release_sender(self) -> None:
        self._open_senders -= 1
        self._maybe_close()

    def _maybe_close(self) -> None:
        if self._sealed and self._open_senders == 0 and not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def receive(self) -> Optional[ProgressEvent]:
        """Next event, or None once the channel is closed and drained."""
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the marker so repeated receives stay at end-of-stream
            self._queue.put_nowait(_CLOSED)
            return None
        return item  # type: ignore[return-value]

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self.receive()
            if event is None:
                return
            yield event
