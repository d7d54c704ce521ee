"""
Progress events emitted by fetch tasks and consumed by the aggregator.

Events for one sequence id arrive in order: at most one Starting, any number
of Written, then exactly one Done or Failed. Events of different ids
interleave arbitrarily.

Plain frozen dataclasses: these are created per chunk, so they skip
pydantic validation.
"""

from dataclasses import dataclass
from typing import Optional, Union

from core.errors import FetchError, FetchErrorKind
from kline_fetcher.schemas.descriptors import FileDescriptor


@dataclass(frozen=True)
class Starting:
    """Local file opened and response accepted; streaming is about to begin."""

    sequence_id: int
    display_name: str
    total_bytes: Optional[int] = None


@dataclass(frozen=True)
class Written:
    """One chunk persisted to disk."""

    sequence_id: int
    byte_count: int


@dataclass(frozen=True)
class Done:
    """Body exhausted without error."""

    sequence_id: int


@dataclass(frozen=True)
class Failed:
    """Terminal failure of one fetch."""

    sequence_id: int
    descriptor: FileDescriptor
    error: FetchError


ProgressEvent = Union[Starting, Written, Done, Failed]


@dataclass(frozen=True)
class FailureRecord:
    """A failed descriptor retained for the retry controller."""

    descriptor: FileDescriptor
    error: FetchError

    @property
    def kind(self) -> FetchErrorKind:
        return self.error.kind

    @property
    def sequence_id(self) -> int:
        return self.descriptor.sequence_id
