"""
Progress display used by the event aggregator.

One bar per in-flight file, keyed by sequence id. Files whose size the host
did not announce get a counter-style bar (no total) that still shows bytes
and rate.
"""

import sys
from typing import Dict, Optional, Protocol, TextIO

from tqdm import tqdm


class ProgressDisplay(Protocol):
    """Sink for per-file progress. Implementations are not thread-safe."""

    def start(self, sequence_id: int, name: str, total: Optional[int]) -> None:
        ...

    def advance(self, sequence_id: int, byte_count: int) -> None:
        ...

    def finish(self, sequence_id: int, message: str) -> None:
        ...

    def abandon(self, sequence_id: int, message: str) -> None:
        ...

    def close(self) -> None:
        ...


class TqdmProgressDisplay:
    """
    tqdm-backed display: one bar per file, bytes with scaled units.

    Bars are removed from the screen when they finish; a short line with the
    final message is written in their place.
    """

    def __init__(self, stream: Optional[TextIO] = None, disable: bool = False):
        self._stream = stream or sys.stderr
        self._disable = disable
        self._bars: Dict[int, tqdm] = {}

    def start(self, sequence_id: int, name: str, total: Optional[int]) -> None:
        self._bars[sequence_id] = tqdm(
            total=total,
            desc=name,
            unit="B",
            unit_scale=True,
            unit_divisor=1024,
            leave=False,
            file=self._stream,
            disable=self._disable,
        )

    def advance(self, sequence_id: int, byte_count: int) -> None:
        bar = self._bars.get(sequence_id)
        if bar is not None:
            bar.update(byte_count)

    def finish(self, sequence_id: int, message: str) -> None:
        self._close_bar(sequence_id, message)

    def abandon(self, sequence_id: int, message: str) -> None:
        # Failures before Starting have no bar
        self._close_bar(sequence_id, message)

    def close(self) -> None:
        for sequence_id in list(self._bars):
            self._close_bar(sequence_id, None)

    def _close_bar(self, sequence_id: int, message: Optional[str]) -> None:
        bar = self._bars.pop(sequence_id, None)
        name = bar.desc if bar is not None else f"#{sequence_id}"
        if bar is not None:
            bar.close()
        if message and not self._disable:
            tqdm.write(f"{name}: {message}", file=self._stream)


class NullProgressDisplay:
    """Display that ignores everything (quiet runs and tests)."""

    def start(self, sequence_id: int, name: str, total: Optional[int]) -> None:
        pass

    def advance(self, sequence_id: int, byte_count: int) -> None:
        pass

    def finish(self, sequence_id: int, message: str) -> None:
        pass

    def abandon(self, sequence_id: int, message: str) -> None:
        pass

    def close(self) -> None:
        pass
