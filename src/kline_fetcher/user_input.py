"""Yes/no prompts used by the retry controller."""

import asyncio
import sys
from enum import Enum
from typing import Protocol


class UserAnswer(Enum):
    YES = "yes"
    NO = "no"
    UNRECOGNIZED = "unrecognized"


_YES = {"y", "yes"}
_NO = {"n", "no"}


def parse_answer(raw: str) -> UserAnswer:
    """Map y/yes/n/no (any case, surrounding whitespace ignored) to an answer."""
    text = raw.strip().lower()
    if text in _YES:
        return UserAnswer.YES
    if text in _NO:
        return UserAnswer.NO
    return UserAnswer.UNRECOGNIZED


class UserPrompt(Protocol):
    async def prompt(self, message: str) -> UserAnswer:
        ...


class ConsolePrompt:
    """
    Reads answers from stdin without blocking the event loop.

    End of input (closed stdin) counts as an unrecognized answer.
    """

    def __init__(self, stream=None):
        self._stream = stream or sys.stderr

    async def prompt(self, message: str) -> UserAnswer:
        self._stream.write(f"{message} [y/n] ")
        self._stream.flush()
        try:
            raw = await asyncio.to_thread(sys.stdin.readline)
        except (OSError, ValueError):
            return UserAnswer.UNRECOGNIZED
        if not raw:
            return UserAnswer.UNRECOGNIZED
        return parse_answer(raw)
