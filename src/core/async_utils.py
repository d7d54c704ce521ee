"""
Signal-aware entry point for the fetcher's event loop.

SIGINT and SIGTERM cancel the running fetch; the batch runner then cancels
its per-file tasks and the caller sees a KeyboardInterrupt.
"""

import asyncio
import signal
import sys
from typing import Any, Coroutine, List, Optional, TypeVar

from core.logging.setup import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _install_handlers(
    loop: asyncio.AbstractEventLoop, task: asyncio.Task, received: List[int]
) -> List[int]:
    """Route shutdown signals to task.cancel(). Returns the signals installed."""
    if sys.platform == "win32":
        return []

    def on_signal(signum: int) -> None:
        received.append(signum)
        logger.warning(f"Received {signal.Signals(signum).name}, cancelling downloads")
        if not task.done():
            task.cancel()

    installed = []
    for signum in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(signum, on_signal, signum)
        except (ValueError, RuntimeError, NotImplementedError):
            # Not the main thread
            continue
        installed.append(signum)
    return installed


def _remove_handlers(loop: asyncio.AbstractEventLoop, installed: List[int]) -> None:
    for signum in installed:
        try:
            loop.remove_signal_handler(signum)
        except (ValueError, RuntimeError):
            logger.debug(f"Could not remove handler for {signal.Signals(signum).name}")


def run_async_with_shutdown(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run coro to completion, converting a shutdown signal into KeyboardInterrupt.

    Raises:
        KeyboardInterrupt: When SIGINT or SIGTERM arrived while coro was running
    """

    async def guarded() -> T:
        loop = asyncio.get_running_loop()
        task: Optional[asyncio.Task] = asyncio.current_task()
        received: List[int] = []
        installed = _install_handlers(loop, task, received) if task else []
        try:
            return await coro
        except asyncio.CancelledError:
            if received:
                name = signal.Signals(received[0]).name
                raise KeyboardInterrupt(f"{name} received during fetch") from None
            raise
        finally:
            _remove_handlers(loop, installed)

    return asyncio.run(guarded())
