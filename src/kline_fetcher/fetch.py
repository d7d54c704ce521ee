"""
Per-file fetch task: GET an archive and stream it to disk.

Provides ArchiveFetcher, which runs one descriptor through:
1. HTTP GET against the archive host
2. Response status check
3. Opening the local file under the overwrite policy
4. Streaming the body to disk chunk by chunk

Every outcome is reported through the event sender; nothing is raised to
the caller and nothing is retried here.
"""

import asyncio
import logging
import time
from typing import Optional

import aiofiles
import aiohttp

from core.errors import (
    FetchError,
    FileExistsConflictError,
    FileNotFoundAtHostError,
    FileOpenError,
    FileWriteError,
    RequestSendError,
)
from core.logging.setup import get_logger
from core.logging.utilities import log_with_context
from kline_fetcher.channel import EventSender
from kline_fetcher.schemas.descriptors import FileDescriptor
from kline_fetcher.schemas.events import Done, Failed, Starting, Written

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024  # 64KB


def create_session(
    max_connections_per_host: int,
    timeout_seconds: Optional[float] = None,
) -> aiohttp.ClientSession:
    """
    Create the HTTP session shared by every fetch of a run.

    Args:
        max_connections_per_host: Connector limit towards the archive host
        timeout_seconds: Total request timeout (None = aiohttp default)

    Returns:
        aiohttp.ClientSession; the caller owns and closes it
    """
    connector = aiohttp.TCPConnector(limit_per_host=max_connections_per_host)
    if timeout_seconds is not None:
        return aiohttp.ClientSession(
            connector=connector,
            timeout=aiohttp.ClientTimeout(total=timeout_seconds),
        )
    return aiohttp.ClientSession(connector=connector)


class ArchiveFetcher:
    """
    Downloads one archive per call and reports progress as events.

    The session is shared across concurrent calls; each call touches only
    its own descriptor's local path.

    Usage:
        async with create_session(max_connections_per_host=8) as session:
            fetcher = ArchiveFetcher(session)
            with channel.sender() as sender:
                await fetcher.fetch(descriptor, sender, overwrite=False)
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self._session = session
        self.chunk_size = chunk_size

    async def fetch(
        self,
        descriptor: FileDescriptor,
        sender: EventSender,
        overwrite: bool = False,
    ) -> bool:
        """
        Fetch descriptor's archive into its local path.

        Args:
            descriptor: What to download and where to put it
            sender: Event sink for Starting/Written/Done/Failed
            overwrite: Replace an existing local file instead of failing

        Returns:
            True when Done was emitted, False when Failed was emitted
        """
        start_time = time.perf_counter()
        sequence_id = descriptor.sequence_id

        log_with_context(
            logger,
            logging.DEBUG,
            "Requesting archive",
            sequence_id=sequence_id,
            download_url=descriptor.url,
            overwrite=overwrite,
        )

        try:
            async with self._session.get(descriptor.url) as response:
                error = await self._stream_response(
                    descriptor, response, sender, overwrite
                )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            error = RequestSendError(
                f"Failed to send request for {descriptor.display_name}",
                cause=e,
                context={"url": descriptor.url},
            )

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

        if error is not None:
            log_with_context(
                logger,
                logging.WARNING,
                "Archive fetch failed",
                sequence_id=sequence_id,
                download_url=descriptor.url,
                error_kind=error.kind.value,
                error_category=error.category.value,
                error_message=str(error),
                duration_ms=duration_ms,
            )
            sender.send(Failed(sequence_id, descriptor, error))
            return False

        log_with_context(
            logger,
            logging.INFO,
            "Archive downloaded",
            sequence_id=sequence_id,
            local_path=str(descriptor.local_path),
            duration_ms=duration_ms,
        )
        sender.send(Done(sequence_id))
        return True

    async def _stream_response(
        self,
        descriptor: FileDescriptor,
        response: aiohttp.ClientResponse,
        sender: EventSender,
        overwrite: bool,
    ) -> Optional[FetchError]:
        """
        Validate the response, open the file and stream the body.

        Returns:
            None on success, otherwise the error to report
        """
        sequence_id = descriptor.sequence_id

        if not 200 <= response.status < 300:
            return FileNotFoundAtHostError(
                f"Could not find {descriptor.file_name} at host (HTTP {response.status})",
                status_code=response.status,
                context={"url": descriptor.url},
            )

        mode = "wb" if overwrite else "xb"
        try:
            handle = await aiofiles.open(descriptor.local_path, mode)
        except FileExistsError as e:
            return FileExistsConflictError(
                f"{descriptor.local_path} already exists",
                cause=e,
                context={"local_path": str(descriptor.local_path)},
            )
        except OSError as e:
            return FileOpenError(
                f"Could not open {descriptor.local_path} for writing",
                cause=e,
                context={"local_path": str(descriptor.local_path)},
            )

        sender.send(
            Starting(sequence_id, descriptor.display_name, response.content_length)
        )

        error: Optional[FetchError] = None
        try:
            error = await self._write_body(descriptor, response, handle, sender)
        finally:
            try:
                await handle.close()
            except OSError as e:
                if error is None:
                    error = FileWriteError(
                        f"Failed to flush {descriptor.local_path}",
                        cause=e,
                        context={"local_path": str(descriptor.local_path)},
                    )
        return error

    async def _write_body(
        self,
        descriptor: FileDescriptor,
        response: aiohttp.ClientResponse,
        handle,
        sender: EventSender,
    ) -> Optional[FetchError]:
        """Copy the response body into handle, one Written event per chunk."""
        sequence_id = descriptor.sequence_id
        bytes_written = 0
        chunks = response.content.iter_chunked(self.chunk_size).__aiter__()

        while True:
            try:
                chunk = await chunks.__anext__()
            except StopAsyncIteration:
                break
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                return FileWriteError(
                    f"Download of {descriptor.file_name} was interrupted "
                    f"after {bytes_written} bytes",
                    cause=e,
                    context={"local_path": str(descriptor.local_path)},
                )

            try:
                await handle.write(chunk)
            except OSError as e:
                return FileWriteError(
                    f"Failed to write to {descriptor.local_path} "
                    f"after {bytes_written} bytes",
                    cause=e,
                    context={"local_path": str(descriptor.local_path)},
                )
            bytes_written += len(chunk)
            sender.send(Written(sequence_id, len(chunk)))

        log_with_context(
            logger,
            logging.DEBUG,
            "Archive body streamed",
            sequence_id=sequence_id,
            http_status=response.status,
            content_length=response.content_length,
            bytes_written=bytes_written,
        )
        return None
