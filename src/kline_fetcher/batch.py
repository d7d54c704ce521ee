"""
Batch runner: submit one working set of fetch jobs and await its outcome.

Each job runs as its own task, gated by a semaphore so at most
max_concurrency fetches are in flight. All tasks share one fresh event
channel; the channel is sealed once every task has been spawned, so the
aggregator stops exactly when the last task releases its sender.
"""

import asyncio
import logging
import time
from typing import List, Sequence

from core.logging.context import set_log_context
from core.logging.setup import generate_batch_id, get_logger
from core.logging.utilities import log_with_context
from kline_fetcher import metrics
from kline_fetcher.aggregator import EventAggregator
from kline_fetcher.channel import EventChannel, EventSender
from kline_fetcher.fetch import ArchiveFetcher
from kline_fetcher.schemas.descriptors import FetchJob
from kline_fetcher.schemas.events import FailureRecord

logger = get_logger(__name__)

DEFAULT_MAX_CONCURRENCY = 8


class BatchRunner:
    """
    Runs batches of FetchJobs against a shared fetcher and aggregator.

    Usage:
        runner = BatchRunner(fetcher, aggregator, max_concurrency=8)
        failures = await runner.run(jobs, batch_number=1)
    """

    def __init__(
        self,
        fetcher: ArchiveFetcher,
        aggregator: EventAggregator,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.fetcher = fetcher
        self.aggregator = aggregator
        self.max_concurrency = max_concurrency

    async def run(
        self, jobs: Sequence[FetchJob], batch_number: int = 1
    ) -> List[FailureRecord]:
        """
        Fetch every job of the batch.

        Args:
            jobs: Working set; each job carries its own overwrite flag
            batch_number: 1-based batch counter, used for the log batch id

        Returns:
            Failure records of this batch (empty when every job completed)
        """
        set_log_context(batch_id=generate_batch_id(batch_number))
        start_time = time.perf_counter()

        log_with_context(
            logger,
            logging.INFO,
            "Submitting batch",
            batch_number=batch_number,
            batch_size=len(jobs),
            max_concurrency=self.max_concurrency,
        )

        channel = EventChannel()
        semaphore = asyncio.Semaphore(self.max_concurrency)
        drain_task = asyncio.create_task(self.aggregator.drain(channel))

        tasks = [
            asyncio.create_task(self._run_job(job, channel.sender(), semaphore))
            for job in jobs
        ]
        channel.seal()

        try:
            failures = await drain_task
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            drain_task.cancel()
            raise

        duration = time.perf_counter() - start_time
        metrics.record_batch(duration)
        log_with_context(
            logger,
            logging.INFO,
            "Batch complete",
            batch_number=batch_number,
            batch_size=len(jobs),
            failures=len(failures),
            duration_ms=round(duration * 1000, 2),
        )
        return failures

    async def _run_job(
        self,
        job: FetchJob,
        sender: EventSender,
        semaphore: asyncio.Semaphore,
    ) -> None:
        with sender:
            async with semaphore:
                metrics.fetches_in_flight.inc()
                try:
                    completed = await self.fetcher.fetch(
                        job.descriptor, sender, overwrite=job.overwrite
                    )
                finally:
                    metrics.fetches_in_flight.dec()
        if completed:
            metrics.record_file_downloaded(job.descriptor.period_kind.value)
