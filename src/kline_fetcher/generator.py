"""
Descriptor generator: tickers x calendar buckets -> file descriptors.
"""

import logging
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Set, Union

from core.errors import InvalidAddressError, ValidationError
from core.logging.setup import get_logger
from core.logging.utilities import log_with_context
from core.security.url_validation import (
    get_allowed_hosts,
    validate_download_url,
    validate_path_segment,
)
from kline_fetcher.calendar_cursor import CalendarCursor
from kline_fetcher.schemas.descriptors import FileDescriptor
from kline_fetcher.schemas.market import DailyPeriod, MonthlyPeriod, Ticker, TimeFrame

logger = get_logger(__name__)

ARCHIVE_EXTENSION = "zip"


def build_file_name(ticker: str, timeframe: str, bucket: str) -> str:
    """Conventional archive name: TICKER-TIMEFRAME-BUCKET.zip"""
    return f"{ticker}-{timeframe}-{bucket}.{ARCHIVE_EXTENSION}"


def build_archive_url(
    archive_root: str,
    period_kind: str,
    ticker: str,
    timeframe: str,
    bucket: str,
    allowed_hosts: Optional[Set[str]] = None,
) -> str:
    """
    Build and validate an archive address.

    Format:
        {archive_root}/{period_kind}/klines/{ticker}/{timeframe}/{ticker}-{timeframe}-{bucket}.zip

    Raises:
        InvalidAddressError: If any component or the resulting URL is malformed
    """
    for name, segment in (
        ("period kind", period_kind),
        ("ticker", ticker),
        ("timeframe", timeframe),
        ("bucket", bucket),
    ):
        is_valid, error = validate_path_segment(segment)
        if not is_valid:
            raise InvalidAddressError(
                f"Cannot build archive address from {name}: {error}",
                context={"component": name, "value": segment},
            )

    file_name = build_file_name(ticker, timeframe, bucket)
    url = f"{archive_root.rstrip('/')}/{period_kind}/klines/{ticker}/{timeframe}/{file_name}"

    is_valid, error = validate_download_url(url, allowed_hosts=allowed_hosts)
    if not is_valid:
        raise InvalidAddressError(
            f"Cannot build archive address {url!r}: {error}",
            context={"url": url},
        )
    return url


class DescriptorGenerator:
    """
    Lazily produces one FileDescriptor per (ticker, bucket).

    Order: every bucket of the first ticker, then every bucket of the second,
    and so on. Sequence ids start at 1 and increase by one across the whole
    generator.

    Usage:
        generator = DescriptorGenerator(
            tickers=[Ticker.parse("btcusdt")],
            timeframe=TimeFrame.M1,
            period=DailyPeriod(start=date(2025, 1, 1), end=date(2025, 1, 3)),
            archive_root="https://data.binance.vision/data/spot",
            output_dir=Path.cwd(),
        )
        descriptors = list(generator)
    """

    def __init__(
        self,
        tickers: Sequence[Ticker],
        timeframe: TimeFrame,
        period: Union[DailyPeriod, MonthlyPeriod],
        archive_root: str,
        output_dir: Path,
        allowed_hosts: Optional[Set[str]] = None,
    ):
        """
        Args:
            tickers: Symbols in the order their archives should be produced
            timeframe: Sampling granularity
            period: Daily or monthly period
            archive_root: Base URL, e.g. https://data.binance.vision/data/spot
            output_dir: Directory the archives are written into
            allowed_hosts: Host allowlist (None = default plus KLINE_ALLOWED_HOSTS)

        Raises:
            ValidationError: If no tickers are given
        """
        if not tickers:
            raise ValidationError("At least one ticker is required")

        # Drop repeats in input order; case variants normalize to one Ticker
        self.tickers: List[Ticker] = list(dict.fromkeys(tickers))
        self.timeframe = timeframe
        self.period = period
        self.archive_root = archive_root
        self.output_dir = Path(output_dir)
        self.allowed_hosts = (
            allowed_hosts if allowed_hosts is not None else get_allowed_hosts()
        )

    def __iter__(self) -> Iterator[FileDescriptor]:
        cursor = CalendarCursor(self.period)
        sequence_id = 1
        period_kind = self.period.kind.value
        timeframe = self.timeframe.value

        for ticker in self.tickers:
            cursor.reset()
            for bucket_date in cursor:
                bucket = self.period.format_bucket(bucket_date)
                url = build_archive_url(
                    self.archive_root,
                    period_kind,
                    ticker.symbol,
                    timeframe,
                    bucket,
                    allowed_hosts=self.allowed_hosts,
                )
                descriptor = FileDescriptor(
                    url=url,
                    local_path=self.output_dir
                    / build_file_name(ticker.symbol, timeframe, bucket),
                    sequence_id=sequence_id,
                    ticker=ticker.symbol,
                    timeframe=self.timeframe,
                    period_kind=self.period.kind,
                    bucket=bucket,
                )
                log_with_context(
                    logger,
                    logging.DEBUG,
                    "Generated descriptor",
                    sequence_id=sequence_id,
                    download_url=url,
                    local_path=str(descriptor.local_path),
                )
                sequence_id += 1
                yield descriptor
