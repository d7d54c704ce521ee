"""
File descriptor schema: the unit of work for one fetch task.
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from kline_fetcher.schemas.market import PeriodKind, TimeFrame


class FileDescriptor(BaseModel):
    """Remote archive plus where it lands locally.

    Attributes:
        url: Fully built archive address
        local_path: Destination file
        sequence_id: Generation-order id correlating progress events
        ticker: Uppercased symbol the archive belongs to
        timeframe: Sampling granularity
        period_kind: Daily or monthly partition
        bucket: Formatted calendar bucket (YYYY-MM-DD or YYYY-MM)

    Example:
        >>> descriptor = FileDescriptor(
        ...     url="https://data.binance.vision/data/spot/daily/klines/BTCUSDT/1m/BTCUSDT-1m-2025-01-01.zip",
        ...     local_path=Path("BTCUSDT-1m-2025-01-01.zip"),
        ...     sequence_id=1,
        ...     ticker="BTCUSDT",
        ...     timeframe=TimeFrame.M1,
        ...     period_kind=PeriodKind.DAILY,
        ...     bucket="2025-01-01",
        ... )
        >>> descriptor.display_name
        'BTCUSDT-1m-2025-01-01'
    """

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., min_length=1, description="Remote archive address")
    local_path: Path = Field(..., description="Local destination path")
    sequence_id: int = Field(..., ge=1, description="Monotonic generation id")
    ticker: str = Field(..., min_length=1)
    timeframe: TimeFrame
    period_kind: PeriodKind
    bucket: str = Field(..., min_length=1)

    @property
    def file_name(self) -> str:
        return self.local_path.name

    @property
    def display_name(self) -> str:
        return self.local_path.stem


class FetchJob(BaseModel):
    """A descriptor scheduled in a batch together with its overwrite policy."""

    model_config = ConfigDict(frozen=True)

    descriptor: FileDescriptor
    overwrite: bool = False
