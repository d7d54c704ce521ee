"""
Domain schemas.

Schemas:
    market.py       - Ticker, TimeFrame, PeriodKind, DailyPeriod/MonthlyPeriod
    descriptors.py  - FileDescriptor, FetchJob
    events.py       - Starting/Written/Done/Failed progress events, FailureRecord

Design Decisions:
    - Pydantic for validated, immutable inputs (tickers, periods, descriptors)
    - Frozen dataclasses for high-frequency progress events
"""

from kline_fetcher.schemas.descriptors import FetchJob, FileDescriptor
from kline_fetcher.schemas.events import (
    Done,
    Failed,
    FailureRecord,
    ProgressEvent,
    Starting,
    Written,
)
from kline_fetcher.schemas.market import (
    DailyPeriod,
    MonthlyPeriod,
    Period,
    PeriodKind,
    Ticker,
    TimeFrame,
    make_period,
    parse_daily_date,
    parse_monthly_date,
)

__all__ = [
    "DailyPeriod",
    "Done",
    "Failed",
    "FailureRecord",
    "FetchJob",
    "FileDescriptor",
    "MonthlyPeriod",
    "Period",
    "PeriodKind",
    "ProgressEvent",
    "Starting",
    "Ticker",
    "TimeFrame",
    "Written",
    "make_period",
    "parse_daily_date",
    "parse_monthly_date",
]
