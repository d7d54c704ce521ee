"""
Market-data selection schemas: tickers, timeframes and calendar periods.

Pydantic models so that values coming from the command line, a YAML config
or tests are validated once at construction and immutable afterwards.
"""

from abc import abstractmethod
from datetime import date
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TimeFrame(str, Enum):
    """Sampling granularities published by the archive."""

    S1 = "1s"
    M1 = "1m"
    M3 = "3m"
    M5 = "5m"
    M15 = "15m"
    M30 = "30m"
    H1 = "1h"
    H2 = "2h"
    H4 = "4h"
    H6 = "6h"
    H8 = "8h"
    H12 = "12h"
    D1 = "1d"
    D3 = "3d"
    W1 = "1w"
    MO1 = "1mo"

    @classmethod
    def parse(cls, value: str) -> "TimeFrame":
        """
        Parse a timeframe case-insensitively.

        Raises:
            ValueError: If value is not one of the published timeframes
        """
        normalized = value.strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        valid = " ".join(member.value for member in cls)
        raise ValueError(f"Invalid timeframe {value!r}. Valid values are: {valid}")

    def __str__(self) -> str:
        return self.value


class PeriodKind(str, Enum):
    """Archive partitioning; the value is the URL path segment."""

    DAILY = "daily"
    MONTHLY = "monthly"

    def __str__(self) -> str:
        return self.value


class Ticker(BaseModel):
    """Normalized (uppercased) trading symbol, e.g. BTCUSDT."""

    model_config = ConfigDict(frozen=True)

    symbol: str = Field(..., min_length=1, description="Uppercased ticker symbol")

    @field_validator("symbol", mode="before")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        """Strip and uppercase; reject empty and non-alphanumeric symbols."""
        if not isinstance(v, str):
            raise ValueError("ticker must be a string")
        v = v.strip().upper()
        if not v:
            raise ValueError("ticker cannot be empty or whitespace")
        if not v.isalnum() or not v.isascii():
            raise ValueError(f"ticker {v!r} must contain only letters and digits")
        return v

    @classmethod
    def parse(cls, value: str) -> "Ticker":
        return cls(symbol=value)

    def __str__(self) -> str:
        return self.symbol


class _PeriodBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: date = Field(..., description="First bucket (inclusive)")
    end: Optional[date] = Field(
        default=None, description="Last bucket (inclusive); defaults to start"
    )

    @model_validator(mode="before")
    @classmethod
    def default_end_to_start(cls, data):
        if isinstance(data, dict) and data.get("end") is None:
            data = {**data, "end": data.get("start")}
        return data

    @abstractmethod
    def format_bucket(self, bucket: date) -> str:
        """Bucket label used in archive names."""

    @abstractmethod
    def next_bucket(self, bucket: date) -> date:
        """Bucket following the given one."""


class DailyPeriod(_PeriodBase):
    """One archive per day from start to end inclusive."""

    kind: Literal[PeriodKind.DAILY] = PeriodKind.DAILY

    def format_bucket(self, bucket: date) -> str:
        return bucket.strftime("%Y-%m-%d")

    def next_bucket(self, bucket: date) -> date:
        return date.fromordinal(bucket.toordinal() + 1)


class MonthlyPeriod(_PeriodBase):
    """
    One archive per calendar month from start to end inclusive.

    Both dates are pinned to the first of their month so the cursor's
    ``current < end`` comparison lines up with month stepping.
    """

    kind: Literal[PeriodKind.MONTHLY] = PeriodKind.MONTHLY

    @field_validator("start", "end")
    @classmethod
    def first_of_month(cls, v: Optional[date]) -> Optional[date]:
        if v is None:
            return v
        return v.replace(day=1)

    def format_bucket(self, bucket: date) -> str:
        return bucket.strftime("%Y-%m")

    def next_bucket(self, bucket: date) -> date:
        if bucket.month == 12:
            return date(bucket.year + 1, 1, 1)
        return date(bucket.year, bucket.month + 1, 1)


Period = Annotated[Union[DailyPeriod, MonthlyPeriod], Field(discriminator="kind")]


def make_period(
    kind: PeriodKind, start: date, end: Optional[date] = None
) -> Union[DailyPeriod, MonthlyPeriod]:
    """Build the period variant for kind."""
    if kind == PeriodKind.DAILY:
        return DailyPeriod(start=start, end=end)
    return MonthlyPeriod(start=start, end=end)


def parse_monthly_date(value: str) -> date:
    """
    Parse a monthly bound given as ``YYYY-MM`` or ``YYYY-MM-DD``.

    The day, when given, is ignored.

    Raises:
        ValueError: If value matches neither format
    """
    value = value.strip()
    try:
        return date.fromisoformat(value).replace(day=1)
    except ValueError:
        pass
    try:
        return date.fromisoformat(f"{value}-01")
    except ValueError:
        raise ValueError(
            f"Invalid month {value!r}: expected YYYY-MM or YYYY-MM-DD"
        ) from None


def parse_daily_date(value: str) -> date:
    """
    Parse a daily bound given as ``YYYY-MM-DD``.

    Raises:
        ValueError: If value is not an ISO date
    """
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValueError(f"Invalid date {value!r}: expected YYYY-MM-DD") from None
