"""
Calendar cursor over the buckets of a period.
"""

from datetime import date
from typing import Iterator, Optional, Union

from kline_fetcher.schemas.market import DailyPeriod, MonthlyPeriod


class CalendarCursor(Iterator[date]):
    """
    Lazy, restartable iteration over the buckets of a period, inclusive.

    Each step returns ``current`` and only then, if ``current < end``,
    advances by one day or one month. Once ``end`` has been returned the
    cursor stays exhausted.

    A period with ``start > end`` yields ``start`` once and is then
    exhausted.

    Usage:
        cursor = CalendarCursor(DailyPeriod(start=date(2025, 1, 1), end=date(2025, 1, 3)))
        list(cursor)    # [2025-01-01, 2025-01-02, 2025-01-03]
        cursor.reset()  # start over from the period's start
    """

    def __init__(self, period: Union[DailyPeriod, MonthlyPeriod]):
        self.period = period
        self._current: Optional[date] = period.start
        self._end: date = period.end or period.start

    def __iter__(self) -> "CalendarCursor":
        return self

    def __next__(self) -> date:
        current = self._current
        if current is None:
            raise StopIteration

        if current < self._end:
            self._current = self.period.next_bucket(current)
        else:
            self._current = None

        return current

    def reset(self) -> None:
        """Discard any advancement and start again from the period's start."""
        self._current = self.period.start
        self._end = self.period.end or self.period.start

    @property
    def exhausted(self) -> bool:
        return self._current is None
