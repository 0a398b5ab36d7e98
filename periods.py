import calendar
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterator

MONTH_PATTERN = r"^\d{4}-\d{2}$"
_MONTH_RE = re.compile(MONTH_PATTERN)


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def iter_days(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)


def resolve_month(month: str) -> Period:
    """Turn a ``YYYY-MM`` token into the inclusive range covering that month."""
    if not month or not _MONTH_RE.match(month):
        raise ValueError("Month must be YYYY-MM format")
    year, month_num = (int(part) for part in month.split("-"))
    if not 1 <= month_num <= 12 or year < 1:
        raise ValueError("Month must be YYYY-MM format")
    last_day = calendar.monthrange(year, month_num)[1]
    return Period(month, date(year, month_num, 1), date(year, month_num, last_day))
