import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Union

logger = logging.getLogger(__name__)

MONTH_KEY_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
MIN_YEAR = 2000
MAX_YEAR = 2100
FALLBACK_DAYS_IN_MONTH = 30


@dataclass(frozen=True)
class Month:
    year: int
    month: int

    @property
    def key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def days(self) -> int:
        if self.month == 12:
            next_month = date(self.year + 1, 1, 1)
        else:
            next_month = date(self.year, self.month + 1, 1)
        return (next_month - self.start).days

    def day(self, day: int) -> date:
        return date(self.year, self.month, day)


def _split_month_key(month_key: str) -> Optional[Month]:
    if not isinstance(month_key, str) or not MONTH_KEY_RE.match(month_key):
        return None
    year, month = (int(part) for part in month_key.split("-"))
    if year < 1:
        return None
    return Month(year, month)


def is_valid_month_key(month_key: str) -> bool:
    month = _split_month_key(month_key)
    return month is not None and MIN_YEAR <= month.year <= MAX_YEAR


def parse_month_key(month_key: str) -> Optional[Month]:
    if not is_valid_month_key(month_key):
        return None
    return _split_month_key(month_key)


def days_in_month(month_key: str) -> int:
    """Number of days in ``month_key``; malformed keys are assumed to have 30."""
    month = _split_month_key(month_key)
    if month is None:
        logger.debug(f"days_in_month: fallback month_key={month_key!r}")
        return FALLBACK_DAYS_IN_MONTH
    return month.days


def date_to_month_key(value: Union[date, str]) -> str:
    if isinstance(value, str):
        value = date.fromisoformat(value[:10])
    return f"{value.year:04d}-{value.month:02d}"


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )
