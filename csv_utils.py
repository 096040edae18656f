import csv
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from io import StringIO
from typing import Iterable, Mapping, Optional

from categories import (
    build_override,
    daily_total,
    distribute_evenly,
    gross_from_net,
)
from periods import date_to_month_key, days_in_month, is_valid_month_key, parse_month_key
from schemas import DailyCategoryBreakdown, MonthlyOverride

logger = logging.getLogger(__name__)

VALUE_HEADERS = [
    "Net Income",
    "Gross Income",
    "Media",
    "Media Sets",
    "Tips",
    "Subscriptions",
    "Note",
    "Last Updated",
    "Is Manual",
]
DAILY_HEADERS = ["Date", *VALUE_HEADERS]

CATEGORY_COLUMNS = {
    "media": "Media",
    "media_sets": "Media Sets",
    "tips": "Tips",
    "subscriptions": "Subscriptions",
}


class CSVFormat(str, Enum):
    daily = "daily"
    monthly = "monthly"


# Spreadsheet apps evaluate cells starting with these; a leading tab defuses them.
FORMULA_PREFIXES = ("=", "+", "-", "@")
RISKY_NOTE_RE = re.compile(r"^(cmd|powershell|bash|sh)\b|^\.|^https?://", re.IGNORECASE)

DATE_FORMATS = ("%Y-%m-%d", "%d.%m.%Y")


def sanitize_csv_value(value: str) -> str:
    """Note text safe to open in a spreadsheet; surrounding whitespace is dropped."""
    text = (value or "").strip()
    if text.startswith(FORMULA_PREFIXES) or RISKY_NOTE_RE.match(text):
        return "\t" + text
    return text


def parse_date(value: str) -> date:
    text = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date {value!r}")


def parse_amount(value: str) -> float:
    clean = value.strip().replace("€", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = float(clean)
    except ValueError as exc:
        raise ValueError("Invalid amount") from exc
    if not math.isfinite(amount):
        raise ValueError("Invalid amount")
    return amount


def parse_bool(value: Optional[str], *, default: bool = True) -> bool:
    raw = (value or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


def _category_value(raw: Mapping[str, Optional[str]], column: str) -> float:
    try:
        amount = parse_amount(raw.get(column) or "")
    except ValueError:
        return 0.0
    return max(amount, 0.0)


def read_rows(content: str) -> tuple[list[str], list[dict[str, str]]]:
    """Header and data rows of ``content``; blank lines are dropped."""
    reader = csv.reader(StringIO(content.lstrip("\ufeff")))
    rows = [row for row in reader if any(cell.strip() for cell in row)]
    if not rows:
        return [], []
    headers = [h.strip() for h in rows[0]]
    data = [
        {header: cell.strip() for header, cell in zip(headers, row)}
        for row in rows[1:]
    ]
    return headers, data


def detect_format(headers: list[str]) -> Optional[CSVFormat]:
    if "Date" in headers:
        return CSVFormat.daily
    if "Month" in headers and "Net Income" in headers:
        return CSVFormat.monthly
    return None


@dataclass
class MonthImport:
    month_key: str
    days: dict[str, DailyCategoryBreakdown] = field(default_factory=dict)
    note: Optional[str] = None
    last_updated: Optional[str] = None
    is_manual: bool = True

    def to_override(self) -> MonthlyOverride:
        return build_override(
            self.days,
            self.note,
            is_manual=self.is_manual,
            last_updated=self.last_updated,
        )


def group_daily_rows(rows: Iterable[Mapping[str, Optional[str]]]) -> dict[str, MonthImport]:
    months: dict[str, MonthImport] = {}
    for idx, raw in enumerate(rows, start=1):
        date_raw = raw.get("Date") or ""
        try:
            day = parse_date(date_raw)
        except ValueError:
            logger.debug(f"csv_row_skipped: row={idx} date={date_raw!r}")
            continue
        month_key = date_to_month_key(day)
        if not is_valid_month_key(month_key):
            logger.debug(f"csv_row_skipped: row={idx} month={month_key}")
            continue

        entry = months.setdefault(month_key, MonthImport(month_key))
        entry.days[str(day.day)] = DailyCategoryBreakdown(
            **{name: _category_value(raw, column) for name, column in CATEGORY_COLUMNS.items()}
        )
        note = (raw.get("Note") or "").strip()
        if note:
            entry.note = note
        last_updated = (raw.get("Last Updated") or "").strip()
        if last_updated and (entry.last_updated is None or last_updated > entry.last_updated):
            entry.last_updated = last_updated
        entry.is_manual = parse_bool(raw.get("Is Manual"))
    return months


def parse_monthly_row(raw: Mapping[str, Optional[str]]) -> tuple[str, MonthlyOverride]:
    month_key = (raw.get("Month") or "").strip()
    if not is_valid_month_key(month_key):
        raise ValueError(f'Invalid month format "{month_key}". Expected "YYYY-MM"')

    net_raw = raw.get("Net Income") or ""
    try:
        net_income = parse_amount(net_raw)
    except ValueError:
        net_income = -1.0
    if net_income < 0:
        raise ValueError(f'Invalid Net Income value "{net_raw}"')

    # Legacy rows never carried custom ratios; always the default split.
    values = distribute_evenly(net_income, days_in_month(month_key))
    # Gross Income in the file is ignored; gross always follows net.
    return month_key, build_override(
        values,
        (raw.get("Note") or "").strip() or None,
        is_manual=parse_bool(raw.get("Is Manual")),
        last_updated=(raw.get("Last Updated") or "").strip() or None,
    )


def export_overrides(overrides: Mapping[str, MonthlyOverride]) -> str:
    rows: list[tuple[date, list[str]]] = []
    for month_key, override in overrides.items():
        month = parse_month_key(month_key)
        if month is None:
            logger.warning(f"csv_export_skipped: month={month_key!r}")
            continue
        for day_key, breakdown in override.daily_category_values.items():
            try:
                day = month.day(int(day_key))
            except ValueError:
                logger.warning(f"csv_export_skipped: month={month_key} day={day_key!r}")
                continue
            total = daily_total(breakdown)
            rows.append(
                (
                    day,
                    [
                        day.isoformat(),
                        f"{total:.2f}",
                        f"{gross_from_net(total):.2f}",
                        f"{breakdown.media:.2f}",
                        f"{breakdown.media_sets:.2f}",
                        f"{breakdown.tips:.2f}",
                        f"{breakdown.subscriptions:.2f}",
                        sanitize_csv_value(override.note or ""),
                        override.last_updated,
                        "TRUE" if override.is_manual else "FALSE",
                    ],
                )
            )
    rows.sort(key=lambda item: item[0], reverse=True)

    output = StringIO()
    output.write(",".join(DAILY_HEADERS) + "\n")
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerows(values for _, values in rows)
    return output.getvalue()


def export_filename(prefix: str, *, today: Optional[date] = None) -> str:
    return f"{prefix}_{(today or date.today()).isoformat()}.csv"
