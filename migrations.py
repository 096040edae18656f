"""
Upgrades persisted override records to the per-day category layout.

Records are dispatched on which fields they carry rather than on a version
number, so a blob written by any earlier release (or a mix of releases)
migrates in one pass:

* ``daily_categories``: ``dailyCategoryValues`` present, nothing to do.
* ``daily_totals``: only ``dailyValues``; each day total is split into
  categories by the record's ``categoryPercentages`` (or the default ratios).
* ``aggregate``: only the monthly ``netIncome``; the total is spread evenly
  over the month first.

Only missing per-day detail is filled in. Monthly totals, notes and
timestamps of a record are never touched.
"""

import logging
from typing import Any, Optional

from categories import (
    daily_values_from_category_values,
    distribute_evenly,
    split_by_ratios,
)
from models import OverrideShape
from periods import days_in_month
from schemas import CategoryPercentages

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = "3.0"


def classify(record: dict[str, Any]) -> OverrideShape:
    if record.get("dailyCategoryValues"):
        return OverrideShape.daily_categories
    if record.get("dailyValues"):
        return OverrideShape.daily_totals
    return OverrideShape.aggregate


def _percentages(record: dict[str, Any]) -> Optional[CategoryPercentages]:
    raw = record.get("categoryPercentages")
    if not raw:
        return None
    return CategoryPercentages.model_validate(raw)


def _dump_days(values: dict) -> dict[str, dict[str, float]]:
    return {
        day: breakdown.model_dump(by_alias=True)
        for day, breakdown in values.items()
    }


def migrate_record(month_key: str, record: dict[str, Any]) -> dict[str, Any]:
    """Return ``record`` upgraded to carry ``dailyCategoryValues``.

    Current records are returned as the very same object.
    """
    shape = classify(record)
    if shape == OverrideShape.daily_categories:
        return record

    days = days_in_month(month_key)
    percentages = _percentages(record)

    if shape == OverrideShape.daily_totals:
        daily_values = record["dailyValues"]
        values = {
            str(day): split_by_ratios(
                float(daily_values.get(str(day)) or 0), percentages
            )
            for day in range(1, days + 1)
        }
        return {**record, "dailyCategoryValues": _dump_days(values)}

    values = distribute_evenly(float(record.get("netIncome") or 0), days, percentages)
    return {
        **record,
        "dailyCategoryValues": _dump_days(values),
        "dailyValues": daily_values_from_category_values(values),
    }


def migrate_overrides(raw: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    """Migrate every record of a persisted blob.

    Returns the (possibly new) blob and whether anything changed. Entries
    that are not objects, or that cannot be upgraded, are carried over as-is.
    """
    migrated: dict[str, Any] = {}
    changed = False
    for month_key, record in raw.items():
        if not isinstance(record, dict):
            logger.warning(f"override_skipped: month={month_key} reason=not_an_object")
            migrated[month_key] = record
            continue
        try:
            upgraded = migrate_record(month_key, record)
        except (TypeError, ValueError, AttributeError) as exc:
            logger.warning(f"override_migration_failed: month={month_key} error={exc}")
            migrated[month_key] = record
            continue
        if upgraded is not record:
            changed = True
            logger.info(
                f"override_migrated: month={month_key} from={classify(record).value}"
            )
        migrated[month_key] = upgraded
    return (migrated if changed else raw), changed
