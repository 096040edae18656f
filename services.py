from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from backends import KeyValueBackend
from categories import (
    build_override,
    copy_day,
    daily_total,
    distribute_evenly,
    normalize_override,
    split_by_ratios,
)
from config import get_settings
from csv_utils import (
    CSVFormat,
    detect_format,
    export_overrides,
    group_daily_rows,
    parse_monthly_row,
    read_rows,
)
from migrations import CURRENT_SCHEMA_VERSION, migrate_overrides
from periods import days_in_month, parse_month_key, utc_timestamp
from schemas import (
    DailyCategoryBreakdown,
    DailyStats,
    DashboardStats,
    ImportResult,
    MonthlyOverride,
)
from simulation import SimulationEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OverridesSnapshot:
    """Result of reading the override blob.

    Reading never fails: unreadable state comes back as an empty snapshot
    with ``error`` describing what was recovered from.
    """

    overrides: dict[str, MonthlyOverride] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)
    migrated: bool = False
    error: Optional[str] = None


class OverrideStore:
    def __init__(
        self,
        backend: KeyValueBackend,
        key: Optional[str] = None,
        version_key: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self.backend = backend
        self.key = key or settings.overrides_key
        self.version_key = version_key or f"{self.key}_version"

    def _read_raw(self) -> tuple[dict[str, Any], Optional[str]]:
        try:
            stored = self.backend.get(self.key)
        except Exception as exc:
            logger.exception("overrides_read_failed")
            return {}, f"read failed: {exc}"
        if not stored:
            return {}, None
        try:
            parsed = json.loads(stored)
        except json.JSONDecodeError as exc:
            logger.warning(f"overrides_corrupt: reason=invalid_json error={exc}")
            return {}, f"invalid JSON: {exc}"
        if not isinstance(parsed, dict):
            logger.warning(
                f"overrides_corrupt: reason=not_an_object type={type(parsed).__name__}"
            )
            return {}, "stored overrides are not an object"
        return parsed, None

    def _write_raw(self, raw: dict[str, Any]) -> bool:
        try:
            self.backend.set(self.key, json.dumps(raw))
            self.backend.set(self.version_key, CURRENT_SCHEMA_VERSION)
        except Exception:
            logger.exception("overrides_write_failed")
            return False
        return True

    def load(self) -> OverridesSnapshot:
        raw, error = self._read_raw()
        if error is not None:
            return OverridesSnapshot(error=error)

        raw, migrated = migrate_overrides(raw)
        if migrated:
            self._write_raw(raw)
            logger.info(f"overrides_migrated: months={len(raw)}")

        overrides: dict[str, MonthlyOverride] = {}
        for month_key, record in raw.items():
            try:
                overrides[month_key] = MonthlyOverride.model_validate(record)
            except ValidationError as exc:
                logger.warning(
                    f"override_invalid: month={month_key} errors={exc.error_count()}"
                )
        return OverridesSnapshot(overrides=overrides, raw=raw, migrated=migrated)

    def get_all(self) -> dict[str, MonthlyOverride]:
        return self.load().overrides

    def get(self, month_key: str) -> Optional[MonthlyOverride]:
        return self.get_all().get(month_key)

    def has(self, month_key: str) -> bool:
        return month_key in self.get_all()

    def save(self, month_key: str, override: MonthlyOverride) -> Optional[MonthlyOverride]:
        """Replace the record for ``month_key``; returns it as stored."""
        snapshot = self.load()
        stored = normalize_override(override).model_copy(
            update={"last_updated": utc_timestamp()}
        )
        raw = {**snapshot.raw, month_key: stored.to_storage()}
        if not self._write_raw(raw):
            return None
        logger.info(f"override_saved: month={month_key} net_income={stored.net_income:.2f}")
        return stored

    def delete(self, month_key: str) -> None:
        snapshot = self.load()
        if month_key not in snapshot.raw:
            return
        raw = {key: value for key, value in snapshot.raw.items() if key != month_key}
        if self._write_raw(raw):
            logger.info(f"override_deleted: month={month_key}")

    def clear(self) -> None:
        try:
            self.backend.remove(self.key)
            self.backend.remove(self.version_key)
        except Exception:
            logger.exception("overrides_clear_failed")
            return
        logger.info("overrides_cleared")

    def list_months(self) -> list[str]:
        return sorted(self.get_all(), reverse=True)

    def count(self) -> int:
        return len(self.get_all())

    def distribute(
        self, month_key: str, net_income: float, note: Optional[str] = None
    ) -> Optional[MonthlyOverride]:
        values = distribute_evenly(net_income, days_in_month(month_key))
        return self.save(month_key, build_override(values, note))

    def copy_day(self, month_key: str, source_day: int) -> Optional[MonthlyOverride]:
        override = self.get(month_key)
        if override is None:
            return None
        values = copy_day(
            override.daily_category_values, source_day, days_in_month(month_key)
        )
        return self.save(
            month_key, override.model_copy(update={"daily_category_values": values})
        )


class TargetAmountStore:
    """Last target amount used for simulation, kept under its own key."""

    def __init__(
        self,
        backend: KeyValueBackend,
        key: Optional[str] = None,
        default: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self.backend = backend
        self.key = key or settings.target_key
        self.default = settings.default_target if default is None else default

    def get(self) -> float:
        try:
            stored = self.backend.get(self.key)
        except Exception:
            logger.exception("target_read_failed")
            return self.default
        if not stored:
            return self.default
        try:
            amount = float(stored)
        except ValueError:
            amount = math.nan
        if not math.isfinite(amount) or amount < 0:
            logger.warning(f"target_corrupt: value={stored!r}")
            return self.default
        return amount

    def set(self, amount: float) -> float:
        if not math.isfinite(amount) or amount < 0:
            raise ValueError(f"Target amount must be a non-negative number, got {amount}")
        self.backend.set(self.key, str(amount))
        return amount


def expand_override_days(month_key: str, override: MonthlyOverride) -> list[DailyStats]:
    """Daily series for an override, filling days the record lacks.

    Days missing from ``dailyCategoryValues`` fall back to the legacy
    ``dailyValues`` split at the default ratios, then to zero.
    """
    month = parse_month_key(month_key)
    if month is None:
        raise ValueError(f"Invalid month key {month_key!r}. Expected 'YYYY-MM'")
    legacy = override.daily_values or {}

    series: list[DailyStats] = []
    for day in range(1, month.days + 1):
        key = str(day)
        breakdown = override.daily_category_values.get(key)
        if breakdown is None and key in legacy:
            breakdown = split_by_ratios(legacy[key] or 0.0)
        if breakdown is None:
            breakdown = DailyCategoryBreakdown()
        series.append(
            DailyStats(
                date=month.day(day),
                tips=breakdown.tips,
                subs=breakdown.subscriptions,
                media=breakdown.media,
                media_sets=breakdown.media_sets,
                total=daily_total(breakdown),
            )
        )
    return series


class StatsResolver:
    def __init__(
        self, store: OverrideStore, engine: Optional[SimulationEngine] = None
    ) -> None:
        self.store = store
        self.engine = engine or SimulationEngine()

    def resolve(self, month_key: str, target_amount: float) -> DashboardStats:
        if parse_month_key(month_key) is None:
            raise ValueError(f"Invalid month key {month_key!r}. Expected 'YYYY-MM'")

        override = self.store.get(month_key)
        if override is None:
            return self.engine.simulate(target_amount, month_key)

        return DashboardStats(
            target_amount=override.net_income,
            tips=override.categories.tips,
            subs=override.categories.subscriptions,
            media=override.categories.media,
            media_sets=override.categories.media_sets,
            gross_income=override.gross_income,
            net_income=override.net_income,
            daily_data=expand_override_days(month_key, override),
            is_manual_override=True,
            override_month_key=month_key,
        )


class UploadedFile(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


class CSVService:
    def __init__(self, store: OverrideStore) -> None:
        self.store = store

    def export(self) -> str:
        return export_overrides(self.store.get_all())

    def _save(self, month_key: str, override: MonthlyOverride) -> bool:
        return self.store.save(month_key, override) is not None

    def import_csv(self, content: str) -> ImportResult:
        try:
            headers, rows = read_rows(content)
        except Exception as exc:
            return ImportResult(errors=[f"Failed to parse CSV file: {exc}"])
        if len(rows) < 1:
            return ImportResult(errors=["CSV file is empty or has no data rows"])

        csv_format = detect_format(headers)
        if csv_format is None:
            return ImportResult(
                errors=[
                    "CSV headers don't match expected format. "
                    f"Found: {', '.join(headers)}"
                ]
            )

        if csv_format == CSVFormat.daily:
            result = self._import_daily(rows)
        else:
            result = self._import_monthly(rows)
        logger.info(
            f"csv_import: format={csv_format.value} success={result.success} "
            f"total={result.total} errors={len(result.errors)}"
        )
        return result

    def _import_daily(self, rows: list[dict[str, str]]) -> ImportResult:
        months = group_daily_rows(rows)
        success = 0
        errors: list[str] = []
        for month_key, entry in months.items():
            try:
                saved = self._save(month_key, entry.to_override())
            except Exception as exc:
                errors.append(f"Month {month_key}: Error processing month - {exc}")
                continue
            if saved:
                success += 1
            else:
                errors.append(f"Month {month_key}: Failed to save override")
        return ImportResult(success=success, errors=errors, total=len(months))

    def _import_monthly(self, rows: list[dict[str, str]]) -> ImportResult:
        success = 0
        errors: list[str] = []
        for idx, raw in enumerate(rows, start=1):
            try:
                month_key, override = parse_monthly_row(raw)
                saved = self._save(month_key, override)
            except Exception as exc:
                errors.append(f"Row {idx}: {exc}")
                continue
            if saved:
                success += 1
            else:
                errors.append(f"Row {idx}: Failed to save override")
        return ImportResult(success=success, errors=errors, total=len(rows))

    async def import_file(self, upload: UploadedFile) -> ImportResult:
        try:
            content = (await upload.read()).decode("utf-8-sig")
        except Exception as exc:
            return ImportResult(errors=[f"Failed to read file: {exc}"])
        return self.import_csv(content)


def monthly_summary(store: OverrideStore) -> dict[str, Any]:
    overrides = store.get_all()
    months = sorted(overrides, reverse=True)
    return {
        "count": len(months),
        "months": months,
        "overrides": {
            month_key: overrides[month_key].model_dump(by_alias=True, exclude_none=True)
            for month_key in months
        },
    }
