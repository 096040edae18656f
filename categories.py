"""
Category math for daily earnings breakdowns.

A day is four category figures; every total (day, month, category) is derived
from a collection of those. Nothing in here touches storage.
"""

from typing import Mapping, Optional

from periods import utc_timestamp
from schemas import (
    CategoryPercentages,
    CategoryTotals,
    DailyCategoryBreakdown,
    MonthlyOverride,
)

CATEGORY_FIELDS = ("media", "media_sets", "tips", "subscriptions")

DISTRIBUTION_RATIOS: dict[str, float] = {
    "media": 0.58,
    "media_sets": 0.21,
    "tips": 0.08,
    "subscriptions": 0.13,
}

# gross = net * 1.2 (20% platform fee)
PLATFORM_FEE_MULTIPLIER = 1.2

DailyCategoryValues = dict[str, DailyCategoryBreakdown]


def gross_from_net(net_income: float) -> float:
    return net_income * PLATFORM_FEE_MULTIPLIER


def resolve_ratios(percentages: Optional[CategoryPercentages] = None) -> dict[str, float]:
    """Custom percentages with a per-category fallback to the default split."""
    if percentages is None:
        return dict(DISTRIBUTION_RATIOS)
    ratios = dict(DISTRIBUTION_RATIOS)
    for name in CATEGORY_FIELDS:
        value = getattr(percentages, name)
        if value is not None:
            ratios[name] = value
    return ratios


def daily_total(breakdown: DailyCategoryBreakdown) -> float:
    return (
        breakdown.media
        + breakdown.media_sets
        + breakdown.tips
        + breakdown.subscriptions
    )


def category_totals(daily_category_values: Mapping[str, DailyCategoryBreakdown]) -> CategoryTotals:
    totals = {name: 0.0 for name in CATEGORY_FIELDS}
    for breakdown in daily_category_values.values():
        for name in CATEGORY_FIELDS:
            totals[name] += getattr(breakdown, name)
    return CategoryTotals(**totals)


def daily_values_from_category_values(
    daily_category_values: Mapping[str, DailyCategoryBreakdown],
) -> dict[str, float]:
    return {
        day: daily_total(breakdown)
        for day, breakdown in daily_category_values.items()
    }


def split_by_ratios(
    total: float, percentages: Optional[CategoryPercentages] = None
) -> DailyCategoryBreakdown:
    ratios = resolve_ratios(percentages)
    return DailyCategoryBreakdown(
        **{name: total * ratios[name] for name in CATEGORY_FIELDS}
    )


def distribute_evenly(
    monthly_total: float,
    days_in_month: int,
    percentages: Optional[CategoryPercentages] = None,
) -> DailyCategoryValues:
    """Give every day of the month the same share of ``monthly_total``.

    Each day's share is split into categories by ``percentages`` (default
    58/21/8/13), so the daily totals add back up to ``monthly_total``.
    """
    if days_in_month < 1:
        raise ValueError(f"days_in_month must be positive, got {days_in_month}")
    per_day = monthly_total / days_in_month
    return {
        str(day): split_by_ratios(per_day, percentages)
        for day in range(1, days_in_month + 1)
    }


def empty_daily_category_values(days_in_month: int) -> DailyCategoryValues:
    return {str(day): DailyCategoryBreakdown() for day in range(1, days_in_month + 1)}


def monthly_total(override: MonthlyOverride) -> float:
    if override.daily_category_values:
        return sum(daily_total(b) for b in override.daily_category_values.values())
    return sum((override.daily_values or {}).values())


def copy_day(
    daily_category_values: Mapping[str, DailyCategoryBreakdown],
    source_day: int,
    days_in_month: int,
) -> DailyCategoryValues:
    result = dict(daily_category_values)
    source = daily_category_values.get(str(source_day))
    if source is None:
        return result
    for day in range(1, days_in_month + 1):
        if day != source_day:
            result[str(day)] = source.model_copy()
    return result


def draft_daily_category_values(
    override: Optional[MonthlyOverride], days_in_month: int
) -> DailyCategoryValues:
    """Per-day editing grid for a month, whatever shape the stored record has."""
    if override is not None and override.daily_category_values:
        return {
            str(day): override.daily_category_values.get(str(day), DailyCategoryBreakdown())
            for day in range(1, days_in_month + 1)
        }
    if override is not None and override.daily_values is not None:
        return {
            str(day): split_by_ratios(
                override.daily_values.get(str(day), 0.0),
                override.category_percentages,
            )
            for day in range(1, days_in_month + 1)
        }
    return empty_daily_category_values(days_in_month)


def build_override(
    daily_category_values: Mapping[str, DailyCategoryBreakdown],
    note: Optional[str] = None,
    *,
    is_manual: bool = True,
    last_updated: Optional[str] = None,
) -> MonthlyOverride:
    values = dict(daily_category_values)
    net_income = sum(daily_total(b) for b in values.values())
    return MonthlyOverride(
        daily_category_values=values,
        daily_values=daily_values_from_category_values(values),
        net_income=net_income,
        gross_income=gross_from_net(net_income),
        categories=category_totals(values),
        is_manual=is_manual,
        last_updated=last_updated or utc_timestamp(),
        note=note or None,
    )


def normalize_override(override: MonthlyOverride) -> MonthlyOverride:
    """Recompute every derived field of ``override`` from its daily detail."""
    if override.daily_category_values or override.daily_values:
        net_income = monthly_total(override)
    else:
        net_income = override.net_income
    if override.daily_category_values:
        values = override.daily_category_values
        return override.model_copy(
            update={
                "daily_values": daily_values_from_category_values(values),
                "net_income": net_income,
                "gross_income": gross_from_net(net_income),
                "categories": category_totals(values),
                "is_manual": True,
            }
        )
    return override.model_copy(
        update={
            "net_income": net_income,
            "gross_income": gross_from_net(net_income),
            "is_manual": True,
        }
    )
