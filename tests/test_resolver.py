import json

import numpy as np
import pytest

from backends import MemoryBackend
from categories import build_override
from schemas import DailyCategoryBreakdown, MonthlyOverride
from services import OverrideStore, StatsResolver, expand_override_days, monthly_summary
from simulation import SimulationEngine


def _resolver(backend=None) -> tuple[StatsResolver, OverrideStore]:
    store = OverrideStore(backend or MemoryBackend(), key="overrides")
    return StatsResolver(store, SimulationEngine(np.random.default_rng(0))), store


def test_month_without_override_is_simulated() -> None:
    resolver, _ = _resolver()
    stats = resolver.resolve("2099-01", 12000)
    assert stats.is_manual_override is False
    assert stats.target_amount == 12000
    assert len(stats.daily_data) == 31
    assert sum(d.total for d in stats.daily_data) == pytest.approx(12000)


def test_override_wins_over_simulation() -> None:
    resolver, store = _resolver()
    store.save(
        "2024-02",
        build_override(
            {
                "1": DailyCategoryBreakdown(media=100, media_sets=20, tips=5, subscriptions=15),
                "3": DailyCategoryBreakdown(tips=10),
            },
            "manual",
        ),
    )

    stats = resolver.resolve("2024-02", 99999)
    assert stats.is_manual_override is True
    assert stats.override_month_key == "2024-02"
    assert stats.target_amount == pytest.approx(150)
    assert stats.net_income == pytest.approx(150)
    assert stats.gross_income == pytest.approx(180)
    assert stats.tips == pytest.approx(15)
    assert stats.subs == pytest.approx(15)

    assert len(stats.daily_data) == 29
    assert stats.daily_data[0].total == pytest.approx(140)
    assert stats.daily_data[1].total == 0
    assert stats.daily_data[2].tips == 10


def test_resolved_stats_serialize_with_camel_case() -> None:
    resolver, _ = _resolver()
    payload = resolver.resolve("2024-01", 100).model_dump(by_alias=True, mode="json")
    assert {"targetAmount", "mediaSets", "grossIncome", "dailyData", "isManualOverride"} <= set(
        payload
    )
    assert payload["dailyData"][0]["date"] == "2024-01-01"


def test_legacy_daily_values_fill_missing_days() -> None:
    override = MonthlyOverride(
        daily_category_values={"1": DailyCategoryBreakdown(media=1)},
        daily_values={"1": 1, "2": 100},
    )
    series = expand_override_days("2024-04", override)
    assert len(series) == 30
    assert series[0].total == 1
    assert series[1].media == pytest.approx(58)
    assert series[1].total == pytest.approx(100)
    assert series[29].total == 0


def test_unmigrated_blob_is_resolved_after_migration() -> None:
    backend = MemoryBackend(
        {"overrides": json.dumps({"2024-01": {"netIncome": 3100, "grossIncome": 3720}})}
    )
    resolver, _ = _resolver(backend)
    stats = resolver.resolve("2024-01", 1)
    assert stats.is_manual_override is True
    assert sum(d.total for d in stats.daily_data) == pytest.approx(3100)
    assert stats.daily_data[0].media == pytest.approx(58)


@pytest.mark.parametrize("month_key", ["2024-1", "garbage", "1999-12"])
def test_invalid_month_is_rejected(month_key: str) -> None:
    resolver, _ = _resolver()
    with pytest.raises(ValueError):
        resolver.resolve(month_key, 100)
    with pytest.raises(ValueError):
        expand_override_days(month_key, MonthlyOverride())


def test_monthly_summary_lists_months_newest_first() -> None:
    _, store = _resolver()
    store.distribute("2024-01", 310)
    store.distribute("2024-03", 310)
    summary = monthly_summary(store)
    assert summary["count"] == 2
    assert summary["months"] == ["2024-03", "2024-01"]
    assert summary["overrides"]["2024-01"]["netIncome"] == pytest.approx(310)
