import json

import pytest

from backends import MemoryBackend
from migrations import classify, migrate_overrides, migrate_record
from models import OverrideShape
from services import OverrideStore

LEGACY_AGGREGATE = {
    "netIncome": 10000,
    "grossIncome": 12000,
    "categories": {
        "media": 5800,
        "mediaSets": 2100,
        "tips": 800,
        "subscriptions": 1300,
    },
    "isManual": True,
    "lastUpdated": "2024-01-01T00:00:00.000Z",
    "note": "Test legacy override",
}

DAILY_TOTALS = {
    "dailyValues": {"1": 1000, "2": 2000},
    "netIncome": 3000,
    "grossIncome": 3600,
    "categories": {
        "media": 1500,
        "mediaSets": 600,
        "tips": 300,
        "subscriptions": 600,
    },
    "categoryPercentages": {
        "media": 0.5,
        "mediaSets": 0.2,
        "tips": 0.1,
        "subscriptions": 0.2,
    },
    "isManual": True,
    "lastUpdated": "2024-03-01T00:00:00.000Z",
}

CURRENT = {
    "dailyCategoryValues": {
        "1": {"media": 10, "mediaSets": 5, "tips": 1, "subscriptions": 4},
    },
    "dailyValues": {"1": 20},
    "netIncome": 20,
    "grossIncome": 24,
    "categories": {"media": 10, "mediaSets": 5, "tips": 1, "subscriptions": 4},
    "isManual": True,
    "lastUpdated": "2024-05-01T00:00:00.000Z",
}


def _store(blob) -> tuple[OverrideStore, MemoryBackend]:
    backend = MemoryBackend({"overrides": json.dumps(blob)})
    return OverrideStore(backend, key="overrides"), backend


def test_classify_by_present_fields() -> None:
    assert classify(LEGACY_AGGREGATE) == OverrideShape.aggregate
    assert classify(DAILY_TOTALS) == OverrideShape.daily_totals
    assert classify(CURRENT) == OverrideShape.daily_categories
    assert classify({**CURRENT, "dailyCategoryValues": {}}) == OverrideShape.daily_totals


def test_current_record_passes_through_unchanged() -> None:
    assert migrate_record("2024-05", CURRENT) is CURRENT
    blob = {"2024-05": CURRENT}
    migrated, changed = migrate_overrides(blob)
    assert changed is False
    assert migrated is blob


def test_legacy_aggregate_record_is_spread_over_the_month() -> None:
    store, _ = _store({"2024-01": LEGACY_AGGREGATE})
    override = store.get("2024-01")

    assert len(override.daily_category_values) == 31
    totals = override.categories
    recomputed = {
        "media": sum(b.media for b in override.daily_category_values.values()),
        "media_sets": sum(b.media_sets for b in override.daily_category_values.values()),
        "tips": sum(b.tips for b in override.daily_category_values.values()),
        "subscriptions": sum(b.subscriptions for b in override.daily_category_values.values()),
    }
    assert recomputed["media"] == pytest.approx(totals.media)
    assert recomputed["media_sets"] == pytest.approx(totals.media_sets)
    assert recomputed["tips"] == pytest.approx(totals.tips)
    assert recomputed["subscriptions"] == pytest.approx(totals.subscriptions)
    assert sum(override.daily_values.values()) == pytest.approx(10000)

    assert override.net_income == 10000
    assert override.gross_income == 12000
    assert override.note == "Test legacy override"
    assert override.last_updated == "2024-01-01T00:00:00.000Z"


def test_daily_totals_record_uses_its_percentages() -> None:
    store, _ = _store({"2024-03": DAILY_TOTALS})
    override = store.get("2024-03")

    assert len(override.daily_category_values) == 31
    assert override.daily_category_values["1"].media == pytest.approx(500)
    assert override.daily_category_values["2"].subscriptions == pytest.approx(400)
    assert sum(override.daily_category_values["3"].model_dump().values()) == 0
    assert override.daily_values == {"1": 1000, "2": 2000}
    assert override.net_income == 3000
    assert override.category_percentages.media == 0.5


def test_daily_totals_without_percentages_use_default_split() -> None:
    record = {k: v for k, v in DAILY_TOTALS.items() if k != "categoryPercentages"}
    migrated = migrate_record("2024-02", record)
    assert len(migrated["dailyCategoryValues"]) == 29
    assert migrated["dailyCategoryValues"]["1"]["media"] == pytest.approx(580)
    assert migrated["dailyCategoryValues"]["2"]["mediaSets"] == pytest.approx(420)


def test_mixed_generations_migrate_in_one_pass() -> None:
    store, backend = _store(
        {"2024-01": LEGACY_AGGREGATE, "2024-03": DAILY_TOTALS, "2024-05": CURRENT}
    )
    snapshot = store.load()
    assert snapshot.migrated is True
    assert set(snapshot.overrides) == {"2024-01", "2024-03", "2024-05"}

    persisted = json.loads(backend.data["overrides"])
    assert all(record["dailyCategoryValues"] for record in persisted.values())
    assert persisted["2024-05"] == CURRENT
    assert backend.data["overrides_version"] == "3.0"


def test_migration_is_idempotent() -> None:
    blob = {"2024-01": LEGACY_AGGREGATE, "2024-03": DAILY_TOTALS}
    once, changed = migrate_overrides(blob)
    twice, changed_again = migrate_overrides(once)
    assert changed is True
    assert changed_again is False
    assert twice == once

    store, backend = _store(blob)
    store.get_all()
    written = backend.data["overrides"]
    assert store.load().migrated is False
    assert backend.data["overrides"] == written


def test_unmigratable_entries_are_kept_raw() -> None:
    blob = {
        "2024-01": "not a record",
        "2024-02": {"dailyValues": {"1": "lots"}},
        "2024-03": CURRENT,
    }
    migrated, changed = migrate_overrides(blob)
    assert changed is False
    assert migrated["2024-01"] == "not a record"
    assert migrated["2024-02"] == {"dailyValues": {"1": "lots"}}
