import math

import numpy as np
import pytest

from simulation import SimulationEngine


def _column_sums(stats) -> dict[str, float]:
    return {
        "media": sum(d.media for d in stats.daily_data),
        "media_sets": sum(d.media_sets for d in stats.daily_data),
        "tips": sum(d.tips for d in stats.daily_data),
        "subs": sum(d.subs for d in stats.daily_data),
    }


def test_simulated_month_matches_target_split() -> None:
    stats = SimulationEngine(np.random.default_rng(7)).simulate(12000, "2024-01")

    assert len(stats.daily_data) == 31
    assert stats.daily_data[0].date.isoformat() == "2024-01-01"
    assert stats.net_income == 12000
    assert stats.gross_income == pytest.approx(14400)
    assert stats.is_manual_override is False
    assert stats.override_month_key is None

    sums = _column_sums(stats)
    assert sums["media"] == pytest.approx(12000 * 0.58)
    assert sums["media_sets"] == pytest.approx(12000 * 0.21)
    assert sums["tips"] == pytest.approx(12000 * 0.08)
    assert sums["subs"] == pytest.approx(12000 * 0.13)
    assert stats.media == pytest.approx(sums["media"])


def test_every_day_total_is_its_category_sum() -> None:
    stats = SimulationEngine(np.random.default_rng(1)).simulate(5000, "2024-02")
    assert len(stats.daily_data) == 29
    for day in stats.daily_data:
        assert day.total == pytest.approx(day.media + day.media_sets + day.tips + day.subs)
        assert day.total >= 0
    assert sum(d.total for d in stats.daily_data) == pytest.approx(5000)


def test_seeded_generators_reproduce_the_same_shape() -> None:
    first = SimulationEngine(np.random.default_rng(42)).simulate(1000, "2024-06")
    second = SimulationEngine(np.random.default_rng(42)).simulate(1000, "2024-06")
    assert [d.total for d in first.daily_data] == [d.total for d in second.daily_data]


def test_unseeded_runs_vary_but_keep_totals() -> None:
    engine = SimulationEngine()
    first = engine.simulate(1000, "2024-06")
    second = engine.simulate(1000, "2024-06")
    assert [d.total for d in first.daily_data] != [d.total for d in second.daily_data]
    assert sum(d.total for d in first.daily_data) == pytest.approx(
        sum(d.total for d in second.daily_data)
    )


def test_day_weights_are_normalized() -> None:
    weights = SimulationEngine(np.random.default_rng(3)).day_weights(30)
    assert weights.shape == (30,)
    assert weights.sum() == pytest.approx(1.0)
    assert (weights > 0).all()


def test_zero_target_gives_a_flat_month() -> None:
    stats = SimulationEngine().simulate(0, "2024-04")
    assert all(day.total == 0 for day in stats.daily_data)


@pytest.mark.parametrize(
    "target,month_key",
    [
        (-1, "2024-01"),
        (float("inf"), "2024-01"),
        (float("nan"), "2024-01"),
        (100, "2024-13"),
        (100, "1999-01"),
    ],
)
def test_invalid_inputs_are_rejected(target: float, month_key: str) -> None:
    with pytest.raises(ValueError):
        SimulationEngine().simulate(target, month_key)


@pytest.mark.parametrize("seed", range(20))
def test_category_columns_sum_to_their_totals(seed: int) -> None:
    stats = SimulationEngine(np.random.default_rng(seed)).simulate(12345.67, "2024-01")
    assert math.fsum(d.media for d in stats.daily_data) == pytest.approx(
        12345.67 * 0.58, rel=1e-15, abs=1e-9
    )
    assert math.fsum(d.tips for d in stats.daily_data) == pytest.approx(
        12345.67 * 0.08, rel=1e-15, abs=1e-9
    )
