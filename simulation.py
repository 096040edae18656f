"""
Simulated daily earnings for months without a manual override.

The monthly target is split into categories by the fixed distribution ratios,
then spread over the days with random weights biased towards a mid-month
bump. Every call draws fresh weights, so re-simulating the same month gives a
different shape with identical totals.
"""

import logging
import math
from typing import Optional

import numpy as np

from categories import CATEGORY_FIELDS, DISTRIBUTION_RATIOS, gross_from_net
from periods import parse_month_key
from schemas import DailyStats, DashboardStats

logger = logging.getLogger(__name__)


class SimulationEngine:
    def __init__(self, rng: Optional[np.random.Generator] = None) -> None:
        # A missing generator means a fresh unseeded one per call.
        self.rng = rng

    def _generator(self) -> np.random.Generator:
        return self.rng if self.rng is not None else np.random.default_rng()

    def day_weights(self, days: int) -> np.ndarray:
        """Normalized per-day weights ``U(0, 0.5) + 0.5 * sin(pi * i / days)``."""
        index = np.arange(days)
        weights = self._generator().uniform(0.0, 0.5, size=days) + 0.5 * np.sin(
            np.pi * index / days
        )
        return weights / weights.sum()

    @staticmethod
    def category_totals(target: float) -> dict[str, float]:
        return {name: target * DISTRIBUTION_RATIOS[name] for name in CATEGORY_FIELDS}

    def daily_series(self, target: float, month_key: str) -> list[DailyStats]:
        if not math.isfinite(target) or target < 0:
            raise ValueError(f"Target amount must be a non-negative number, got {target}")
        month = parse_month_key(month_key)
        if month is None:
            raise ValueError(f"Invalid month key {month_key!r}. Expected 'YYYY-MM'")

        shares = self.day_weights(month.days)
        columns: dict[str, list[float]] = {}
        for name, total in self.category_totals(target).items():
            values = (total * shares).tolist()
            # Last day takes the rounding residual of the emitted floats.
            values[-1] = total - math.fsum(values[:-1])
            columns[name] = values

        series: list[DailyStats] = []
        for i in range(month.days):
            day = {name: columns[name][i] for name in CATEGORY_FIELDS}
            series.append(
                DailyStats(
                    date=month.day(i + 1),
                    tips=day["tips"],
                    subs=day["subscriptions"],
                    media=day["media"],
                    media_sets=day["media_sets"],
                    total=sum(day.values()),
                )
            )
        return series

    def simulate(self, target: float, month_key: str) -> DashboardStats:
        totals = self.category_totals(target)
        daily_data = self.daily_series(target, month_key)
        logger.debug(f"simulation_run: month={month_key} target={target}")
        return DashboardStats(
            target_amount=target,
            tips=totals["tips"],
            subs=totals["subscriptions"],
            media=totals["media"],
            media_sets=totals["media_sets"],
            gross_income=gross_from_net(target),
            net_income=target,
            daily_data=daily_data,
            is_manual_override=False,
        )
