import datetime as dt
import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DailyCategoryBreakdown(CamelModel):
    media: float = 0.0
    media_sets: float = 0.0
    tips: float = 0.0
    subscriptions: float = 0.0


class CategoryTotals(CamelModel):
    media: float = 0.0
    media_sets: float = 0.0
    tips: float = 0.0
    subscriptions: float = 0.0


class CategoryPercentages(CamelModel):
    media: Optional[float] = None
    media_sets: Optional[float] = None
    tips: Optional[float] = None
    subscriptions: Optional[float] = None


class MonthlyOverride(CamelModel):
    daily_category_values: dict[str, DailyCategoryBreakdown] = Field(
        default_factory=dict
    )
    daily_values: Optional[dict[str, float]] = None
    net_income: float = 0.0
    gross_income: float = 0.0
    categories: CategoryTotals = Field(default_factory=CategoryTotals)
    category_percentages: Optional[CategoryPercentages] = None
    is_manual: bool = True
    last_updated: str = ""
    note: Optional[str] = None

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class DailyStats(CamelModel):
    date: dt.date
    tips: float
    subs: float
    media: float
    media_sets: float
    total: float


class DashboardStats(CamelModel):
    target_amount: float
    tips: float
    subs: float
    media: float
    media_sets: float
    gross_income: float
    net_income: float
    daily_data: list[DailyStats]
    is_manual_override: bool = False
    override_month_key: Optional[str] = None


class ImportResult(CamelModel):
    success: int = 0
    errors: list[str] = Field(default_factory=list)
    total: int = 0


class OverrideIn(CamelModel):
    daily_category_values: dict[str, DailyCategoryBreakdown]
    note: Optional[str] = Field(default=None, max_length=500)

    @field_validator("daily_category_values")
    @classmethod
    def _finite_and_non_negative(
        cls, value: dict[str, DailyCategoryBreakdown]
    ) -> dict[str, DailyCategoryBreakdown]:
        for day, breakdown in value.items():
            values = breakdown.model_dump().values()
            if not all(math.isfinite(v) for v in values):
                raise ValueError(f"Day {day}: values must be finite numbers")
            if min(values) < 0:
                raise ValueError(f"Day {day}: values must not be negative")
        return value


class DistributeIn(CamelModel):
    net_income: float = Field(..., ge=0, allow_inf_nan=False)
    note: Optional[str] = Field(default=None, max_length=500)


class TargetIn(CamelModel):
    target_amount: float = Field(..., ge=0, allow_inf_nan=False)
