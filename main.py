import logging
import math
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.responses import Response, StreamingResponse

from backends import KeyValueBackend, SQLAlchemyBackend
from categories import draft_daily_category_values
from config import get_settings
from csv_utils import export_filename
from database import init_db
from periods import days_in_month, is_valid_month_key
from schemas import (
    DashboardStats,
    DistributeIn,
    ImportResult,
    MonthlyOverride,
    OverrideIn,
    TargetIn,
)
from services import (
    CSVService,
    OverrideStore,
    StatsResolver,
    TargetAmountStore,
    monthly_summary,
)
from simulation import SimulationEngine

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Earnings Dashboard")


def get_backend() -> KeyValueBackend:
    return SQLAlchemyBackend()


def get_store(backend: KeyValueBackend = Depends(get_backend)) -> OverrideStore:
    return OverrideStore(backend)


def get_target_store(
    backend: KeyValueBackend = Depends(get_backend),
) -> TargetAmountStore:
    return TargetAmountStore(backend)


def get_engine() -> SimulationEngine:
    return SimulationEngine()


@app.on_event("startup")
def startup_event():
    init_db()
    logger.info("Database initialised")


def require_month_key(month_key: str) -> str:
    if not is_valid_month_key(month_key):
        raise HTTPException(
            status_code=400,
            detail=f'Invalid month format "{month_key}". Expected "YYYY-MM"',
        )
    return month_key


def _dump(override: MonthlyOverride) -> dict:
    return override.model_dump(by_alias=True, exclude_none=True)


@app.get("/api/stats/{month_key}", response_model=DashboardStats, response_model_by_alias=True)
def api_stats(
    month_key: str,
    target: Optional[float] = None,
    store: OverrideStore = Depends(get_store),
    targets: TargetAmountStore = Depends(get_target_store),
    engine: SimulationEngine = Depends(get_engine),
):
    require_month_key(month_key)
    if target is None:
        target = targets.get()
    if not math.isfinite(target) or target < 0:
        raise HTTPException(
            status_code=400, detail="Target amount must be a non-negative number"
        )
    try:
        return StatsResolver(store, engine).resolve(month_key, target)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/target")
def api_get_target(targets: TargetAmountStore = Depends(get_target_store)):
    return {"targetAmount": targets.get()}


@app.put("/api/target")
def api_set_target(
    payload: TargetIn, targets: TargetAmountStore = Depends(get_target_store)
):
    return {"targetAmount": targets.set(payload.target_amount)}


@app.get("/api/overrides")
def api_list_overrides(store: OverrideStore = Depends(get_store)):
    return monthly_summary(store)


@app.delete("/api/overrides")
def api_clear_overrides(store: OverrideStore = Depends(get_store)):
    store.clear()
    return Response(status_code=204)


@app.get("/api/overrides/{month_key}")
def api_get_override(month_key: str, store: OverrideStore = Depends(get_store)):
    require_month_key(month_key)
    override = store.get(month_key)
    if override is None:
        raise HTTPException(status_code=404, detail="Override not found")
    return _dump(override)


@app.get("/api/overrides/{month_key}/draft")
def api_override_draft(month_key: str, store: OverrideStore = Depends(get_store)):
    require_month_key(month_key)
    override = store.get(month_key)
    values = draft_daily_category_values(override, days_in_month(month_key))
    return {
        "monthKey": month_key,
        "exists": override is not None,
        "note": override.note if override else None,
        "dailyCategoryValues": {
            day: breakdown.model_dump(by_alias=True) for day, breakdown in values.items()
        },
    }


@app.put("/api/overrides/{month_key}")
def api_save_override(
    month_key: str, payload: OverrideIn, store: OverrideStore = Depends(get_store)
):
    require_month_key(month_key)
    if not any(
        value > 0
        for breakdown in payload.daily_category_values.values()
        for value in breakdown.model_dump().values()
    ):
        raise HTTPException(
            status_code=400, detail="Please enter at least one value greater than 0"
        )
    override = MonthlyOverride(
        daily_category_values=payload.daily_category_values,
        note=(payload.note or "").strip() or None,
    )
    saved = store.save(month_key, override)
    if saved is None:
        raise HTTPException(status_code=500, detail="Failed to save override")
    return _dump(saved)


@app.post("/api/overrides/{month_key}/distribute")
def api_distribute_override(
    month_key: str, payload: DistributeIn, store: OverrideStore = Depends(get_store)
):
    require_month_key(month_key)
    if payload.net_income <= 0:
        raise HTTPException(status_code=400, detail="Please enter a monthly total first")
    saved = store.distribute(month_key, payload.net_income, payload.note)
    if saved is None:
        raise HTTPException(status_code=500, detail="Failed to save override")
    return _dump(saved)


@app.post("/api/overrides/{month_key}/copy-day/{day}")
def api_copy_day(month_key: str, day: int, store: OverrideStore = Depends(get_store)):
    require_month_key(month_key)
    if not 1 <= day <= days_in_month(month_key):
        raise HTTPException(status_code=400, detail=f"Day {day} is outside {month_key}")
    saved = store.copy_day(month_key, day)
    if saved is None:
        raise HTTPException(status_code=404, detail="Override not found")
    return _dump(saved)


@app.delete("/api/overrides/{month_key}")
def api_delete_override(month_key: str, store: OverrideStore = Depends(get_store)):
    store.delete(month_key)
    return Response(status_code=204)


@app.get("/overrides/export.csv")
def export_overrides_endpoint(store: OverrideStore = Depends(get_store)):
    csv_text = CSVService(store).export()
    filename = export_filename(get_settings().export_prefix)
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/overrides/import", response_model=ImportResult, response_model_by_alias=True)
async def import_overrides_endpoint(
    file: UploadFile = File(...), store: OverrideStore = Depends(get_store)
):
    return await CSVService(store).import_file(file)
