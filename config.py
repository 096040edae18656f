import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        overrides_key: str,
        target_key: str,
        default_target: float,
        export_prefix: str,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.overrides_key = overrides_key
        self.target_key = target_key
        self.default_target = default_target
        self.export_prefix = export_prefix
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("EARNINGS_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "earnings.db"
    database_url = os.getenv("EARNINGS_DATABASE_URL", f"sqlite:///{default_db}")
    overrides_key = os.getenv("EARNINGS_OVERRIDES_KEY", "earnings_manual_overrides")
    target_key = os.getenv("EARNINGS_TARGET_KEY", "earnings_target")
    default_target = float(os.getenv("EARNINGS_DEFAULT_TARGET", "12000"))
    export_prefix = os.getenv("EARNINGS_EXPORT_PREFIX", "earnings_manual_overrides")
    log_level = os.getenv("EARNINGS_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        overrides_key=overrides_key,
        target_key=target_key,
        default_target=default_target,
        export_prefix=export_prefix,
        log_level=log_level,
    )
