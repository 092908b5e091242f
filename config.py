import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        projection_method: str,
        upcoming_days: int,
        projection_months: int,
        calendar_months: int,
        reconcile_hour: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.projection_method = projection_method
        self.upcoming_days = upcoming_days
        self.projection_months = projection_months
        self.calendar_months = calendar_months
        self.reconcile_hour = reconcile_hour


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("RADAR_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "radar.db"
    database_url = os.getenv("RADAR_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("RADAR_TIMEZONE", "America/New_York")
    projection_method = os.getenv("RADAR_PROJECTION_METHOD", "exact").lower()
    if projection_method not in ("exact", "approximate"):
        raise ValueError(
            f"RADAR_PROJECTION_METHOD must be 'exact' or 'approximate', got {projection_method!r}"
        )
    upcoming_days = int(os.getenv("RADAR_UPCOMING_DAYS", "30"))
    projection_months = int(os.getenv("RADAR_PROJECTION_MONTHS", "12"))
    calendar_months = int(os.getenv("RADAR_CALENDAR_MONTHS", "12"))
    reconcile_hour = int(os.getenv("RADAR_RECONCILE_HOUR", "3"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        projection_method=projection_method,
        upcoming_days=upcoming_days,
        projection_months=projection_months,
        calendar_months=calendar_months,
        reconcile_hour=reconcile_hour,
    )
