from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_DIR = Path(__file__).resolve().parent


class Settings(BaseSettings):
    # --- Core Paths ---
    questpacks_dir: Path = PACKAGE_DIR / "questpacks"
    data_dir: Path = Path.home() / ".sidequests"
    preferences_db: Optional[Path] = None  # defaults to <data_dir>/preferences.sqlite
    shared_db: Optional[Path] = None  # defaults to <data_dir>/shared.sqlite (widget access)

    # --- Time Of Day ---
    local_tz: str = "America/Vancouver"  # Display only; the day phase follows the home coordinate
    twilight_window_minutes: int = 60  # Width of the sunrise/sunset buckets
    boundary_guard_s: float = 1.0  # Added to every boundary before the timer fires
    day_phase_rollover: bool = True  # Schedule against tomorrow once today's boundaries pass

    # --- Presence ---
    home_region_id: str = "homeRegion"
    home_region_radius_m: float = 500.0
    location_request_timeout_s: float = 10.0

    # --- Scheduler / Logging ---
    scheduler_timezone: str = "UTC"
    log_level: str = "INFO"
    log_file: Optional[Path] = None  # Console only when unset

    model_config = SettingsConfigDict(
        env_prefix="SIDEQUESTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra='ignore'
    )

    @property
    def preferences_path(self) -> Path:
        return self.preferences_db or self.data_dir / "preferences.sqlite"

    @property
    def shared_path(self) -> Path:
        return self.shared_db or self.data_dir / "shared.sqlite"
