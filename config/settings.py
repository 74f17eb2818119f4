"""
Portal Calendar Configuration Settings
"""
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Server
    port: int = Field(default=8000, alias="PORTAL_PORT")
    host: str = Field(default="0.0.0.0", alias="PORTAL_HOST")

    # ==========================================================================
    # CALENDAR GRID
    # ==========================================================================
    # The multi-day widget renders 6AM-10PM at 48px per hour. The day view
    # overrides these per request.
    # ==========================================================================

    grid_start_hour: int = Field(default=6, alias="PORTAL_GRID_START_HOUR")
    grid_end_hour: int = Field(default=23, alias="PORTAL_GRID_END_HOUR")
    hour_height_px: float = Field(default=48.0, alias="PORTAL_HOUR_HEIGHT_PX")
    min_event_height_px: float = Field(
        default=22.0,
        alias="PORTAL_MIN_EVENT_HEIGHT_PX",
        description="Floor for event block height so short events stay clickable"
    )
    snap_minutes: int = Field(
        default=15,
        alias="PORTAL_SNAP_MINUTES",
        description="Granularity for slot-click event creation"
    )
    now_tick_seconds: float = Field(
        default=60.0,
        alias="PORTAL_NOW_TICK_SECONDS",
        description="How often the current-time marker is recomputed"
    )
    default_view_days: int = Field(default=3, alias="PORTAL_DEFAULT_VIEW_DAYS")

    # Local wall-clock timezone (empty = machine local time)
    timezone: str = Field(default="", alias="PORTAL_TIMEZONE")

    # ==========================================================================
    # EVENT SOURCES
    # ==========================================================================

    # Managed backend (company events table, PostgREST-style API)
    backend_url: str = Field(
        default="http://localhost:54321",
        alias="PORTAL_BACKEND_URL",
        description="Base URL of the managed backend REST API"
    )
    backend_api_key: str = Field(default="", alias="PORTAL_BACKEND_API_KEY")
    backend_timeout: float = Field(default=10.0, alias="PORTAL_BACKEND_TIMEOUT")
    company_events_table: str = Field(
        default="calendar_events",
        alias="PORTAL_COMPANY_EVENTS_TABLE"
    )

    # Google Calendar (token obtained by the OAuth collaborator)
    google_access_token: str = Field(default="", alias="GOOGLE_CALENDAR_ACCESS_TOKEN")
    google_calendar_id: str = Field(default="primary", alias="GOOGLE_CALENDAR_ID")
    google_max_results: int = Field(default=250, alias="GOOGLE_CALENDAR_MAX_RESULTS")

    # Palette overrides
    palette_path: Path = Field(
        default=Path(__file__).parent / "calendar_palette.yaml",
        alias="PORTAL_PALETTE_PATH"
    )

    @property
    def google_enabled(self) -> bool:
        """Check if Google Calendar is connected."""
        return bool(self.google_access_token)

    @property
    def local_tz(self) -> Optional[ZoneInfo]:
        """Configured local zone, or None to use the machine's local time."""
        if not self.timezone:
            return None
        return ZoneInfo(self.timezone)


settings = Settings()
