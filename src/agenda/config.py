"""Agenda configuration loaded from environment variables.

For local development, create a .env file in the project root.
"""

from pydantic import Field
from pydantic_settings import BaseSettings

# Seats per room, keyed by room id. Rooms missing here have no known capacity
# and are never reported as full.
ROOM_CAPACITIES: dict[str, int] = {
    "RB105": 404,
    "RB101": 38,
    "RB102": 84,
    "TR209": 96,
    "TR210": 48,
    "TR211": 108,
    "TR212": 108,
    "TR213": 108,
    "TR214": 108,
    "TR313": 108,
    "TR409-2": 68,
    "TR410": 68,
    "TR411": 38,
    "TR412-3": 40,
    "TR412-2": 38,
    "TR413-1": 38,
    "TR510": 38,
    "TR511": 38,
    "TR512": 38,
    "TR513": 38,
    "TR514": 38,
    "TR609": 38,
    "TR610": 38,
    "TR611": 38,
    "TR613": 38,
    "TR614": 38,
    "TR615": 38,
    "TR616": 36,
}

FAVORITES_STORAGE_KEY = "FAVORITE_SESSIONS"


class AgendaConfig(BaseSettings):
    """Agenda configuration loaded from environment variables."""

    # Snapshot
    snapshot_path: str = Field(
        default="data/session.json",
        description="Path of the exported session snapshot (JSON)",
    )
    timezone_offset_minutes: int = Field(
        default=480,
        ge=-1439,
        le=1439,
        description="Conference timezone offset from UTC, in minutes east",
    )
    default_locale: str = Field(
        default="zh-TW",
        description="Locale used for search and display (en or zh-TW)",
    )

    # Attendance feed
    attendance_url: str = Field(
        default="https://coscup.simbafs.cc/api/attendance",
        description="Attendance feed endpoint",
    )
    attendance_token: str = Field(
        default="coscup2024",
        description="Static token passed as the `token` query parameter",
    )
    attendance_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout for one attendance request",
    )
    attendance_max_attempts: int = Field(
        default=2,
        ge=1,
        description="Attempts per poll before the tick gives up",
    )
    attendance_retry_wait_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Wait between attempts within one poll",
    )
    poll_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Delay between the end of one poll and the start of the next",
    )

    # Favorites
    favorites_path: str = Field(
        default="data/state/favorites.json",
        description="File backing the favorite sessions store",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "AGENDA_",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


_config: AgendaConfig | None = None


def get_config() -> AgendaConfig:
    """Get the agenda configuration singleton."""
    global _config
    if _config is None:
        _config = AgendaConfig()
    return _config
