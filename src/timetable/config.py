"""Client configuration loaded from environment variables.

Only backend location, timing and logging knobs live here. Per-user values
(school, academic year, periodicity) travel in an explicit SessionContext.
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class TimetableConfig(BaseSettings):
    """Timetable client configuration loaded from environment variables.

    Settings are loaded from environment variables with sensible defaults.
    For local development, create a .env file in the project root.
    """

    # Backend
    api_base_url: str = Field(
        default="http://localhost:8080/api/",
        description="Root URL of the school administration REST API",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout applied to every HTTP request",
    )
    availability_contract: Literal["boolean", "room_list"] = Field(
        default="room_list",
        description=(
            "Slot check contract for timetable activities: 'boolean' asks "
            "is-plage-horaire-valid first, 'room_list' reads the free rooms directly"
        ),
    )

    # Form timing
    activity_check_debounce_seconds: float = Field(
        default=0.3,
        description="Quiet period before an activity slot is re-checked",
    )
    session_check_debounce_seconds: float = Field(
        default=0.5,
        description="Quiet period before a recorded-session slot is re-checked",
    )
    edit_check_delay_seconds: float = Field(
        default=0.5,
        description="Delay before loading candidate rooms when a form opens in edit mode",
    )

    # Cache
    days_cache_seconds: float = Field(
        default=3600,
        description="How long the weekday list stays cached",
    )
    activities_cache_seconds: float = Field(
        default=300,
        description="How long a class/day activity list stays cached",
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
        "env_prefix": "TIMETABLE_",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("api_base_url")
    @classmethod
    def _ensure_trailing_slash(cls, value: str) -> str:
        return value if value.endswith("/") else f"{value}/"


_config: TimetableConfig | None = None


def get_config() -> TimetableConfig:
    """Get the process-wide configuration used by scripts.

    Returns:
        TimetableConfig: Configuration instance built on first use.
    """
    global _config
    if _config is None:
        _config = TimetableConfig()
    return _config
