"""Runtime settings for relaxed-planner.

This module uses Pydantic Settings for values that come from the
environment rather than from config.yaml:
- Google OAuth client credentials (PLANNER_GOOGLE_ prefix)
- Data directory and log level overrides (PLANNER_ prefix)
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSettings(BaseSettings):
    """Google OAuth client settings used for token refresh.

    Can be overridden via environment variables with PLANNER_GOOGLE_ prefix.
    """

    model_config = SettingsConfigDict(env_prefix="PLANNER_GOOGLE_")

    client_id: str = Field(
        default="",
        description="OAuth client id registered for the planner",
    )
    client_secret: str = Field(
        default="",
        description="OAuth client secret registered for the planner",
    )


class PlannerSettings(BaseSettings):
    """Process-level overrides.

    Can be overridden via environment variables with PLANNER_ prefix.
    """

    model_config = SettingsConfigDict(env_prefix="PLANNER_")

    data_dir: Path | None = Field(
        default=None,
        description="Directory holding the database, preferences and config",
    )
    log_level: str | None = Field(
        default=None,
        description="Overrides the log level from config.yaml",
    )
