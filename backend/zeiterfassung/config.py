from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic import computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)
    """Application runtime configuration."""

    app_name: str = "Zeiterfassung"
    environment: str = "development"
    host: str = os.getenv("ZE_HOST", "127.0.0.1")
    port: int = int(os.getenv("ZE_PORT", "10000"))
    log_level: str = os.getenv("ZE_LOG_LEVEL", "INFO")

    sqlite_path: Path = Path(os.getenv("ZE_SQLITE_PATH", "./data/zeiterfassung.db"))
    data_dir: Path = Path(os.getenv("ZE_DATA_DIR", "./data"))
    logo_path: Path = Path(os.getenv("ZE_LOGO_PATH", "./data/logo.png"))

    timezone: str = os.getenv("TZ", "Europe/Berlin")

    timesheet_title: str = os.getenv("ZE_TIMESHEET_TITLE", "Erfassungsbogen")
    timesheet_group_mode: str = os.getenv("ZE_TIMESHEET_GROUP_MODE", "week")

    ms_tenant_id: Optional[str] = os.getenv("MS_TENANT_ID")
    ms_client_id: Optional[str] = os.getenv("MS_CLIENT_ID")
    ms_client_secret: Optional[str] = os.getenv("MS_CLIENT_SECRET")
    graph_timeout_seconds: int = int(os.getenv("ZE_GRAPH_TIMEOUT", "30"))

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        return str(value or "INFO").strip().upper()

    @computed_field
    def database_url(self) -> str:
        return f"sqlite:///{self.sqlite_path}"


settings = Settings()

# Ensure essential directories exist
settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
settings.data_dir.mkdir(parents=True, exist_ok=True)
settings.logo_path.parent.mkdir(parents=True, exist_ok=True)
