"""Application configuration utilities."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class AppConfig(BaseModel):
    """Strongly typed configuration loaded from config.json."""

    tick_interval_seconds: float = Field(default=1.0, gt=0)
    http_timeout_seconds: float = Field(default=15.0, gt=0)
    analytics_window_days: int = Field(default=30, ge=1, le=366)
    timezone: str = Field(default="UTC", description="IANA zone used to bucket stats by day")
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:8081",
        ]
    )


def _config_path() -> Path:
    override = os.getenv("CRADLELOG_CONFIG")
    if override:
        return Path(override).expanduser().resolve()
    return Path(__file__).resolve().parents[1] / "config.json"


def load_config() -> AppConfig:
    """Load configuration from config.json, falling back to defaults when absent."""

    config_file = _config_path()
    if not config_file.exists():
        if os.getenv("CRADLELOG_CONFIG"):
            raise FileNotFoundError(f"CRADLELOG_CONFIG points at a missing file: {config_file}")
        return AppConfig()

    contents: Dict[str, Any] = json.loads(config_file.read_text())
    return AppConfig(**contents)


CONFIG = load_config()
