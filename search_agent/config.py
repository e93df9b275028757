"""
Application settings loaded from the environment (and a local .env file).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_MODEL = "gpt-4o-mini"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str) -> Path | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return None
    return Path(raw.strip())


@dataclass
class Settings:
    """Runtime configuration for the agent, the session store and the API."""
    openai_api_key: str | None = None
    openai_model: str = DEFAULT_MODEL
    openai_base_url: str | None = None
    temperature: float = 0.1
    oracle_timeout_seconds: float = 30.0
    turn_timeout_seconds: float = 120.0
    stream_responses: bool = True
    session_max_age_hours: float = 24.0
    session_reap_interval_seconds: float = 600.0
    session_snapshot_path: Path | None = None
    token_usage_path: Path | None = None
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])

    @property
    def session_max_age_seconds(self) -> float:
        return self.session_max_age_hours * 3600


def load_settings() -> Settings:
    """Build settings from environment variables, reading .env first."""
    load_dotenv()

    origins = os.environ.get("CORS_ORIGINS", "http://localhost:3000")
    return Settings(
        openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
        openai_model=os.environ.get("OPENAI_MODEL", DEFAULT_MODEL),
        openai_base_url=os.environ.get("OPENAI_BASE_URL") or None,
        temperature=_env_float("OPENAI_TEMPERATURE", 0.1),
        oracle_timeout_seconds=_env_float("ORACLE_TIMEOUT_SECONDS", 30.0),
        turn_timeout_seconds=_env_float("TURN_TIMEOUT_SECONDS", 120.0),
        stream_responses=_env_bool("STREAM_RESPONSES", True),
        session_max_age_hours=_env_float("SESSION_MAX_AGE_HOURS", 24.0),
        session_reap_interval_seconds=_env_float("SESSION_REAP_INTERVAL_SECONDS", 600.0),
        session_snapshot_path=_env_path("SESSION_SNAPSHOT_PATH"),
        token_usage_path=_env_path("TOKEN_USAGE_PATH"),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
    )
