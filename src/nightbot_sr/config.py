"""Configuration management for the Nightbot song-request CLI.

Loads OAuth client credentials and endpoint overrides from .env / the
environment. Operator settings that change at runtime live in the
YAML-backed SettingsStore instead.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field
from dotenv import load_dotenv


DEFAULT_API_BASE = "https://api.nightbot.tv"
DEFAULT_SCOPE = "me song_requests song_requests_queue"


class Settings(BaseModel):
    """Application settings loaded from environment variables."""
    client_id: str = Field(default="", description="Nightbot OAuth client ID")
    client_secret: str = Field(default="", description="Nightbot OAuth client secret (optional)")
    api_base: str = Field(default=DEFAULT_API_BASE, description="Base URL of the Nightbot API")
    device_code_url: str = Field(
        default=f"{DEFAULT_API_BASE}/oauth2/device/code",
        description="Device authorization endpoint",
    )
    token_url: str = Field(default=f"{DEFAULT_API_BASE}/oauth2/token", description="Token endpoint")
    scope: str = Field(default=DEFAULT_SCOPE, description="Space separated OAuth scopes")
    request_timeout: float = Field(default=10.0, description="Per-request HTTP timeout in seconds")
    max_workers: int = Field(default=4, description="Background worker threads")
    settle_delay_ms: int = Field(default=500, description="Delay before re-fetching after a command")
    toggle_settle_delay_ms: int = Field(
        default=1000, description="Delay before re-fetching after toggling requests"
    )
    settings_file: str = Field(default="./data/settings.yaml", description="Operator settings file")


class Config(BaseModel):
    """Full application configuration."""
    settings: Settings

    def api_url(self, path: str) -> str:
        """Join an API path onto the configured base URL."""
        return self.settings.api_base.rstrip("/") + "/" + path.lstrip("/")

    @property
    def settle_delay(self) -> float:
        return self.settings.settle_delay_ms / 1000.0

    @property
    def toggle_settle_delay(self) -> float:
        return self.settings.toggle_settle_delay_ms / 1000.0


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (where .env lives)."""
    current = Path(__file__).resolve().parent
    for parent in [current, *current.parents]:
        if (parent / ".env").exists():
            return parent
    # Fallback: cwd
    return Path.cwd()


def _env(*keys: str, default: str = "") -> str:
    """Try multiple env var names, return the first one found."""
    for key in keys:
        val = os.environ.get(key, "")
        if val:
            return val.strip().strip('"')
    return default


def _load_settings() -> Settings:
    """Load settings from environment variables.

    Supports both NIGHTBOT_* and legacy camelCase names from .env.
    """
    api_base = _env("NIGHTBOT_API_BASE", "apiBase", default=DEFAULT_API_BASE).rstrip("/")
    return Settings(
        client_id=_env("NIGHTBOT_CLIENT_ID", "clientId"),
        client_secret=_env("NIGHTBOT_CLIENT_SECRET", "clientSecret"),
        api_base=api_base,
        device_code_url=_env("NIGHTBOT_DEVICE_CODE_URL", default=f"{api_base}/oauth2/device/code"),
        token_url=_env("NIGHTBOT_TOKEN_URL", default=f"{api_base}/oauth2/token"),
        scope=_env("NIGHTBOT_SCOPE", default=DEFAULT_SCOPE),
        request_timeout=float(_env("NIGHTBOT_REQUEST_TIMEOUT", default="10")),
        max_workers=int(_env("NIGHTBOT_MAX_WORKERS", default="4")),
        settle_delay_ms=int(_env("NIGHTBOT_SETTLE_DELAY_MS", default="500")),
        toggle_settle_delay_ms=int(_env("NIGHTBOT_TOGGLE_SETTLE_DELAY_MS", default="1000")),
        settings_file=_env("NIGHTBOT_SETTINGS_FILE", "settingsFile", default="./data/settings.yaml"),
    )


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Load and cache the full application configuration."""
    project_root = _find_project_root()

    # Load .env from project root if it exists
    env_path = project_root / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Config(settings=_load_settings())
