"""Persistent operator settings backed by a YAML file."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

MIN_REFRESH_INTERVAL = 5
MAX_REFRESH_INTERVAL = 300


class StoredSettings(BaseModel):
    """Everything kept between runs."""
    auto_refresh_enabled: bool = False
    auto_refresh_interval: int = Field(default=30, description="Seconds between queue refreshes")
    user_name: str = ""
    access_token: str = ""
    token_expires_in: int | None = None
    token_obtained_at: str | None = None


class SettingsStore:
    """Read/write access to ``settings.yaml``.

    Every setter writes the whole file. A missing or unreadable file means
    defaults.
    """

    def __init__(self, path: str = "./data/settings.yaml") -> None:
        self._file = Path(path)
        self._lock = threading.Lock()

    # ── persistence ───────────────────────────────────────────────────

    def load(self) -> StoredSettings:
        """Load settings from disk."""
        if not self._file.exists():
            return StoredSettings()
        try:
            with open(self._file) as f:
                data = yaml.safe_load(f) or {}
            return StoredSettings(**data)
        except (OSError, yaml.YAMLError, ValueError) as e:
            logger.warning(f"Could not read settings from {self._file}: {e}. Using defaults.")
            return StoredSettings()

    def save(self, settings: StoredSettings) -> None:
        """Save settings to disk."""
        self._file.parent.mkdir(parents=True, exist_ok=True)
        with open(self._file, "w") as f:
            yaml.safe_dump(settings.model_dump(), f, sort_keys=False)

    def _update(self, **changes: object) -> None:
        with self._lock:
            current = self.load()
            self.save(current.model_copy(update=changes))

    # ── auto refresh ──────────────────────────────────────────────────

    def get_auto_refresh_enabled(self) -> bool:
        return self.load().auto_refresh_enabled

    def set_auto_refresh_enabled(self, enabled: bool) -> None:
        self._update(auto_refresh_enabled=enabled)

    def get_auto_refresh_interval(self) -> int:
        return self.load().auto_refresh_interval

    def set_auto_refresh_interval(self, seconds: int) -> None:
        if not MIN_REFRESH_INTERVAL <= seconds <= MAX_REFRESH_INTERVAL:
            raise ValueError(
                f"Refresh interval must be between {MIN_REFRESH_INTERVAL} "
                f"and {MAX_REFRESH_INTERVAL} seconds, got {seconds}"
            )
        self._update(auto_refresh_interval=seconds)

    # ── user ──────────────────────────────────────────────────────────

    def get_user_name(self) -> str:
        return self.load().user_name

    def set_user_name(self, name: str) -> None:
        self._update(user_name=name)

    # ── token ─────────────────────────────────────────────────────────

    def get_token(self) -> tuple[str, int | None, str | None]:
        """Stored access token, its ``expires_in`` and ISO ``obtained_at``."""
        settings = self.load()
        return settings.access_token, settings.token_expires_in, settings.token_obtained_at

    def set_token(self, token: str, expires_in: int | None = None, obtained_at: str | None = None) -> None:
        self._update(access_token=token, token_expires_in=expires_in, token_obtained_at=obtained_at)

    def clear_token(self) -> None:
        self._update(access_token="", token_expires_in=None, token_obtained_at=None, user_name="")
