"""Shared fixtures for the nightbot-sr test suite."""
from __future__ import annotations

from concurrent.futures import Future
from unittest.mock import MagicMock

import pytest

from nightbot_sr.auth import TokenStore
from nightbot_sr.client import RequestOutcome
from nightbot_sr.config import Config, Settings
from nightbot_sr.services.settings_store import SettingsStore
from nightbot_sr.utils.events import EventBus


@pytest.fixture
def fake_settings(tmp_path) -> Settings:
    return Settings(
        client_id="test-client-id",
        client_secret="",
        api_base="https://api.nightbot.test",
        device_code_url="https://api.nightbot.test/oauth2/device/code",
        token_url="https://api.nightbot.test/oauth2/token",
        scope="me song_requests song_requests_queue",
        request_timeout=5.0,
        max_workers=2,
        settle_delay_ms=500,
        toggle_settle_delay_ms=1000,
        settings_file=str(tmp_path / "settings.yaml"),
    )


@pytest.fixture
def fake_config(fake_settings) -> Config:
    return Config(settings=fake_settings)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def tokens() -> TokenStore:
    store = TokenStore()
    store.set_token("test-token")
    return store


@pytest.fixture
def settings_store(fake_settings) -> SettingsStore:
    return SettingsStore(fake_settings.settings_file)


class InlinePool:
    """Runs submitted work immediately on the calling thread."""

    def __init__(self) -> None:
        self.submitted = []

    def submit(self, fn, *args) -> Future:
        self.submitted.append((fn, args))
        future: Future = Future()
        try:
            future.set_result(fn(*args))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait: bool = True) -> None:
        pass


@pytest.fixture
def inline_pool() -> InlinePool:
    return InlinePool()


@pytest.fixture
def mock_transport():
    """MagicMock standing in for ApiTransport. Every call answers 200 with an empty object."""
    transport = MagicMock()
    ok = RequestOutcome(status_code=200, body=b"{}")
    transport.execute.return_value = ok
    transport.get.return_value = ok
    transport.post.return_value = ok
    transport.put.return_value = ok
    transport.delete.return_value = ok
    return transport
