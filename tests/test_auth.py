"""Tests for auth.py — token store, device flow polling, sign-out, restore."""
import threading
import time
from datetime import datetime
from unittest.mock import MagicMock

import httpx
import pytest

from nightbot_sr.auth import DEVICE_CODE_GRANT, AuthSession, TokenStore
from nightbot_sr.config import Config
from nightbot_sr.models.auth import AccessToken, AuthState
from nightbot_sr.utils.events import (
    AUTH_COUNTDOWN,
    AUTH_FINISHED,
    DEVICE_CODE,
    SIGNED_OUT,
    UNAUTHORIZED,
)

DEVICE_URL = "https://api.nightbot.test/oauth2/device/code"
TOKEN_URL = "https://api.nightbot.test/oauth2/token"


def _resp(status_code=200, json_data=None, text=""):
    """Build a fake httpx.Response."""
    r = MagicMock()
    r.status_code = status_code
    r.text = text
    r.json.return_value = json_data if json_data is not None else {}
    return r


def _device_resp(expires_in=600, interval=1):
    return _resp(200, {
        "device_code": "dev-123",
        "user_code": "ABCD-EFGH",
        "verification_uri": "https://nightbot.tv/activate",
        "expires_in": expires_in,
        "interval": interval,
    })


def _pending():
    return _resp(400, {"error": "authorization_pending"})


def _token(access_token="tok-abc"):
    return _resp(200, {"access_token": access_token, "token_type": "bearer", "expires_in": 2592000})


def _router(device, poll_responses):
    """side_effect for _http.post: device endpoint once, then poll responses in order."""
    polls = iter(poll_responses)

    def post(url, data=None):
        if url == DEVICE_URL:
            return device
        item = next(polls)
        if isinstance(item, Exception):
            raise item
        return item

    return post


class _Recorder:
    def __init__(self, bus, session=None):
        self.countdown = []
        self.finished = []
        self.device = []
        self.signed_out = 0
        self.states = []
        self._session = session
        bus.subscribe(AUTH_COUNTDOWN, self._on_countdown)
        bus.subscribe(AUTH_FINISHED, self.finished.append)
        bus.subscribe(DEVICE_CODE, self._on_device)
        bus.subscribe(SIGNED_OUT, self._on_signed_out)

    def _on_countdown(self, remaining):
        self.countdown.append(remaining)
        if self._session is not None:
            self.states.append(self._session.state)

    def _on_device(self, pending):
        self.device.append(pending)
        if self._session is not None:
            self.states.append(self._session.state)

    def _on_signed_out(self):
        self.signed_out += 1


@pytest.fixture
def session(fake_config, bus, settings_store):
    s = AuthSession(fake_config, TokenStore(), bus, settings_store, tick_seconds=0.0)
    s._http = MagicMock()
    yield s
    s.close()


# ── TokenStore ───────────────────────────────────────────────────────

def test_token_store_empty():
    assert TokenStore().get_token() == ""


def test_token_store_set_string():
    store = TokenStore()
    store.set_token("abc")
    assert store.get_token() == "abc"
    assert store.get_access_token().access_token == "abc"


def test_token_store_set_access_token():
    store = TokenStore()
    store.set_token(AccessToken(access_token="abc", expires_in=60))
    assert store.get_access_token().expires_in == 60


def test_token_store_clear():
    store = TokenStore()
    store.set_token("abc")
    store.clear()
    assert store.get_token() == ""
    assert store.get_access_token() is None


def test_token_store_set_empty_clears():
    store = TokenStore()
    store.set_token("abc")
    store.set_token("")
    assert store.get_access_token() is None


# ── Device flow ──────────────────────────────────────────────────────

def test_pending_five_times_then_token(session, bus, settings_store):
    rec = _Recorder(bus, session)
    session._http.post.side_effect = _router(_device_resp(), [_pending()] * 5 + [_token()])

    assert session.state == AuthState.UNAUTHENTICATED
    assert session.authenticate() is True
    assert session.wait(5) is True

    assert session.state == AuthState.AUTHENTICATED
    assert rec.finished == [True]
    assert set(rec.states) == {AuthState.PENDING}
    assert session.is_authenticated()
    assert settings_store.get_token()[0] == "tok-abc"


def test_device_code_request_is_form_encoded(session, bus):
    session._http.post.side_effect = _router(_device_resp(), [_token()])
    session.authenticate()
    session.wait(5)

    first = session._http.post.call_args_list[0]
    assert first[0][0] == DEVICE_URL
    assert first[1]["data"]["client_id"] == "test-client-id"
    assert "song_requests" in first[1]["data"]["scope"]


def test_poll_sends_device_code_grant(session):
    session._http.post.side_effect = _router(_device_resp(), [_token()])
    session.authenticate()
    session.wait(5)

    poll = session._http.post.call_args_list[1]
    assert poll[0][0] == TOKEN_URL
    assert poll[1]["data"]["grant_type"] == DEVICE_CODE_GRANT
    assert poll[1]["data"]["device_code"] == "dev-123"
    assert "client_secret" not in poll[1]["data"]


def test_client_secret_sent_when_configured(fake_settings, bus):
    fake_settings.client_secret = "shh"
    s = AuthSession(Config(settings=fake_settings), TokenStore(), bus, tick_seconds=0.0)
    s._http = MagicMock()
    s._http.post.side_effect = _router(_device_resp(), [_token()])
    s.authenticate()
    s.wait(5)
    assert s._http.post.call_args_list[1][1]["data"]["client_secret"] == "shh"


def test_device_code_event_carries_user_code(session, bus):
    rec = _Recorder(bus)
    session._http.post.side_effect = _router(_device_resp(), [_token()])
    session.authenticate()
    session.wait(5)

    assert rec.device[0].user_code == "ABCD-EFGH"
    assert rec.device[0].verification_uri == "https://nightbot.tv/activate"


def test_countdown_strictly_decreases(session, bus):
    rec = _Recorder(bus)
    session._http.post.side_effect = _router(_device_resp(expires_in=600), [_pending()] * 3 + [_token()])
    session.authenticate()
    session.wait(5)

    assert rec.countdown == [599, 598, 597, 596]


def test_window_expiry_fails(session, bus):
    rec = _Recorder(bus)
    session._http.post.side_effect = _router(_device_resp(expires_in=3), [_pending()] * 3)
    session.authenticate()

    assert session.wait(5) is False
    assert rec.countdown == [2, 1, 0]
    assert rec.finished == [False]
    assert session.state == AuthState.UNAUTHENTICATED


def test_access_denied_fails(session, bus):
    rec = _Recorder(bus)
    session._http.post.side_effect = _router(_device_resp(), [_resp(400, {"error": "access_denied"})])
    session.authenticate()

    assert session.wait(5) is False
    assert rec.finished == [False]


def test_expired_token_error_fails(session, bus):
    rec = _Recorder(bus)
    session._http.post.side_effect = _router(_device_resp(), [_resp(400, {"error": "expired_token"})])
    session.authenticate()

    assert session.wait(5) is False
    assert rec.finished == [False]


def test_unexpected_error_fails(session, bus):
    rec = _Recorder(bus)
    session._http.post.side_effect = _router(_device_resp(), [_resp(500, text="Internal Server Error")])
    session.authenticate()

    assert session.wait(5) is False
    assert rec.finished == [False]


def test_malformed_token_response_fails(session, bus):
    rec = _Recorder(bus)
    session._http.post.side_effect = _router(_device_resp(), [_resp(200, {"token_type": "bearer"})])
    session.authenticate()

    assert session.wait(5) is False
    assert rec.finished == [False]


def test_empty_access_token_fails(session, bus):
    rec = _Recorder(bus)
    session._http.post.side_effect = _router(_device_resp(), [_token(access_token="")])
    session.authenticate()

    assert session.wait(5) is False
    assert rec.finished == [False]
    assert session.state == AuthState.UNAUTHENTICATED


def test_countdown_handler_can_read_state_from_another_thread(session, bus):
    answered = []

    def on_countdown(remaining):
        reader = threading.Thread(target=lambda: answered.append(session.state))
        reader.start()
        reader.join(2)

    bus.subscribe(AUTH_COUNTDOWN, on_countdown)
    session._http.post.side_effect = _router(_device_resp(interval=1), [_token()])
    session.authenticate()

    assert session.wait(10) is True
    assert answered == [AuthState.PENDING]


def test_slow_down_increases_interval(session, bus):
    rec = _Recorder(bus)
    session._http.post.side_effect = _router(
        _device_resp(interval=1), [_resp(400, {"error": "slow_down"}), _token()]
    )
    session.authenticate()

    assert session.wait(5) is True
    # one tick before the first poll, then six more once the interval grew by 5
    assert len(rec.countdown) == 7


def test_transport_error_while_polling_is_retried(session, bus):
    rec = _Recorder(bus)
    session._http.post.side_effect = _router(
        _device_resp(), [httpx.ConnectError("connection refused"), _pending(), _token()]
    )
    session.authenticate()

    assert session.wait(5) is True
    assert rec.finished == [True]


def test_transport_error_at_expiry_fails(session, bus):
    rec = _Recorder(bus)
    session._http.post.side_effect = _router(
        _device_resp(expires_in=2), [httpx.ConnectError("down"), httpx.ConnectError("down")]
    )
    session.authenticate()

    assert session.wait(5) is False
    assert rec.finished == [False]


def test_device_code_http_error_fails(session, bus):
    rec = _Recorder(bus)
    session._http.post.return_value = _resp(400, {"error": "invalid_client", "error_description": "bad client"})
    session.authenticate()

    assert session.wait(5) is False
    assert rec.finished == [False]
    assert rec.countdown == []


def test_device_code_transport_error_fails(session, bus):
    rec = _Recorder(bus)
    session._http.post.side_effect = httpx.ConnectError("connection refused")
    session.authenticate()

    assert session.wait(5) is False
    assert rec.finished == [False]


def test_missing_client_id_raises(fake_settings, bus):
    fake_settings.client_id = ""
    s = AuthSession(Config(settings=fake_settings), TokenStore(), bus)
    with pytest.raises(ValueError, match="client id"):
        s.authenticate()
    s.close()


# ── Idempotence and cancellation ─────────────────────────────────────

def test_authenticate_while_pending_is_noop(fake_config, bus, settings_store):
    rec = _Recorder(bus)
    s = AuthSession(fake_config, TokenStore(), bus, settings_store, tick_seconds=0.01)
    s._http = MagicMock()
    s._http.post.side_effect = _router(_device_resp(expires_in=600, interval=1000), [])
    try:
        assert s.authenticate() is True
        assert s.authenticate() is False
        assert s.state == AuthState.PENDING
        deadline = time.time() + 5
        while not rec.device and time.time() < deadline:
            time.sleep(0.01)
    finally:
        s.clear_tokens()
        s.close()
    # device code requested once only
    assert s._http.post.call_count == 1


def test_clear_tokens_stops_countdown(fake_config, bus, settings_store):
    rec = _Recorder(bus)
    s = AuthSession(fake_config, TokenStore(), bus, settings_store, tick_seconds=0.01)
    s._http = MagicMock()
    s._http.post.side_effect = _router(_device_resp(expires_in=600, interval=1000), [])

    s.authenticate()
    deadline = time.time() + 5
    while not rec.countdown and time.time() < deadline:
        time.sleep(0.01)

    s.clear_tokens()
    ticks = len(rec.countdown)
    time.sleep(0.1)

    assert len(rec.countdown) == ticks
    assert s.state == AuthState.UNAUTHENTICATED
    assert not s.is_authenticated()
    assert rec.finished == []
    s.close()


def test_authenticate_when_authenticated_is_noop(session, settings_store):
    settings_store.set_token("stored-token")
    session.restore()
    assert session.authenticate() is False
    session._http.post.assert_not_called()


def test_clear_tokens_idempotent(session, bus, settings_store):
    rec = _Recorder(bus)
    settings_store.set_token("stored-token")
    session.restore()

    session.clear_tokens()
    session.clear_tokens()

    assert not session.is_authenticated()
    assert rec.signed_out == 1
    assert settings_store.get_token()[0] == ""


def test_clear_tokens_when_signed_out(session):
    session.clear_tokens()
    assert session.state == AuthState.UNAUTHENTICATED
    assert not session.is_authenticated()


# ── restore / invalidate / status ────────────────────────────────────

def test_restore_loads_stored_token(session, settings_store):
    settings_store.set_token("stored-token", 3600, datetime.now().isoformat())
    assert session.restore() is True
    assert session.is_authenticated()
    status = session.get_status()
    assert status.has_token is True
    assert status.seconds_remaining > 0


def test_restore_without_token(session):
    assert session.restore() is False
    assert session.state == AuthState.UNAUTHENTICATED


def test_restore_ignores_bad_timestamp(session, settings_store):
    settings_store.set_token("stored-token", 3600, "not-a-date")
    assert session.restore() is True
    assert session.get_status().expires_at is None


def test_unauthorized_event_signs_out(session, bus, settings_store):
    settings_store.set_token("stored-token")
    session.restore()

    bus.publish(UNAUTHORIZED, "https://api.nightbot.test/1/me")

    assert not session.is_authenticated()
    assert settings_store.get_token()[0] == ""


def test_unauthorized_while_signed_out_is_ignored(session, bus):
    rec = _Recorder(bus)
    bus.publish(UNAUTHORIZED, "https://api.nightbot.test/1/me")
    assert rec.signed_out == 0


def test_status_no_token(session):
    status = session.get_status()
    assert status.state == AuthState.UNAUTHENTICATED
    assert status.has_token is False
    assert status.seconds_remaining is None
