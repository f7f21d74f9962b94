"""Tests for utils/errors.py."""
import json

import httpx

from nightbot_sr.utils.errors import ApiErrorKind, NightbotError, _get_code, _get_hint, handle_error


def test_get_hint_not_connected():
    assert "auth login" in _get_hint("NO_TOKEN Not connected to Nightbot")


def test_get_hint_404():
    assert "queue show" in _get_hint("REMOTE_REJECTED HTTP 404")


def test_get_hint_unknown():
    assert _get_hint("something odd happened") is None


def test_get_code_nightbot_error():
    err = NightbotError(ApiErrorKind.MALFORMED_RESPONSE, "bad json")
    assert _get_code(err, str(err)) == "MALFORMED_RESPONSE"


def test_get_code_timeout():
    err = httpx.ReadTimeout("read timeout")
    assert _get_code(err, str(err)) == "TIMEOUT"


def test_get_code_value_error():
    err = ValueError("NIGHTBOT_CLIENT_ID is not set")
    assert _get_code(err, str(err)) == "CONFIG_ERROR"


def test_get_code_fallback():
    err = RuntimeError("skip command failed")
    assert _get_code(err, str(err)) == "RUNTIME_ERROR"


def test_user_message_only_details_remote_rejections():
    assert NightbotError(ApiErrorKind.REMOTE_REJECTED, "Song is too long", 400).user_message == "Song is too long"
    assert NightbotError(ApiErrorKind.TRANSPORT_FAILURE, "ssl handshake").user_message == "Request to Nightbot failed"
    assert NightbotError(ApiErrorKind.NO_TOKEN, "").user_message == "Not connected to Nightbot"


def test_handle_error_structured_output(capsys):
    handle_error(NightbotError(ApiErrorKind.REMOTE_REJECTED, "HTTP 404", status_code=404))

    captured = capsys.readouterr()
    obj = json.loads(captured.out)
    assert obj["error"] is True
    assert obj["code"] == "REMOTE_REJECTED"
    assert obj["status"] == 404
    assert "queue show" in obj["hint"]
    assert "Error:" in captured.err


def test_handle_error_without_hint(capsys):
    handle_error(RuntimeError("something odd happened"))

    obj = json.loads(capsys.readouterr().out)
    assert obj == {"error": True, "code": "RUNTIME_ERROR", "message": "something odd happened"}
