"""Authenticated HTTP transport for the Nightbot API.

Attaches the bearer token, encodes bodies and classifies outcomes. It never
retries and never interprets response bodies; callers decide what to do.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from nightbot_sr.auth import TokenStore
from nightbot_sr.config import Config
from nightbot_sr.utils.errors import ApiErrorKind
from nightbot_sr.utils.events import UNAUTHORIZED, EventBus

logger = logging.getLogger(__name__)

# No HTTP response was obtained: no token, DNS/TLS/connect failure or timeout
TRANSPORT_FAILURE = -1

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=utf-8"
JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class RequestOutcome:
    """Status code (or TRANSPORT_FAILURE) and raw body of one request."""
    status_code: int
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def transport_failed(self) -> bool:
        return self.status_code == TRANSPORT_FAILURE

    def json(self) -> Any:
        """Decode the body. Raises ValueError when it is not JSON."""
        return json.loads(self.body)


def classify(outcome: RequestOutcome, *, has_token: bool = True) -> ApiErrorKind | None:
    """Map an outcome to the error taxonomy; None means success (2xx)."""
    if outcome.transport_failed:
        return ApiErrorKind.TRANSPORT_FAILURE if has_token else ApiErrorKind.NO_TOKEN
    if not outcome.ok:
        return ApiErrorKind.REMOTE_REJECTED
    return None


class ApiTransport:
    """Executes one authenticated call against the Nightbot API."""

    def __init__(self, config: Config, tokens: TokenStore, bus: EventBus | None = None) -> None:
        self._config = config
        self._tokens = tokens
        self._bus = bus
        self._http = httpx.Client(timeout=config.settings.request_timeout)

    def execute(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        form_body: dict[str, str] | None = None,
    ) -> RequestOutcome:
        """Make an authenticated API request.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE).
            path: API path (e.g. "/1/song_requests/queue"). Appended to the base URL.
            json_body: Body sent as JSON.
            form_body: Body sent form-encoded. POST/PUT without any body are
                sent as an empty form, which is what the control endpoints expect.

        Returns:
            The outcome. ``status_code`` is TRANSPORT_FAILURE when no response
            was received, including when there is no token to send.
        """
        method = method.upper()
        url = self._config.api_url(path)

        token = self._tokens.get_token()
        if not token:
            logger.warning(f"Skipping {method} {url}: no access token.")
            return RequestOutcome(status_code=TRANSPORT_FAILURE)

        headers = {"Authorization": f"Bearer {token}"}
        content: bytes | None = None
        if json_body is not None:
            headers["Content-Type"] = JSON_CONTENT_TYPE
            content = json.dumps(json_body, separators=(",", ":")).encode()
        elif form_body is not None or method in ("POST", "PUT"):
            headers["Content-Type"] = FORM_CONTENT_TYPE
            content = urlencode(form_body or {}).encode()

        logger.debug(f"{method} {url}")
        try:
            response = self._http.request(method=method, url=url, headers=headers, content=content)
        except httpx.HTTPError as e:
            logger.error(f"{method} request to '{url}' failed: {e}")
            return RequestOutcome(status_code=TRANSPORT_FAILURE)

        logger.debug(f"Response: {response.status_code}")
        if response.status_code == 401 and self._bus is not None:
            self._bus.publish(UNAUTHORIZED, url)

        return RequestOutcome(status_code=response.status_code, body=response.content)

    def get(self, path: str) -> RequestOutcome:
        """Convenience method for GET requests."""
        return self.execute("GET", path)

    def post(self, path: str, **kwargs: Any) -> RequestOutcome:
        """Convenience method for POST requests."""
        return self.execute("POST", path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> RequestOutcome:
        """Convenience method for PUT requests."""
        return self.execute("PUT", path, **kwargs)

    def delete(self, path: str) -> RequestOutcome:
        """Convenience method for DELETE requests."""
        return self.execute("DELETE", path)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._http.close()
