"""OAuth2 device authorization for the Nightbot API.

Holds the access token, runs the device-code polling flow and publishes
countdown / completion events while it runs.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta

import httpx

from nightbot_sr.config import Config
from nightbot_sr.models.auth import (
    DEFAULT_POLL_INTERVAL,
    AccessToken,
    AuthState,
    DeviceCodeResponse,
    PendingAuthorization,
    TokenResponse,
    TokenStatus,
)
from nightbot_sr.services.settings_store import SettingsStore
from nightbot_sr.utils.errors import ApiErrorKind, NightbotError
from nightbot_sr.utils.events import (
    AUTH_COUNTDOWN,
    AUTH_FINISHED,
    DEVICE_CODE,
    SIGNED_OUT,
    UNAUTHORIZED,
    EventBus,
)

logger = logging.getLogger(__name__)

DEVICE_CODE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"

# Added to the poll interval each time the server answers slow_down (RFC 8628)
SLOW_DOWN_STEP = 5

_PENDING = "authorization_pending"
_SLOW_DOWN = "slow_down"


class TokenStore:
    """Holds the current access token. Safe for many readers and one writer."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._token: AccessToken | None = None

    def get_token(self) -> str:
        """The bearer string, or "" when unauthenticated."""
        with self._lock:
            return self._token.access_token if self._token else ""

    def get_access_token(self) -> AccessToken | None:
        with self._lock:
            return self._token

    def set_token(self, token: AccessToken | str) -> None:
        if isinstance(token, str):
            token = AccessToken(access_token=token)
        with self._lock:
            self._token = token if token.access_token else None

    def clear(self) -> None:
        with self._lock:
            self._token = None


def _error_detail(response: httpx.Response) -> tuple[str, str]:
    """Return the OAuth ``error`` code and a human description from an error response."""
    error_code = ""
    detail = response.text
    try:
        error_json = response.json()
    except ValueError:
        return error_code, detail
    if isinstance(error_json, dict):
        error_code = str(error_json.get("error", ""))
        detail = str(error_json.get("error_description") or error_json.get("message") or error_code or detail)
    return error_code, detail


class AuthSession:
    """Device-flow state machine: UNAUTHENTICATED → PENDING → AUTHENTICATED.

    Only one polling loop runs at a time. ``clear_tokens`` cancels it from
    any thread; no countdown is published after it returns.
    """

    def __init__(
        self,
        config: Config,
        tokens: TokenStore,
        bus: EventBus,
        settings_store: SettingsStore | None = None,
        tick_seconds: float = 1.0,
    ) -> None:
        self._config = config
        self._tokens = tokens
        self._bus = bus
        self._settings_store = settings_store
        self._tick = tick_seconds
        self._http = httpx.Client(timeout=config.settings.request_timeout)

        self._lock = threading.RLock()
        # Held while a countdown is published, outside the state lock
        self._countdown_lock = threading.RLock()
        self._state = AuthState.UNAUTHENTICATED
        self._pending: PendingAuthorization | None = None
        self._cancel: threading.Event | None = None
        self._thread: threading.Thread | None = None

        self._unsubscribe = bus.subscribe(UNAUTHORIZED, self._on_unauthorized)

    # ── state ─────────────────────────────────────────────────────────

    @property
    def state(self) -> AuthState:
        with self._lock:
            return self._state

    @property
    def pending(self) -> PendingAuthorization | None:
        with self._lock:
            return self._pending

    def is_authenticated(self) -> bool:
        with self._lock:
            return self._state == AuthState.AUTHENTICATED and bool(self._tokens.get_token())

    def get_status(self) -> TokenStatus:
        """Get the current session status.

        Expiry is informational: the server's 401 is what ends a session.
        """
        token = self._tokens.get_access_token()
        state = self.state
        if token is None:
            return TokenStatus(state=state, has_token=False)

        expires_at = token.expires_at
        seconds_remaining = None
        if expires_at is not None:
            seconds_remaining = max(int((expires_at - datetime.now()).total_seconds()), 0)

        return TokenStatus(
            state=state,
            has_token=True,
            expires_at=expires_at,
            seconds_remaining=seconds_remaining,
        )

    def restore(self) -> bool:
        """Load a token persisted by an earlier run. No network I/O."""
        if self._settings_store is None:
            return False

        access_token, expires_in, obtained_at = self._settings_store.get_token()
        if not access_token:
            return False

        obtained = None
        if obtained_at:
            try:
                obtained = datetime.fromisoformat(obtained_at)
            except ValueError:
                logger.warning(f"Ignoring unreadable token timestamp '{obtained_at}'.")

        with self._lock:
            if self._state != AuthState.UNAUTHENTICATED:
                return self._state == AuthState.AUTHENTICATED
            self._tokens.set_token(
                AccessToken(access_token=access_token, expires_in=expires_in, obtained_at=obtained)
            )
            self._state = AuthState.AUTHENTICATED
        logger.info("Restored stored Nightbot token.")
        return True

    # ── device flow ───────────────────────────────────────────────────

    def authenticate(self) -> bool:
        """Start the device flow in the background.

        Returns False without doing anything when a flow is already pending or
        the session is authenticated.

        Raises:
            ValueError: If no client id is configured.
        """
        if not self._config.settings.client_id:
            raise ValueError("No Nightbot client id configured. Set NIGHTBOT_CLIENT_ID in your .env file.")

        with self._lock:
            if self._state != AuthState.UNAUTHENTICATED:
                logger.info(f"Authenticate ignored: session is already {self._state.value}.")
                return False

            cancel = threading.Event()
            self._cancel = cancel
            self._state = AuthState.PENDING
            self._pending = None
            self._thread = threading.Thread(
                target=self._run_flow, args=(cancel,), daemon=True, name="nightbot-auth"
            )
            self._thread.start()
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the running flow ends. Returns True if authenticated."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        return self.is_authenticated()

    def _run_flow(self, cancel: threading.Event) -> None:
        logger.info("Starting Nightbot device authorization...")
        try:
            device = self._request_device_code()
        except NightbotError as e:
            logger.error(f"Device authorization failed: {e}")
            self._finish(cancel, None)
            return

        interval = device.interval if device.interval > 0 else DEFAULT_POLL_INTERVAL
        remaining = device.expires_in
        with self._lock:
            if cancel.is_set():
                return
            self._pending = PendingAuthorization(
                device_code=device.device_code,
                user_code=device.user_code,
                verification_uri=device.verification_uri,
                verification_uri_complete=device.verification_uri_complete,
                expires_at=datetime.now() + timedelta(seconds=device.expires_in),
                interval_seconds=interval,
                remaining_seconds=remaining,
            )
            pending = self._pending
        self._bus.publish(DEVICE_CODE, pending)

        ticks_until_poll = interval
        while remaining > 0:
            if cancel.wait(self._tick):
                return
            remaining -= 1
            ticks_until_poll -= 1

            with self._countdown_lock:
                with self._lock:
                    if cancel.is_set():
                        return
                    self._pending = pending = pending.model_copy(update={"remaining_seconds": remaining})
                self._bus.publish(AUTH_COUNTDOWN, remaining)

            if ticks_until_poll > 0:
                continue

            try:
                result = self._poll_token(device.device_code)
            except NightbotError as e:
                logger.warning(f"Authorization failed: {e}")
                self._finish(cancel, None)
                return

            if isinstance(result, TokenResponse):
                self._finish(cancel, result)
                return
            if result == _SLOW_DOWN:
                interval += SLOW_DOWN_STEP
                logger.info(f"Server asked to slow down; polling every {interval}s.")
            ticks_until_poll = interval

        logger.warning("Device authorization window expired before approval.")
        self._finish(cancel, None)

    def _request_device_code(self) -> DeviceCodeResponse:
        settings = self._config.settings
        try:
            response = self._http.post(
                settings.device_code_url,
                data={"client_id": settings.client_id, "scope": settings.scope},
            )
        except httpx.HTTPError as e:
            raise NightbotError(ApiErrorKind.TRANSPORT_FAILURE, f"Device code request failed: {e}")

        if response.status_code != 200:
            _, detail = _error_detail(response)
            raise NightbotError(
                ApiErrorKind.REMOTE_REJECTED,
                f"Device code request failed (HTTP {response.status_code}): {detail}",
                response.status_code,
            )

        try:
            return DeviceCodeResponse(**response.json())
        except (ValueError, TypeError) as e:
            raise NightbotError(ApiErrorKind.MALFORMED_RESPONSE, f"Unexpected device code response: {e}")

    def _poll_token(self, device_code: str) -> TokenResponse | str:
        """One token poll. Returns the token, or ``_PENDING`` / ``_SLOW_DOWN``."""
        settings = self._config.settings
        data = {
            "grant_type": DEVICE_CODE_GRANT,
            "device_code": device_code,
            "client_id": settings.client_id,
        }
        if settings.client_secret:
            data["client_secret"] = settings.client_secret

        try:
            response = self._http.post(settings.token_url, data=data)
        except httpx.HTTPError as e:
            logger.warning(f"Token poll failed: {e}. Retrying on next interval.")
            return _PENDING

        if response.status_code == 200:
            try:
                token = TokenResponse(**response.json())
            except (ValueError, TypeError) as e:
                raise NightbotError(ApiErrorKind.MALFORMED_RESPONSE, f"Unexpected token response: {e}")
            if not token.access_token:
                raise NightbotError(ApiErrorKind.MALFORMED_RESPONSE, "Token response has an empty access_token")
            return token

        error_code, detail = _error_detail(response)
        if error_code in (_PENDING, _SLOW_DOWN):
            return error_code
        if error_code == "access_denied":
            raise NightbotError(ApiErrorKind.AUTHORIZATION_DENIED, f"Authorization denied: {detail}")
        if error_code == "expired_token":
            raise NightbotError(ApiErrorKind.AUTHORIZATION_EXPIRED, f"Device code expired: {detail}")
        raise NightbotError(
            ApiErrorKind.REMOTE_REJECTED,
            f"Token poll failed (HTTP {response.status_code}): {detail}",
            response.status_code,
        )

    def _finish(self, cancel: threading.Event, token: TokenResponse | None) -> None:
        with self._lock:
            if cancel.is_set():
                # Superseded by clear_tokens
                return
            cancel.set()
            self._pending = None
            if token is None:
                self._state = AuthState.UNAUTHENTICATED
            else:
                access = AccessToken(
                    access_token=token.access_token,
                    token_type=token.token_type,
                    expires_in=token.expires_in,
                    obtained_at=datetime.now(),
                )
                self._tokens.set_token(access)
                self._state = AuthState.AUTHENTICATED
                if self._settings_store is not None:
                    self._settings_store.set_token(
                        access.access_token, access.expires_in, access.obtained_at.isoformat()
                    )

        success = token is not None
        logger.info(f"Nightbot authorization {'succeeded' if success else 'failed'}.")
        self._bus.publish(AUTH_FINISHED, success)

    # ── sign-out ──────────────────────────────────────────────────────

    def clear_tokens(self) -> None:
        """Forget the token and stop any running flow. Safe to call repeatedly."""
        with self._lock:
            was_signed_in = self._state != AuthState.UNAUTHENTICATED or bool(self._tokens.get_token())
            if self._cancel is not None:
                self._cancel.set()
            self._tokens.clear()
            self._state = AuthState.UNAUTHENTICATED
            self._pending = None
            if self._settings_store is not None:
                self._settings_store.clear_token()

        # Wait out a countdown that is being delivered right now
        with self._countdown_lock:
            pass

        if was_signed_in:
            logger.info("Nightbot tokens cleared.")
            self._bus.publish(SIGNED_OUT)

    def invalidate(self) -> None:
        """The API rejected the token; drop the session."""
        if self.state != AuthState.AUTHENTICATED:
            return
        logger.warning("Nightbot rejected the access token; signing out.")
        self.clear_tokens()

    def _on_unauthorized(self, *_: object) -> None:
        self.invalidate()

    def close(self) -> None:
        """Stop any running flow and close the underlying HTTP client."""
        with self._lock:
            if self._cancel is not None:
                self._cancel.set()
        self._unsubscribe()
        self._http.close()
