"""Auth-related data models."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field


DEFAULT_POLL_INTERVAL = 5


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    PENDING = "pending"
    AUTHENTICATED = "authenticated"


class AccessToken(BaseModel):
    """Bearer token plus the expiry metadata the token endpoint reported."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int | None = None
    obtained_at: datetime | None = None

    model_config = {"frozen": True}

    @property
    def expires_at(self) -> datetime | None:
        if self.expires_in is None or self.obtained_at is None:
            return None
        return self.obtained_at + timedelta(seconds=self.expires_in)


class DeviceCodeResponse(BaseModel):
    """Response from the device authorization endpoint."""
    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: str | None = None
    expires_in: int
    interval: int = DEFAULT_POLL_INTERVAL


class TokenResponse(BaseModel):
    """Successful response from the token endpoint."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    scope: str | None = None


class PendingAuthorization(BaseModel):
    """Device-flow bookkeeping while the operator has not approved yet."""
    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: str | None = None
    expires_at: datetime
    interval_seconds: int = Field(default=DEFAULT_POLL_INTERVAL)
    remaining_seconds: int


class TokenStatus(BaseModel):
    """Current state of the session and its access token."""
    state: AuthState
    has_token: bool
    expires_at: datetime | None = None
    seconds_remaining: int | None = None
