"""Data types shared by the Pi-hole API client and the blocking coordinator."""

from __future__ import annotations

from dataclasses import dataclass
import enum
import re
from typing import Any

from .const import (
    APP_PASSWORD_MIN_LENGTH,
    LEGACY_TOKEN_LENGTH,
    STATUS_DISABLED,
    STATUS_ENABLED,
    STATUS_FIELD_NAMES,
    STATUS_UNKNOWN,
)

LEGACY_TOKEN_PATTERN = re.compile(rf"^[0-9a-fA-F]{{{LEGACY_TOKEN_LENGTH}}}$")

_TRUE_STRINGS = frozenset({"enabled", "true", "1"})
_FALSE_STRINGS = frozenset({"disabled", "false", "0"})


class BlockingStatus(enum.Enum):
    """Blocking state as last observed on the device.

    UNKNOWN is both the initial state and the state before any successful
    read. It is never treated as DISABLED.
    """

    ENABLED = STATUS_ENABLED
    DISABLED = STATUS_DISABLED
    UNKNOWN = STATUS_UNKNOWN

    @classmethod
    def from_bool(cls, enabled: bool) -> BlockingStatus:
        """Map a decoded blocking flag to a status."""
        return cls.ENABLED if enabled else cls.DISABLED


class AuthMode(enum.Enum):
    """Ways of presenting the credential to the device."""

    BEARER = "bearer"
    TOKEN_HEADER = "token header"
    QUERY_TOKEN = "query token"
    SESSION = "session"
    NONE = "none"


# Order tried when no session is available or session auth was rejected
FALLBACK_AUTH_MODES: tuple[AuthMode, ...] = (
    AuthMode.BEARER,
    AuthMode.TOKEN_HEADER,
    AuthMode.QUERY_TOKEN,
)


class AttemptOutcome(enum.Enum):
    """Result of a single authenticated request attempt."""

    SUCCESS = "success"
    AUTH_REJECTED = "auth_rejected"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class ApiResponse:
    """A completed HTTP round-trip.

    Attributes:
        status: HTTP status code.
        text: Decoded response body.
        endpoint: Request path relative to the device base URL.
        auth_mode: The auth mode the request was sent with.
    """

    status: int
    text: str
    endpoint: str
    auth_mode: AuthMode

    @property
    def ok(self) -> bool:
        """Return True for 2xx responses."""
        return 200 <= self.status < 300

    @property
    def is_auth_rejection(self) -> bool:
        """Return True when the device rejected the credential."""
        return self.status in (401, 403)

    @property
    def outcome(self) -> AttemptOutcome:
        """Classify the response for auth negotiation."""
        if self.ok:
            return AttemptOutcome.SUCCESS
        if self.is_auth_rejection:
            return AttemptOutcome.AUTH_REJECTED
        return AttemptOutcome.TERMINAL


@dataclass(frozen=True)
class DisableDirective:
    """Request to disable blocking, optionally for a limited time.

    A duration of None disables blocking until it is enabled again.
    """

    duration_seconds: int | None = None

    def __post_init__(self) -> None:
        duration = self.duration_seconds
        if duration is None:
            return
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise ValueError(f"Disable duration must be a positive number of seconds, got {duration!r}")

    @classmethod
    def from_minutes(cls, minutes: int | None) -> DisableDirective:
        """Build a directive from a configured minute count (0 means indefinite)."""
        if not minutes or minutes <= 0:
            return cls()
        return cls(minutes * 60)

    def to_json_body(self) -> dict[str, Any]:
        """Encode as the new-generation blocking payload."""
        body: dict[str, Any] = {"status": STATUS_DISABLED, "blocking": False}
        if self.duration_seconds is not None:
            body["duration"] = self.duration_seconds
        return body

    def to_sub_action_body(self) -> dict[str, Any] | None:
        """Encode as the body of the dedicated disable sub-action."""
        if self.duration_seconds is None:
            return None
        return {"duration": self.duration_seconds}

    def to_legacy_query(self) -> dict[str, str]:
        """Encode as legacy query parameters (?disable or ?disable=N)."""
        if self.duration_seconds is None:
            return {"disable": ""}
        return {"disable": str(self.duration_seconds)}


ENABLE_JSON_BODY: dict[str, Any] = {"status": STATUS_ENABLED, "blocking": True}


def credential_looks_like_app_password(credential: str) -> bool | None:
    """Guess which API generation a credential was issued for.

    Returns False for a 32 character hex token (legacy shape), True for 40 or
    more characters (new-generation app password), None when undecided.
    """
    if LEGACY_TOKEN_PATTERN.match(credential):
        return False
    if len(credential) >= APP_PASSWORD_MIN_LENGTH:
        return True
    return None


@dataclass(frozen=True)
class LegacyErrorDiagnostics:
    """Context attached to errors from the legacy API."""

    method: str
    endpoint: str
    status_code: int
    action: str
    auth_mode: str
    token_looks_like_app_password: bool | None

    def describe(self) -> str:
        """Render the diagnostics for a user-facing message."""
        if self.token_looks_like_app_password is True:
            shape = "looks like a v6 app password"
        elif self.token_looks_like_app_password is False:
            shape = "looks like a v5 API token"
        else:
            shape = "unrecognized"
        return (
            f"Request: {self.method} {self.endpoint} (HTTP {self.status_code})\n"
            f"Action: {self.action}\n"
            f"Auth: {self.auth_mode}\n"
            f"Token shape: {shape}"
        )


def decode_flexible_bool(value: Any) -> bool | None:
    """Decode a bool that may arrive as a bool or as a string."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def decode_blocking_status(payload: Any) -> bool | None:
    """Extract the blocking flag from a status payload.

    Some builds report the flag as a bool, others as "enabled"/"disabled".
    Fields are checked in STATUS_FIELD_NAMES order and the first one holding
    a decodable value wins.
    """
    if not isinstance(payload, dict):
        return None
    for field in STATUS_FIELD_NAMES:
        decoded = decode_flexible_bool(payload.get(field))
        if decoded is not None:
            return decoded
    return None


def format_remaining(seconds: int | None) -> str | None:
    """Format a countdown as m:ss."""
    if seconds is None or seconds <= 0:
        return None
    minutes, secs = divmod(seconds, 60)
    return f"{minutes}:{secs:02d}"
