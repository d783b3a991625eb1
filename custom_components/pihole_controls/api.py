"""Pi-hole API client.

Talks to both API generations a Pi-hole may expose:

- v6 ("new generation"): JSON resources under ``/api`` with session, bearer,
  token header or query-token auth.
- v5 ("legacy"): the single ``/admin/api.php`` endpoint driven by query
  parameters with the token in ``?auth=``.

Every operation tries v6 first and only falls back to v5 when every v6
attempt answered 404.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import hashlib
import ipaddress
import json
import logging
import re
import ssl
from typing import Any
from urllib.parse import urlparse

import aiohttp
from homeassistant.exceptions import HomeAssistantError

from .const import (
    API_AUTH_PATH,
    API_BLOCKING_DISABLE_PATH,
    API_BLOCKING_ENABLE_PATH,
    API_BLOCKING_PATH,
    BODY_PREVIEW_LENGTH,
    DEFAULT_REQUEST_TIMEOUT,
    LEGACY_API_PATH,
    LEGACY_AUTH_PARAM,
)
from .models import (
    ENABLE_JSON_BODY,
    FALLBACK_AUTH_MODES,
    ApiResponse,
    AttemptOutcome,
    AuthMode,
    DisableDirective,
    LegacyErrorDiagnostics,
    credential_looks_like_app_password,
    decode_blocking_status,
    decode_flexible_bool,
)
from .session_cache import PiHoleSession, PiHoleSessionCache

_LOGGER = logging.getLogger(__name__)

MAX_HOST_LENGTH = 253  # Max DNS hostname length
HOSTNAME_PATTERN = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9\-\.]*[a-zA-Z0-9])?$")

NOT_CONFIGURED_MESSAGE = "Enter host and API token in Settings first."
INVALID_URL_MESSAGE = (
    "Malformed Pi-hole URL. Include http:// or https:// and avoid extra paths (use the base host/port only)."
)
LEGACY_REMEDIATION = (
    "Next steps:\n"
    "- Verify which API generation the Pi-hole runs: v6 serves /api, v5 serves /admin/api.php.\n"
    "- Verify the credential: v5 expects the API token from Settings > API, "
    "v6 expects the web password or an app password.\n"
    "- Check that /admin/api.php is reachable from this machine."
)

# Headers that should never be logged (contain sensitive data)
SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "x-csrf-token",
        "x-csrftoken",
    }
)


def _redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Redact sensitive headers for safe logging."""
    return {k: "**REDACTED**" if k.lower() in SENSITIVE_HEADERS else v for k, v in headers.items()}


def _create_ssl_context() -> ssl.SSLContext:
    """Create a secure SSL context for HTTPS connections.

    Uses the system's certificate store for verification.
    """
    return ssl.create_default_context()


class PiHoleApiError(HomeAssistantError):
    """Exception for Pi-hole API errors."""


class PiHoleInvalidConfigurationError(PiHoleApiError):
    """Host or credential missing or malformed. Never retried."""


class PiHoleConnectionError(PiHoleApiError):
    """Transport failure (connection refused, DNS, TLS, timeout)."""


class PiHoleAuthExhaustedError(PiHoleApiError):
    """Every auth strategy was rejected with 401/403."""

    def __init__(self, endpoint: str, status_code: int) -> None:
        """Initialize the error."""
        super().__init__(
            f"Pi-hole rejected every authentication method (HTTP {status_code})\n"
            f"Endpoint: {endpoint}\n"
            "Check the API token or app password."
        )
        self.endpoint = endpoint
        self.status_code = status_code


class PiHoleProtocolError(PiHoleApiError):
    """Non-2xx response not explained by configuration or auth.

    The body preview is kept for diagnostics and debug logs only; it never
    becomes part of the message.
    """

    def __init__(
        self,
        status_code: int | None,
        endpoint: str,
        *,
        detail: str | None = None,
        diagnostics: LegacyErrorDiagnostics | None = None,
        body_preview: str | None = None,
    ) -> None:
        """Initialize the error."""
        self.status_code = status_code
        self.endpoint = endpoint
        self.detail = detail
        self.diagnostics = diagnostics
        self.body_preview = body_preview
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        message = "Pi-hole API returned an error"
        if self.status_code is not None:
            message += f" (HTTP {self.status_code})"
        if self.detail:
            message += f": {self.detail}"
        message += f"\nEndpoint: {self.endpoint}"
        if self.diagnostics is not None:
            message += f"\n{self.diagnostics.describe()}"
        return message


class PiHoleLegacyIncompatibleError(PiHoleProtocolError):
    """Legacy API answered 500: a compatibility problem, never retried."""

    def _build_message(self) -> str:
        return f"{super()._build_message()}\n{LEGACY_REMEDIATION}"


def normalize_host(host: str) -> str:
    """Normalize host input to a base URL (scheme, host and port only).

    Handles various input formats:
    - "pi.hole" -> "http://pi.hole"
    - "192.168.1.2:8080" -> "http://192.168.1.2:8080"
    - "https://pi.hole/admin/api.php?x" -> "https://pi.hole"

    Raises:
        PiHoleInvalidConfigurationError: If the host is empty, uses a scheme
            other than http/https, or has no valid host or port.
    """
    host = host.strip()

    if not host:
        raise PiHoleInvalidConfigurationError(NOT_CONFIGURED_MESSAGE)

    # Check for maximum length before processing
    if len(host) > MAX_HOST_LENGTH + 10:  # Allow extra for scheme prefix
        raise PiHoleInvalidConfigurationError(INVALID_URL_MESSAGE)

    if "://" in host:
        scheme = host.split("://", 1)[0].lower()
        if scheme not in ("http", "https"):
            raise PiHoleInvalidConfigurationError(INVALID_URL_MESSAGE)
        host = f"{scheme}://{host.split('://', 1)[1]}"
    else:
        host = f"http://{host}"

    parsed = urlparse(host)
    hostname = parsed.hostname or ""
    if not hostname or len(hostname) > MAX_HOST_LENGTH:
        raise PiHoleInvalidConfigurationError(INVALID_URL_MESSAGE)

    is_ip = True
    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        is_ip = False
    if not is_ip and not HOSTNAME_PATTERN.match(hostname):
        raise PiHoleInvalidConfigurationError(INVALID_URL_MESSAGE)

    try:
        port = parsed.port
    except ValueError as err:
        raise PiHoleInvalidConfigurationError(INVALID_URL_MESSAGE) from err
    if port is not None and port < 1:
        raise PiHoleInvalidConfigurationError(INVALID_URL_MESSAGE)

    # Rebuild without credentials, path, query or fragment
    netloc = f"[{hostname}]" if is_ip and ip.version == 6 else hostname.lower()
    if port is not None:
        netloc = f"{netloc}:{port}"
    return f"{parsed.scheme}://{netloc}"


@dataclass(frozen=True)
class ConnectionProfile:
    """Where and how to reach a Pi-hole. Built fresh for every operation."""

    host: str
    credential: str = field(repr=False)
    allow_self_signed_cert: bool = False

    def __post_init__(self) -> None:
        if not self.host or not self.credential:
            raise PiHoleInvalidConfigurationError(NOT_CONFIGURED_MESSAGE)
        if normalize_host(self.host) != self.host:
            raise PiHoleInvalidConfigurationError(INVALID_URL_MESSAGE)

    @classmethod
    def from_settings(
        cls,
        host: str | None,
        credential: str | None,
        allow_self_signed_cert: bool = False,
    ) -> ConnectionProfile:
        """Build a profile from raw user settings."""
        host = (host or "").strip()
        credential = (credential or "").strip()
        if not host or not credential:
            raise PiHoleInvalidConfigurationError(NOT_CONFIGURED_MESSAGE)
        return cls(normalize_host(host), credential, allow_self_signed_cert)

    @property
    def fingerprint(self) -> str:
        """Session cache key derived from host and credential."""
        return hashlib.sha256(f"{self.host}\n{self.credential}".encode()).hexdigest()


def _body_preview(response: ApiResponse) -> str | None:
    return response.text[:BODY_PREVIEW_LENGTH] if response.text else None


def _parse_json(response: ApiResponse) -> Any:
    try:
        return json.loads(response.text)
    except ValueError:
        return None


class PiHoleApi:
    """Pi-hole API client for one connection profile."""

    def __init__(
        self,
        profile: ConnectionProfile,
        session: aiohttp.ClientSession | None = None,
        session_cache: PiHoleSessionCache | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        """Initialize the API client.

        Args:
            profile: The connection profile to talk to
            session: Optional aiohttp session (Home Assistant's shared one)
            session_cache: Cache of authenticated sessions, shared between
                clients. A private cache is created when omitted.
            request_timeout: Total timeout per HTTP round-trip in seconds
        """
        self._profile = profile
        self._session = session
        self._own_session = False
        self._session_cache = session_cache if session_cache is not None else PiHoleSessionCache()
        self._request_timeout = request_timeout

    @property
    def profile(self) -> ConnectionProfile:
        """Return the connection profile."""
        return self._profile

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session with proper SSL configuration."""
        if self._session is None or self._session.closed:
            try:
                connector = aiohttp.TCPConnector(ssl=_create_ssl_context())
                self._session = aiohttp.ClientSession(connector=connector)
                self._own_session = True
            except Exception as err:
                raise PiHoleConnectionError(f"Failed to create HTTP session: {err}") from err
        return self._session

    async def close(self) -> None:
        """Close the session if we own it."""
        if self._own_session and self._session:
            await self._session.close()
            self._session = None

    def _redact(self, text: str) -> str:
        return text.replace(self._profile.credential, "**REDACTED**")

    def _build_auth(
        self,
        auth_mode: AuthMode,
        session_auth: PiHoleSession | None,
    ) -> tuple[dict[str, str], dict[str, str]]:
        """Return the (headers, query params) that carry the credential."""
        token = self._profile.credential
        headers: dict[str, str] = {}
        params: dict[str, str] = {}
        if auth_mode is AuthMode.BEARER:
            headers["Authorization"] = f"Bearer {token}"
        elif auth_mode is AuthMode.TOKEN_HEADER:
            headers["Authorization"] = f"Token {token}"
        elif auth_mode is AuthMode.QUERY_TOKEN:
            params[LEGACY_AUTH_PARAM] = token
        elif auth_mode is AuthMode.SESSION:
            if session_auth is None:
                raise ValueError("Session auth requires a session")
            cookie = f"sid={session_auth.sid}"
            if session_auth.csrf:
                cookie += f"; csrf={session_auth.csrf}"
                headers["X-CSRF-Token"] = session_auth.csrf
                headers["X-CSRFToken"] = session_auth.csrf
            headers["Cookie"] = cookie
        return headers, params

    async def _async_request(
        self,
        path: str,
        method: str,
        auth_mode: AuthMode,
        *,
        body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        session_auth: PiHoleSession | None = None,
    ) -> ApiResponse:
        """Perform a single HTTP round-trip with one auth mode.

        Any status code is returned; only transport failures raise.
        """
        session = await self._get_session()
        url = f"{self._profile.host}/{path}"
        auth_headers, auth_params = self._build_auth(auth_mode, session_auth)
        headers = {"Accept": "application/json", **auth_headers}
        query = {**(params or {}), **auth_params}

        _LOGGER.debug(
            "Request: %s /%s auth=%s headers=%s",
            method,
            path,
            auth_mode.value,
            _redact_headers(headers),
        )
        try:
            timeout = aiohttp.ClientTimeout(total=self._request_timeout)
            async with session.request(
                method,
                url,
                headers=headers,
                params=query or None,
                json=body,
                ssl=False if self._profile.allow_self_signed_cert else True,
                timeout=timeout,
            ) as response:
                text = await response.text()
                _LOGGER.debug("Response: %s /%s -> HTTP %s", method, path, response.status)
                return ApiResponse(response.status, text, path, auth_mode)
        except aiohttp.ClientError as err:
            raise PiHoleConnectionError(f"Connection error: {self._redact(str(err))}") from err
        except TimeoutError as err:
            raise PiHoleConnectionError(f"Timed out waiting for Pi-hole at {self._profile.host}") from err

    # Auth negotiation

    async def _async_create_session(self) -> PiHoleSession:
        """Authenticate against the v6 auth endpoint and cache the session."""
        response = await self._async_request(
            API_AUTH_PATH,
            "POST",
            AuthMode.NONE,
            body={"password": self._profile.credential},
        )
        if response.status != 200:
            raise PiHoleProtocolError(response.status, API_AUTH_PATH, body_preview=_body_preview(response))

        payload = _parse_json(response)
        session_data = payload.get("session") if isinstance(payload, dict) else None
        sid = session_data.get("sid") if isinstance(session_data, dict) else None
        if not sid:
            raise PiHoleProtocolError(
                response.status,
                API_AUTH_PATH,
                detail="no session in auth response",
                body_preview=_body_preview(response),
            )
        # Some builds spell the CSRF field "csff"
        csrf = session_data.get("csff") or session_data.get("csrf")
        session = PiHoleSession(sid=sid, csrf=csrf, created_at=self._session_cache.now())
        await self._session_cache.async_set(self._profile.fingerprint, session)
        _LOGGER.debug("Created Pi-hole session for %s", self._profile.host)
        return session

    async def _async_try_create_session(self) -> PiHoleSession | None:
        """Bootstrap a session, returning None when the device refuses."""
        try:
            return await self._async_create_session()
        except PiHoleApiError as err:
            _LOGGER.debug("Session bootstrap failed, using token auth: %s", err)
            return None

    async def _async_send_with_session(
        self,
        path: str,
        method: str,
        body: dict[str, Any] | None,
        params: dict[str, str] | None,
    ) -> ApiResponse | None:
        """Attempt the request with session auth.

        A cached session rejected with 401/403 is dropped and replaced by
        exactly one fresh bootstrap. Returns None when no session could be
        obtained at all.
        """
        fingerprint = self._profile.fingerprint
        cached = await self._session_cache.async_get(fingerprint)
        response: ApiResponse | None = None
        if cached is not None:
            response = await self._async_request(path, method, AuthMode.SESSION, body=body, params=params, session_auth=cached)
            if response.outcome is not AttemptOutcome.AUTH_REJECTED:
                return response
            _LOGGER.debug("Cached session rejected (HTTP %s), re-authenticating", response.status)
            await self._session_cache.async_remove(fingerprint)

        session = await self._async_try_create_session()
        if session is None:
            return response

        response = await self._async_request(path, method, AuthMode.SESSION, body=body, params=params, session_auth=session)
        if response.outcome is AttemptOutcome.AUTH_REJECTED:
            await self._session_cache.async_remove(fingerprint)
        return response

    async def async_send(
        self,
        path: str,
        method: str = "GET",
        body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> ApiResponse:
        """Send a v6 request, negotiating auth.

        Session auth goes first, then bearer, token header and query token.
        The first response that is not 401/403 ends negotiation and is
        returned whatever its status.

        Raises:
            PiHoleAuthExhaustedError: If every strategy was rejected.
        """
        response = await self._async_send_with_session(path, method, body, params)
        if response is not None and response.outcome is not AttemptOutcome.AUTH_REJECTED:
            return response

        rejected_status = response.status if response is not None else 401
        for auth_mode in FALLBACK_AUTH_MODES:
            response = await self._async_request(path, method, auth_mode, body=body, params=params)
            if response.outcome is not AttemptOutcome.AUTH_REJECTED:
                return response
            rejected_status = response.status
            _LOGGER.debug("%s /%s rejected with %s auth (HTTP %s)", method, path, auth_mode.value, response.status)

        raise PiHoleAuthExhaustedError(path, rejected_status)

    # Protocol resolution

    async def _async_send_v6(self, attempts: list[tuple[str, str, dict[str, Any] | None]]) -> ApiResponse:
        """Run v6 attempts in order until one succeeds.

        Any non-2xx answer moves on to the next attempt. Once all of them
        failed, the first non-404 error is raised, so a 404 only surfaces
        when every attempt was a 404.
        """
        first_error: PiHoleProtocolError | None = None
        not_found: PiHoleProtocolError | None = None
        for path, method, body in attempts:
            response = await self.async_send(path, method, body)
            if response.ok:
                return response
            error = PiHoleProtocolError(response.status, path, body_preview=_body_preview(response))
            _LOGGER.debug("%s /%s failed with HTTP %s", method, path, response.status)
            if response.status == 404:
                not_found = error
            elif first_error is None:
                first_error = error

        if first_error is not None:
            raise first_error
        if not_found is None:
            raise ValueError("No v6 attempts given")
        raise not_found

    async def _async_send_legacy(self, params: dict[str, str], action: str) -> ApiResponse:
        """Send a v5 request. Always uses query-token auth."""
        response = await self._async_request(LEGACY_API_PATH, "GET", AuthMode.QUERY_TOKEN, params=params)
        if response.status == 200:
            return response

        diagnostics = LegacyErrorDiagnostics(
            method="GET",
            endpoint=LEGACY_API_PATH,
            status_code=response.status,
            action=action,
            auth_mode=AuthMode.QUERY_TOKEN.value,
            token_looks_like_app_password=credential_looks_like_app_password(self._profile.credential),
        )
        _LOGGER.debug("Legacy %s failed: HTTP %s, body=%s", action, response.status, _body_preview(response))
        error_cls = PiHoleLegacyIncompatibleError if response.status == 500 else PiHoleProtocolError
        raise error_cls(
            response.status,
            LEGACY_API_PATH,
            diagnostics=diagnostics,
            body_preview=_body_preview(response),
        )

    @staticmethod
    def _is_not_found(err: PiHoleProtocolError) -> bool:
        return err.status_code == 404

    async def fetch_status(self, allow_legacy_fallback: bool = True) -> bool:
        """Return True if blocking is enabled on the device."""
        try:
            response = await self._async_send_v6([(API_BLOCKING_PATH, "GET", None)])
        except PiHoleProtocolError as err:
            if not allow_legacy_fallback or not self._is_not_found(err):
                raise
            _LOGGER.debug("v6 status endpoint not found, falling back to legacy API")
        else:
            enabled = decode_blocking_status(_parse_json(response))
            if enabled is None:
                raise PiHoleProtocolError(
                    response.status,
                    API_BLOCKING_PATH,
                    detail="unrecognized blocking status",
                    body_preview=_body_preview(response),
                )
            return enabled

        response = await self._async_send_legacy({"status": ""}, "status refresh")
        payload = _parse_json(response)
        enabled = decode_flexible_bool(payload.get("status")) if isinstance(payload, dict) else None
        if enabled is None:
            raise PiHoleProtocolError(
                response.status,
                LEGACY_API_PATH,
                detail="unrecognized blocking status, check the API token",
                body_preview=_body_preview(response),
            )
        return enabled

    async def enable_blocking(self) -> None:
        """Enable blocking."""
        attempts = [
            (API_BLOCKING_PATH, "POST", ENABLE_JSON_BODY),
            (API_BLOCKING_PATH, "PUT", ENABLE_JSON_BODY),
            (API_BLOCKING_ENABLE_PATH, "POST", None),
        ]
        try:
            await self._async_send_v6(attempts)
            return
        except PiHoleProtocolError as err:
            if not self._is_not_found(err):
                raise
            _LOGGER.debug("v6 blocking endpoints not found, enabling via legacy API")

        await self._async_send_legacy({"enable": ""}, "enable blocking")

    async def disable_blocking(self, duration_seconds: int | None = None) -> None:
        """Disable blocking, indefinitely or for duration_seconds."""
        try:
            directive = DisableDirective(duration_seconds)
        except ValueError as err:
            raise PiHoleInvalidConfigurationError(str(err)) from err

        attempts = [
            (API_BLOCKING_PATH, "POST", directive.to_json_body()),
            (API_BLOCKING_PATH, "PUT", directive.to_json_body()),
            (API_BLOCKING_DISABLE_PATH, "POST", directive.to_sub_action_body()),
        ]
        try:
            await self._async_send_v6(attempts)
            return
        except PiHoleProtocolError as err:
            if not self._is_not_found(err):
                raise
            _LOGGER.debug("v6 blocking endpoints not found, disabling via legacy API")

        await self._async_send_legacy(directive.to_legacy_query(), "disable blocking")
