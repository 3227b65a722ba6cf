"""
Generation-provider authentication.

Two strategies share one shape (``endpoint(model)`` plus ``headers``) so
the generation client never branches on how it was authenticated:

- ``ApiKeyAuth``: Gemini API with a query-string key.
- ``ServiceAccountTokenAuth``: Vertex AI with a bearer token, either given
  directly or minted from a base64-encoded service-account JSON.

Minted tokens live in a ``TokenCache`` owned by the application context.
The cache hands out the stored token until it is within the refresh margin
of expiry, and serializes refreshes so concurrent requests reuse a single
in-flight refresh instead of each minting their own.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Literal, Union

import google.auth.exceptions
import google.auth.transport.requests
from google.oauth2 import service_account

from ftc_assistant.core.config import Settings
from ftc_assistant.core.errors import ConfigurationError
from ftc_assistant.utils.logging import get_logger

logger = get_logger("ftc_assistant.core.auth")

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Strategies ──────────────────────────────────────────────────────
@dataclass(frozen=True)
class ApiKeyAuth:
    api_key: str
    mode: Literal["api_key"] = "api_key"

    def endpoint(self, model: str) -> str:
        return f"{GEMINI_API_BASE}/models/{model}:generateContent?key={self.api_key}"

    @property
    def headers(self) -> dict[str, str]:
        return {}


@dataclass(frozen=True)
class ServiceAccountTokenAuth:
    access_token: str
    project_id: str
    location: str = "us-central1"
    mode: Literal["service_account"] = "service_account"

    def endpoint(self, model: str) -> str:
        return (
            f"https://{self.location}-aiplatform.googleapis.com/v1/projects/{self.project_id}"
            f"/locations/{self.location}/publishers/google/models/{model}:generateContent"
        )

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}


AuthStrategy = Union[ApiKeyAuth, ServiceAccountTokenAuth]


# ── Token cache ─────────────────────────────────────────────────────
@dataclass(frozen=True)
class CachedToken:
    token: str
    expires_at: datetime


@dataclass
class TokenCache:
    """
    Explicit (token, expiry) cache with single-flight refresh.

    At most one refresh task exists at a time.  Every caller that arrives
    while it runs awaits that same task and gets its token or its
    exception.  A failed refresh is not cached; the next call retries.
    """

    refresh_margin_seconds: int = 60
    clock: Callable[[], datetime] = _utcnow
    _cached: CachedToken | None = field(default=None, init=False, repr=False)
    _inflight: asyncio.Task | None = field(default=None, init=False, repr=False)
    refresh_count: int = field(default=0, init=False)

    @property
    def cached(self) -> CachedToken | None:
        return self._cached

    def _is_fresh(self, cached: CachedToken | None) -> bool:
        if cached is None:
            return False
        remaining = (cached.expires_at - self.clock()).total_seconds()
        return remaining > self.refresh_margin_seconds

    async def get(self, fetch: Callable[[], Awaitable[CachedToken]]) -> str:
        if self._is_fresh(self._cached):
            return self._cached.token  # type: ignore[union-attr]

        if self._inflight is None:
            logger.info("[AUTH] Access token missing or expiring soon, refreshing...")
            self._inflight = asyncio.ensure_future(self._refresh(fetch))
        # shield: one cancelled caller must not cancel the shared refresh
        return await asyncio.shield(self._inflight)

    async def _refresh(self, fetch: Callable[[], Awaitable[CachedToken]]) -> str:
        try:
            fresh = await fetch()
            self._cached = fresh
            self.refresh_count += 1
            logger.info("[AUTH] New access token cached (expires at %s)", fresh.expires_at.isoformat())
            return fresh.token
        except Exception as e:
            logger.error("[AUTH] Token refresh failed: %s", e)
            raise
        finally:
            self._inflight = None

    def clear(self) -> None:
        self._cached = None


# ── Resolution ──────────────────────────────────────────────────────
def decode_service_account_info(encoded: str) -> dict[str, Any]:
    """Decode the base64 service-account JSON carried in GOOGLECREDENTIALS."""
    try:
        decoded = base64.b64decode(encoded, validate=False).decode("utf-8")
        info = json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ConfigurationError(
            "GOOGLECREDENTIALS must be a base64-encoded service-account JSON document."
        ) from exc
    if not isinstance(info, dict):
        raise ConfigurationError("GOOGLECREDENTIALS must decode to a JSON object.")
    return info


async def mint_service_account_token(
    info: dict[str, Any],
    *,
    default_lifetime_seconds: int,
    clock: Callable[[], datetime] = _utcnow,
) -> CachedToken:
    """Exchange service-account credentials for a cloud-platform access token."""
    try:
        credentials = service_account.Credentials.from_service_account_info(
            info, scopes=[CLOUD_PLATFORM_SCOPE],
        )
    except (ValueError, KeyError) as exc:
        raise ConfigurationError(f"Invalid service-account credentials: {exc}") from exc

    request = google.auth.transport.requests.Request()
    await asyncio.to_thread(credentials.refresh, request)
    if not credentials.token:
        raise google.auth.exceptions.RefreshError("Service-account refresh returned no token")

    expires_at = credentials.expiry
    if expires_at is None:
        expires_at = clock() + timedelta(seconds=default_lifetime_seconds)
    elif expires_at.tzinfo is None:
        # google-auth reports naive UTC
        expires_at = expires_at.replace(tzinfo=timezone.utc)

    return CachedToken(token=credentials.token, expires_at=expires_at)


async def resolve_auth(
    settings: Settings,
    token_cache: TokenCache,
    *,
    minter: Callable[..., Awaitable[CachedToken]] = mint_service_account_token,
) -> AuthStrategy:
    """
    Pick the authentication strategy for one request.

    Priority:
      1. Vertex bearer token (static VERTEX_ACCESS_TOKEN, else minted from
         GOOGLECREDENTIALS) together with a project id
      2. Gemini API key
      3. ConfigurationError
    """
    credentials_info = (
        decode_service_account_info(settings.google_credentials)
        if settings.google_credentials
        else None
    )

    access_token = settings.vertex_access_token
    if not access_token and credentials_info is not None:
        try:
            access_token = await token_cache.get(
                lambda: minter(
                    credentials_info,
                    default_lifetime_seconds=settings.token_default_lifetime_seconds,
                )
            )
        except google.auth.exceptions.GoogleAuthError as exc:
            logger.warning("[AUTH] Service-account token refresh failed: %s", exc)
            access_token = None

    project_id = settings.vertex_project_id or (credentials_info or {}).get("project_id")
    if access_token and project_id:
        return ServiceAccountTokenAuth(
            access_token=access_token,
            project_id=project_id,
            location=settings.vertex_location,
        )

    if settings.gemini_api_key:
        return ApiKeyAuth(api_key=settings.gemini_api_key)

    raise ConfigurationError(
        "Missing Gemini credentials. Use GEMINI_API_KEY/GOOGLE_API_KEY for Gemini API, "
        "or VERTEX_ACCESS_TOKEN + VERTEX_PROJECT_ID for Vertex AI."
    )
