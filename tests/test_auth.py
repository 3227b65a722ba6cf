import asyncio
import base64
import json
from datetime import datetime, timedelta, timezone

import google.auth.exceptions
import pytest

from conftest import make_settings
from ftc_assistant.core.auth import (
    ApiKeyAuth,
    CachedToken,
    ServiceAccountTokenAuth,
    TokenCache,
    decode_service_account_info,
    resolve_auth,
)
from ftc_assistant.core.errors import ConfigurationError

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


def _encoded_credentials(**extra):
    info = {"type": "service_account", "project_id": "sa-project", **extra}
    return base64.b64encode(json.dumps(info).encode()).decode()


class TestResolveAuth:
    def test_vertex_token_with_project_wins(self):
        s = make_settings(vertex_access_token="tok", vertex_project_id="proj", vertex_location="europe-west4")
        strategy = asyncio.run(resolve_auth(s, TokenCache()))

        assert isinstance(strategy, ServiceAccountTokenAuth)
        assert strategy.headers == {"Authorization": "Bearer tok"}
        assert strategy.endpoint("gemini-x") == (
            "https://europe-west4-aiplatform.googleapis.com/v1/projects/proj"
            "/locations/europe-west4/publishers/google/models/gemini-x:generateContent"
        )

    def test_vertex_token_without_project_falls_back_to_key(self):
        s = make_settings(vertex_access_token="tok")
        strategy = asyncio.run(resolve_auth(s, TokenCache()))
        assert isinstance(strategy, ApiKeyAuth)
        assert strategy.endpoint("m").endswith("/models/m:generateContent?key=test-key")
        assert strategy.headers == {}

    def test_missing_credentials(self):
        s = make_settings(gemini_api_key=None)
        with pytest.raises(ConfigurationError, match="Missing Gemini credentials"):
            asyncio.run(resolve_auth(s, TokenCache()))

    def test_service_account_token_is_minted_and_cached(self):
        s = make_settings(gemini_api_key=None, google_credentials=_encoded_credentials())
        cache = TokenCache()
        minted = []

        async def minter(info, *, default_lifetime_seconds):
            minted.append(info["project_id"])
            return CachedToken("minted", datetime.now(timezone.utc) + timedelta(hours=1))

        first = asyncio.run(resolve_auth(s, cache, minter=minter))
        second = asyncio.run(resolve_auth(s, cache, minter=minter))

        assert first == second
        assert first.project_id == "sa-project"
        assert first.access_token == "minted"
        assert minted == ["sa-project"]

    def test_refresh_failure_falls_back_to_api_key(self):
        s = make_settings(google_credentials=_encoded_credentials())

        async def minter(info, *, default_lifetime_seconds):
            raise google.auth.exceptions.RefreshError("denied")

        strategy = asyncio.run(resolve_auth(s, TokenCache(), minter=minter))
        assert isinstance(strategy, ApiKeyAuth)

    def test_garbage_credentials_are_configuration_error(self):
        with pytest.raises(ConfigurationError):
            decode_service_account_info("!!! not base64 json !!!")


class TestTokenCache:
    def test_single_flight_refresh(self):
        clock = FakeClock()
        cache = TokenCache(refresh_margin_seconds=60, clock=clock)
        fetches = []

        async def fetch():
            fetches.append(1)
            await asyncio.sleep(0.01)
            return CachedToken(f"token-{len(fetches)}", clock.now + timedelta(minutes=45))

        async def main():
            return await asyncio.gather(*(cache.get(fetch) for _ in range(10)))

        tokens = asyncio.run(main())

        assert tokens == ["token-1"] * 10
        assert cache.refresh_count == 1
        assert len(fetches) == 1

    def test_failed_refresh_is_shared_then_retried(self):
        clock = FakeClock()
        cache = TokenCache(refresh_margin_seconds=60, clock=clock)
        fetches = []

        async def failing_fetch():
            fetches.append(1)
            await asyncio.sleep(0.01)
            raise RuntimeError("token endpoint down")

        async def good_fetch():
            fetches.append(1)
            return CachedToken("token-ok", clock.now + timedelta(minutes=45))

        async def main():
            results = await asyncio.gather(
                *(cache.get(failing_fetch) for _ in range(10)), return_exceptions=True,
            )
            return results, await cache.get(good_fetch)

        results, token = asyncio.run(main())

        assert len(results) == 10
        assert all(isinstance(r, RuntimeError) for r in results)
        assert token == "token-ok"
        assert len(fetches) == 2
        assert cache.refresh_count == 1

    def test_refreshes_inside_margin(self):
        clock = FakeClock()
        cache = TokenCache(refresh_margin_seconds=60, clock=clock)
        counter = iter(range(1, 10))

        async def fetch():
            return CachedToken(f"token-{next(counter)}", clock.now + timedelta(seconds=120))

        async def main():
            first = await cache.get(fetch)
            clock.now += timedelta(seconds=30)   # 90s left: still fresh
            second = await cache.get(fetch)
            clock.now += timedelta(seconds=31)   # 59s left: inside margin
            third = await cache.get(fetch)
            return first, second, third

        assert asyncio.run(main()) == ("token-1", "token-1", "token-2")
        assert cache.refresh_count == 2

    def test_clear_forces_refresh(self):
        cache = TokenCache(clock=FakeClock())

        async def fetch():
            return CachedToken("t", NOW + timedelta(hours=1))

        async def main():
            await cache.get(fetch)
            cache.clear()
            await cache.get(fetch)

        asyncio.run(main())
        assert cache.refresh_count == 2
