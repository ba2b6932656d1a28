"""
Tests for the auth interceptor, credential exchange and the end-to-end
session scenarios.
"""

from unittest.mock import AsyncMock
from urllib.parse import parse_qs

import pytest

from lynbrook_api import create_context
from lynbrook_api.models import UserType
from lynbrook_api.services.errors import RequestError
from lynbrook_api.services.session import SessionState

from tests.helpers import FakeBackend

USER_URL = "https://api.test/users/me/"
ORGS_URL = "https://api.test/orgs/"


class TestSessionScenarios:
    @pytest.mark.asyncio
    async def test_stored_token_authenticates(self, settings, transport) -> None:
        ctx = create_context(load_token=AsyncMock(return_value="tok1"), settings=settings, transport=transport)

        await ctx.start()

        assert ctx.session.loading is False
        assert ctx.session.state == SessionState.AUTHENTICATED
        assert ctx.session.current_token() == "tok1"
        await ctx.close()

    @pytest.mark.asyncio
    async def test_sign_in_then_authenticated_get(self, ctx, backend: FakeBackend) -> None:
        backend.add("POST", "https://api.test/auth/jwt/create", body={"access": "tok2"})
        backend.add("GET", USER_URL, body={"id": 7})

        token = await ctx.auth.sign_in("a@b.com", "x")
        state = await ctx.resources.user()

        assert token == "tok2"
        assert ctx.session.current_token() == "tok2"
        assert state.data == {"id": 7}
        sign_in = backend.calls("POST", "https://api.test/auth/jwt/create")[0]
        assert FakeBackend.json_body(sign_in) == {"email": "a@b.com", "password": "x"}
        assert backend.calls("GET", USER_URL)[0].headers["Authorization"] == "Bearer tok2"

    @pytest.mark.asyncio
    async def test_401_signs_out_and_clears_cache(self, settings, transport, backend: FakeBackend) -> None:
        on_change = AsyncMock()
        ctx = create_context(
            load_token=AsyncMock(return_value="stale"),
            on_token_change=on_change,
            settings=settings,
            transport=transport,
        )
        await ctx.start()
        await ctx.cache.mutate("/users/me/", {"id": 1}, revalidate=False)
        backend.add("GET", ORGS_URL, status=401, body={"detail": "Token expired"})

        state = await ctx.resources.orgs()

        assert state.error.status == 401
        assert ctx.session.current_token() is None
        assert ctx.session.state == SessionState.ANONYMOUS
        assert len(ctx.cache) == 0
        on_change.assert_awaited_with(None)

        backend.add("GET", ORGS_URL, body=[])
        await ctx.resources.orgs()
        assert "Authorization" not in backend.calls("GET", ORGS_URL)[-1].headers
        await ctx.close()

    @pytest.mark.asyncio
    async def test_401_clears_cache_even_if_session_listener_raises(
        self, settings, transport, backend: FakeBackend
    ) -> None:
        ctx = create_context(load_token=AsyncMock(return_value="tok"), settings=settings, transport=transport)
        await ctx.start()
        await ctx.cache.mutate("/orgs/", ["cached"], revalidate=False)

        def broken(token: str | None) -> None:
            raise RuntimeError("listener failed")

        ctx.session.subscribe(broken)
        backend.add("GET", USER_URL, status=401)

        state = await ctx.cache.get("/users/me/")

        assert state.error.status == 401
        assert ctx.session.current_token() is None
        assert len(ctx.cache) == 0
        await ctx.close()

    @pytest.mark.asyncio
    async def test_sign_out_clears_cache_when_persistence_fails(self, settings, transport) -> None:
        ctx = create_context(load_token=AsyncMock(return_value="tok"), settings=settings, transport=transport)
        await ctx.start()
        await ctx.cache.mutate("/users/me/", {"id": 1}, revalidate=False)
        ctx.session._on_token_change = AsyncMock(side_effect=OSError("read-only"))

        with pytest.raises(OSError):
            await ctx.auth.sign_out()

        assert len(ctx.cache) == 0
        await ctx.close()

    @pytest.mark.asyncio
    async def test_repeated_401_while_signed_out_does_not_loop(self, ctx, backend: FakeBackend) -> None:
        backend.add("GET", ORGS_URL, status=401)

        first = await ctx.resources.orgs()
        second = await ctx.resources.orgs()

        assert first.error.status == 401
        assert second.error.status == 401
        assert len(backend.calls("GET", ORGS_URL)) == 2
        assert ctx.session.state == SessionState.ANONYMOUS

    @pytest.mark.asyncio
    async def test_other_errors_keep_session(self, settings, transport, backend: FakeBackend) -> None:
        ctx = create_context(load_token=AsyncMock(return_value="tok"), settings=settings, transport=transport)
        await ctx.start()
        backend.add("GET", ORGS_URL, status=500)

        state = await ctx.resources.orgs()

        assert state.error.status == 500
        assert ctx.session.current_token() == "tok"
        assert "/orgs/" in ctx.cache
        await ctx.close()

    @pytest.mark.asyncio
    async def test_manual_sign_out(self, settings, transport) -> None:
        ctx = create_context(load_token=AsyncMock(return_value="tok"), settings=settings, transport=transport)
        await ctx.start()
        await ctx.cache.mutate("/users/me/", {"id": 1}, revalidate=False)

        await ctx.auth.sign_out()

        assert ctx.session.state == SessionState.ANONYMOUS
        assert len(ctx.cache) == 0
        await ctx.close()

    @pytest.mark.asyncio
    async def test_detached_interceptor_ignores_401(self, settings, transport, backend: FakeBackend) -> None:
        ctx = create_context(load_token=AsyncMock(return_value="tok"), settings=settings, transport=transport)
        await ctx.start()
        ctx.interceptor.detach()
        backend.add("GET", ORGS_URL, status=401)

        await ctx.resources.orgs()

        assert ctx.session.current_token() == "tok"
        await ctx.close()


class TestCredentialExchange:
    @pytest.mark.asyncio
    async def test_failed_sign_in_records_error(self, ctx, backend: FakeBackend) -> None:
        backend.add(
            "POST",
            "https://api.test/auth/jwt/create",
            status=401,
            body={"detail": "No active account found with the given credentials"},
        )

        token = await ctx.auth.sign_in("a@b.com", "wrong")

        assert token is None
        assert ctx.auth.error.status == 401
        assert ctx.session.state == SessionState.ANONYMOUS

    @pytest.mark.asyncio
    async def test_throw_on_error(self, settings, transport, backend: FakeBackend) -> None:
        ctx = create_context(settings=settings, transport=transport, throw_on_error=True)
        await ctx.start()
        backend.add("POST", "https://api.test/auth/jwt/create", status=400)

        with pytest.raises(RequestError):
            await ctx.auth.sign_in("a@b.com", "x")
        await ctx.close()

    @pytest.mark.asyncio
    async def test_register_then_sign_in(self, ctx, backend: FakeBackend) -> None:
        backend.add("POST", "https://api.test/auth/users/", status=201, body={"email": "a@b.com"})
        backend.add("POST", "https://api.test/auth/jwt/create", body={"access": "tok3"})

        token = await ctx.auth.register("a@b.com", "pw", "pw")

        assert token == "tok3"
        sent = FakeBackend.json_body(backend.calls("POST", "https://api.test/auth/users/")[0])
        assert sent == {"email": "a@b.com", "password": "pw", "re_password": "pw", "type": int(UserType.GUEST)}

    @pytest.mark.asyncio
    async def test_failed_registration_skips_sign_in(self, ctx, backend: FakeBackend) -> None:
        backend.add("POST", "https://api.test/auth/users/", status=400, body={"password": ["too short"]})

        assert await ctx.auth.register("a@b.com", "pw", "pw") is None
        assert backend.calls("POST", "https://api.test/auth/jwt/create") == []
        assert ctx.auth.error.body == {"password": ["too short"]}

    @pytest.mark.asyncio
    async def test_authorization_url(self, ctx, backend: FakeBackend) -> None:
        url = "https://api.test/auth/o/google/?redirect_uri=https%3A%2F%2Fapp.test%2Fcallback"
        backend.add("GET", url, body={"authorization_url": "https://accounts.google.com/o/oauth2/auth?x=1"})

        result = await ctx.auth.authorization_url("google", "https://app.test/callback")

        assert result == "https://accounts.google.com/o/oauth2/auth?x=1"

    @pytest.mark.asyncio
    async def test_provider_callback_keeps_whitelisted_fields(self, ctx, backend: FakeBackend) -> None:
        backend.add("POST", "https://api.test/auth/o/google/", body={"access": "tok4"})

        token = await ctx.auth.handle_provider_callback(
            "google", {"code": "c1", "state": "s1", "scope": "email", "authuser": "0"}
        )

        assert token == "tok4"
        sent = backend.calls("POST", "https://api.test/auth/o/google/")[0]
        assert sent.headers["Content-Type"] == "application/x-www-form-urlencoded"
        assert parse_qs(sent.content.decode()) == {"code": ["c1"], "state": ["s1"]}

    @pytest.mark.asyncio
    async def test_schoology_callback(self, ctx, backend: FakeBackend) -> None:
        backend.add("POST", "https://api.test/auth/o/schoology/", body={"access": "tok5"})

        await ctx.auth.handle_provider_callback("schoology", {"oauth_token": "ot", "uid": "9"})

        sent = backend.calls("POST", "https://api.test/auth/o/schoology/")[0]
        assert sent.content == b"oauth_token=ot"
        assert ctx.session.current_token() == "tok5"

    @pytest.mark.asyncio
    async def test_unknown_provider_rejected(self, ctx) -> None:
        with pytest.raises(ValueError):
            await ctx.auth.authorization_url("github", "https://app.test/callback")
