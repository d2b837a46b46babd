import time

import pytest

from wartungsteile.auth import AuthService, token_claims, token_expiry
from wartungsteile.conftest import json_body, make_token
from wartungsteile.errors import AuthenticationError, ClientValidationError, ServerError


def test_token_expiry_reads_exp_claim():
    token = make_token(expires_in=60, now=1_000_000)
    assert token_expiry(token) == 1_000_060
    assert token_claims(token)["role"] == "Technician"


def test_garbage_tokens_have_no_expiry():
    assert token_expiry(None) is None
    assert token_expiry("not-a-jwt") is None


@pytest.mark.anyio
async def test_login_stores_tokens_and_user(backend, client, store):
    token = make_token()
    backend.on(
        "POST",
        "/auth/login",
        {"accessToken": token, "refreshToken": "r1", "user": {"id": "u1", "username": "anna", "role": "Admin"}},
    )
    auth = AuthService(client)

    await auth.login("anna", "geheim123")

    assert json_body(backend.calls[0]) == {"username": "anna", "password": "geheim123"}
    assert store.access_token == token
    assert store.refresh_token == "r1"
    assert store.role == "Admin"
    assert auth.is_authenticated()
    assert auth.current_user().username == "anna"


@pytest.mark.anyio
async def test_login_requires_both_fields(backend, client):
    auth = AuthService(client)
    with pytest.raises(ClientValidationError):
        await auth.login("anna", "")
    assert backend.calls == []


@pytest.mark.anyio
async def test_wrong_password_keeps_session_empty(backend, client, store):
    backend.on("POST", "/auth/login", 401)
    auth = AuthService(client)

    with pytest.raises(AuthenticationError):
        await auth.login("anna", "falsch")

    assert store.snapshot() == {}


@pytest.mark.anyio
async def test_logout_clears_even_when_backend_fails(backend, client, logged_in):
    store = logged_in()
    backend.on("POST", "/auth/logout", 500)
    auth = AuthService(client)

    await auth.logout()

    assert store.snapshot() == {}


@pytest.mark.anyio
async def test_refresh_failure_clears_session(backend, client, logged_in):
    store = logged_in()
    backend.on("POST", "/auth/refresh", 503)
    auth = AuthService(client)

    with pytest.raises(ServerError):
        await auth.refresh()

    assert store.access_token is None


@pytest.mark.anyio
async def test_expired_token_is_not_authenticated(client, logged_in):
    logged_in(expires_in=-10)
    auth = AuthService(client, clock=time.time)
    assert not auth.is_authenticated()
