import time

import httpx
import pytest

from casebot.apps.auth.session import (
    FALLBACK_IP,
    SessionManager,
    build_headers,
    build_pdf_headers,
    decode_token_expiry,
    is_token_fresh,
)
from casebot.utils.errors import AuthError
from casebot.utils.schemas import Session
from casebot.utils.storage import SessionStore
from tests.conftest import make_token


def manager_for(router, config) -> tuple[SessionManager, httpx.AsyncClient]:
    http = httpx.AsyncClient(transport=httpx.MockTransport(router))
    return SessionManager(http, SessionStore(config.SESSION_FILE), config), http


def test_token_expiry_is_read_from_middle_segment():
    assert decode_token_expiry(make_token(1_700_000_000)) == 1_700_000_000


def test_token_with_bearer_prefix_decodes():
    assert decode_token_expiry(make_token(1_700_000_000, bearer=True)) == 1_700_000_000
    assert decode_token_expiry("Bearer" + make_token(1_700_000_000)) == 1_700_000_000


@pytest.mark.parametrize("token", ["not-a-token", "a.b", "a.!!!.c", make_token(None)])
def test_undecodable_token_has_no_expiry(token):
    assert decode_token_expiry(token) is None
    assert not is_token_fresh(token)


def test_freshness_uses_five_minute_margin():
    now = 1_000_000.0
    assert is_token_fresh(make_token(now + 301), now=now)
    assert not is_token_fresh(make_token(now + 300), now=now)
    assert not is_token_fresh(make_token(now - 10), now=now)


async def test_fresh_persisted_session_needs_no_network(router, config, fresh_token):
    SessionStore(config.SESSION_FILE).save(Session(token=fresh_token, machine_id="m1"))
    manager, http = manager_for(router, config)
    async with http:
        session = await manager.get_session()
        again = await manager.get_session()

    assert session.token == fresh_token
    assert again is session
    assert router.requests == []


async def test_stale_session_triggers_exactly_one_login(router, config, stale_token, fresh_token):
    SessionStore(config.SESSION_FILE).save(Session(token=stale_token, machine_id="m1"))
    manager, http = manager_for(router, config)
    async with http:
        session = await manager.get_session()
        await manager.get_session()

    assert router.count("/centax/login") == 1
    assert session.token == fresh_token
    assert session.ip_address == "10.0.0.7"
    assert SessionStore(config.SESSION_FILE).load().token == fresh_token


async def test_missing_session_file_logs_in(router, config):
    manager, http = manager_for(router, config)
    async with http:
        await manager.get_session()
    assert router.count("/centax/login") == 1


async def test_login_sends_credentials_and_device_headers(router, config):
    manager, http = manager_for(router, config)
    async with http:
        await manager.login()

    login = next(r for r in router.requests if r.url.path.endswith("/centax/login"))
    assert login.headers["appid"] == "2020"
    assert login.headers["machineid"] == config.CENTAX_MACHINE_ID
    body = login.read()
    assert b"user@example.com" in body
    assert b"10.0.0.7" in body


async def test_missing_credentials_raise_auth_error(router, config):
    config = config.model_copy(update={"CENTAX_PASSWORD": None})
    manager, http = manager_for(router, config)
    async with http:
        with pytest.raises(AuthError):
            await manager.get_session()
    assert router.count("/centax/login") == 0


async def test_login_without_token_raises_auth_error(router, config):
    router.add("/centax/login", lambda r: httpx.Response(200, json={"Data": {}}))
    manager, http = manager_for(router, config)
    async with http:
        with pytest.raises(AuthError):
            await manager.login()


async def test_rejected_login_raises_auth_error(router, config):
    router.add("/centax/login", lambda r: httpx.Response(401, json={"StatusMsg": "Invalid credentials"}))
    manager, http = manager_for(router, config)
    async with http:
        with pytest.raises(AuthError):
            await manager.login()


async def test_force_refresh_discards_fresh_session(router, config):
    old = make_token(time.time() + 7200)
    SessionStore(config.SESSION_FILE).save(Session(token=old, machine_id="m1"))
    manager, http = manager_for(router, config)
    async with http:
        await manager.get_session()
        refreshed = await manager.force_refresh()

    assert router.count("/centax/login") == 1
    assert refreshed.token != old
    assert manager.session is refreshed


async def test_client_ip_falls_back_when_unavailable(router, config):
    router.add("/centax/getClientIp", lambda r: httpx.Response(500))
    manager, http = manager_for(router, config)
    async with http:
        assert await manager.get_client_ip() == FALLBACK_IP


async def test_unwritable_session_file_is_not_fatal(router, config, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    config = config.model_copy(update={"SESSION_FILE": str(blocker / "session.json")})
    manager, http = manager_for(router, config)
    async with http:
        session = await manager.login()
    assert manager.session is session


def test_pdf_headers_have_no_space_after_bearer():
    session = Session(token="Bearer abc.def.ghi", machine_id="m1")
    assert build_headers(session)["centaxauthorization"] == "Bearer abc.def.ghi"
    assert build_pdf_headers(session)["centaxauthorization"] == "Bearerabc.def.ghi"
