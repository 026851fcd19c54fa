"""Tests for API-key authentication."""

import logging

import httpx
import pytest

from gateway.auth import check_auth_config, hash_api_key
from gateway.config import ConfigurationError, ServerConfig
from gateway.handlers import registry
from gateway.server import RpcServer

API_KEY = "secr3t"


def make_app(**config):
    server = RpcServer(ServerConfig(**config))
    server.add_endpoint("/rpc", registry)
    return server.create_app()


@pytest.fixture
async def client():
    app = make_app(authentication=True, apikeyhash=hash_api_key(API_KEY))
    transport = httpx.ASGITransport(app=app)  # type: ignore[arg-type]
    async with app.router.lifespan_context(app):
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            yield c


PING = {"jsonrpc": "2.0", "method": "echo", "params": ["ping"], "id": 1}


def test_hash_api_key():
    assert hash_api_key("abc") == (
        "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    )


@pytest.mark.anyio
async def test_missing_api_key(client):
    resp = await client.post("/rpc", json=PING)
    assert resp.status_code == 401
    data = resp.json()
    assert data["error"] == "MISSING_APIKEY"
    assert "authorization" in data["message"]


@pytest.mark.anyio
async def test_wrong_api_key(client):
    resp = await client.post("/rpc", json=PING, headers={"authorization": "guess"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "WRONG_APIKEY"


@pytest.mark.anyio
async def test_correct_api_key(client):
    resp = await client.post("/rpc", json=PING, headers={"authorization": API_KEY})
    assert resp.status_code == 200
    assert resp.json()["result"] == ["ping"]


@pytest.mark.anyio
async def test_rejected_before_parsing(client):
    resp = await client.post("/rpc", content=b"not json")
    assert resp.status_code == 401


@pytest.mark.anyio
async def test_hash_without_authentication_is_open():
    app = make_app(authentication=False, apikeyhash=hash_api_key(API_KEY))
    transport = httpx.ASGITransport(app=app)  # type: ignore[arg-type]
    async with app.router.lifespan_context(app):
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            resp = await c.post("/rpc", json=PING)
    assert resp.status_code == 200


class TestCheckAuthConfig:
    def test_enabled_without_hash_is_fatal(self):
        with pytest.raises(ConfigurationError):
            check_auth_config(ServerConfig(authentication=True))

    def test_create_app_refuses_to_build(self):
        with pytest.raises(ConfigurationError):
            make_app(authentication=True)

    def test_hash_without_authentication_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="gateway.auth"):
            assert check_auth_config(ServerConfig(apikeyhash="ab" * 32)) is False
        assert "NOT authenticating" in caplog.text

    def test_enabled_with_hash(self):
        assert check_auth_config(ServerConfig(authentication=True, apikeyhash="ab" * 32))

    def test_disabled(self):
        assert check_auth_config(ServerConfig()) is False


@pytest.mark.anyio
async def test_non_ascii_hash_rejects_cleanly():
    app = make_app(authentication=True, apikeyhash="é" * 64)
    transport = httpx.ASGITransport(app=app)  # type: ignore[arg-type]
    async with app.router.lifespan_context(app):
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            resp = await c.post("/rpc", json=PING, headers={"authorization": API_KEY})
    assert resp.status_code == 401
    assert resp.json()["error"] == "WRONG_APIKEY"
