"""Tests for the mounted endpoints over HTTP.

Uses ``httpx.ASGITransport`` to test Starlette in-process without
starting a real server.
"""

import anyio
import httpx
import pytest

from gateway.config import ServerConfig
from gateway.dispatcher import Registry
from gateway.handlers import math_table, registry
from gateway.server import RpcServer

extra = Registry()
_gate: dict[str, anyio.Event] = {}
touched: list = []


@extra.handler("block")
async def block():
    await _gate["release"].wait()
    return "released"


@extra.handler("ok")
async def ok():
    return 1


@extra.handler("touch")
async def touch(*args):
    touched.append(args)


@extra.handler("opaque")
async def opaque():
    return object()


@pytest.fixture
async def client():
    """In-process async test client with the app lifespan running."""
    _gate["release"] = anyio.Event()
    touched.clear()
    server = RpcServer(ServerConfig())
    server.add_endpoint("/rpc", registry)
    server.add_endpoint("/loose", registry, coerce_loose_clients=True)
    server.add_endpoint("/math", math_table)
    server.add_endpoint("/extra", extra)
    app = server.create_app()

    transport = httpx.ASGITransport(app=app)  # type: ignore[arg-type]
    async with app.router.lifespan_context(app):
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            yield c


def rpc(method, params=None, id=1):
    body = {"jsonrpc": "2.0", "method": method, "id": id}
    if params is not None:
        body["params"] = params
    return body


# ── Single calls ─────────────────────────────────────────────────────


@pytest.mark.anyio
async def test_echo(client):
    resp = await client.post("/rpc", json=rpc("echo", {"msg": "hi"}, id="1"))
    assert resp.status_code == 200
    assert resp.json() == {"jsonrpc": "2.0", "id": "1", "result": {"msg": "hi"}}


@pytest.mark.anyio
async def test_add_positional(client):
    resp = await client.post("/rpc", json=rpc("add", [3, 4]))
    assert resp.json()["result"] == 7


@pytest.mark.anyio
async def test_null_id_gets_response(client):
    resp = await client.post("/rpc", json=rpc("add", [1, 1], id=None))
    assert resp.status_code == 200
    assert resp.json() == {"jsonrpc": "2.0", "id": None, "result": 2}


@pytest.mark.anyio
async def test_method_not_found(client):
    resp = await client.post("/rpc", json=rpc("nonexistent", id="3"))
    assert resp.status_code == 500
    data = resp.json()
    assert data["id"] == "3"
    assert data["error"]["code"] == -32601
    assert "result" not in data


@pytest.mark.anyio
async def test_handler_error(client):
    resp = await client.post("/rpc", json=rpc("fail", ["nope"]))
    assert resp.status_code == 500
    error = resp.json()["error"]
    assert error["code"] == -32000
    assert error["message"] == "RuntimeError: nope"


@pytest.mark.anyio
async def test_module_table(client):
    resp = await client.post("/math", json=rpc("sqrt", [16]))
    assert resp.json()["result"] == 4.0


@pytest.mark.anyio
async def test_module_constant_is_not_a_method(client):
    resp = await client.post("/math", json=rpc("pi"))
    assert resp.json()["error"]["code"] == -32601


# ── Envelope shape ───────────────────────────────────────────────────


@pytest.mark.anyio
async def test_single_array_stays_array(client):
    resp = await client.post("/rpc", json=[rpc("echo", [1])])
    assert resp.status_code == 200
    assert resp.json() == [{"jsonrpc": "2.0", "id": 1, "result": [1]}]


@pytest.mark.anyio
async def test_batch_keeps_request_order(client):
    resp = await client.post(
        "/rpc",
        json=[rpc("sleep", [0.2, "slow"], id=1), rpc("sleep", [0.01, "fast"], id=2)],
    )
    assert resp.status_code == 200
    assert [(r["id"], r["result"]) for r in resp.json()] == [(1, "slow"), (2, "fast")]


@pytest.mark.anyio
async def test_mixed_batch_is_partial_success(client):
    resp = await client.post("/rpc", json=[rpc("add", [1, 2], id=1), rpc("missing", id=2)])
    assert resp.status_code == 500
    first, second = resp.json()
    assert first == {"jsonrpc": "2.0", "id": 1, "result": 3}
    assert second["id"] == 2
    assert second["error"]["code"] == -32601


@pytest.mark.anyio
async def test_empty_batch(client):
    resp = await client.post("/rpc", json=[])
    assert resp.status_code == 200
    assert resp.json() == []


# ── Notifications ────────────────────────────────────────────────────


@pytest.mark.anyio
async def test_single_notification_has_no_body(client):
    with anyio.fail_after(2):
        resp = await client.post("/extra", json={"jsonrpc": "2.0", "method": "block"})
    assert resp.status_code == 204
    assert resp.content == b""
    _gate["release"].set()


@pytest.mark.anyio
async def test_notification_in_batch_holds_position(client):
    resp = await client.post(
        "/rpc",
        json=[rpc("echo", [1], id=1), {"jsonrpc": "2.0", "method": "echo"}],
    )
    assert resp.status_code == 200
    assert resp.json() == [
        {"jsonrpc": "2.0", "id": 1, "result": [1]},
        {"jsonrpc": "2.0", "result": {}},
    ]


# ── Transport-level errors ───────────────────────────────────────────


@pytest.mark.anyio
async def test_parse_error(client):
    resp = await client.post(
        "/rpc",
        content=b'{"method":}',
        headers={"content-type": "application/json"},
    )
    assert resp.status_code == 400
    data = resp.json()
    assert data["id"] is None
    assert data["error"]["code"] == -32700


@pytest.mark.anyio
async def test_invalid_request(client):
    resp = await client.post("/rpc", json={"jsonrpc": "1.0", "method": "echo"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == -32600


@pytest.mark.anyio
async def test_missing_version_on_strict_endpoint(client):
    resp = await client.post("/rpc", json={"method": "echo", "id": 1})
    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == -32600
    assert len(error["data"]) == 1
    assert "jsonrpc" in error["data"][0]["message"]


@pytest.mark.anyio
async def test_invalid_element_rejects_whole_batch(client):
    resp = await client.post("/rpc", json=[rpc("echo"), {"jsonrpc": "2.0"}])
    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == -32600
    assert error["data"][0]["path"] == "$[1]"


@pytest.mark.anyio
async def test_unserializable_result_stays_in_its_entry(client):
    resp = await client.post("/extra", json=[rpc("ok", id=1), rpc("opaque", id=2)])
    assert resp.status_code == 500
    first, second = resp.json()
    assert first == {"jsonrpc": "2.0", "id": 1, "result": 1}
    assert second["id"] == 2
    assert second["error"]["code"] == -32000
    assert second["error"]["message"].startswith("TypeError: ")


@pytest.mark.anyio
async def test_non_json_constants_are_parse_errors(client):
    for constant in (b"NaN", b"Infinity", b"-Infinity"):
        resp = await client.post(
            "/extra",
            content=b'{"jsonrpc":"2.0","method":"touch","params":[' + constant + b'],"id":1}',
            headers={"content-type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == -32700
    assert touched == []


@pytest.mark.anyio
async def test_get_not_allowed(client):
    resp = await client.get("/rpc")
    assert resp.status_code == 405


# ── Loose clients ────────────────────────────────────────────────────


@pytest.mark.anyio
async def test_loose_client_is_coerced(client):
    resp = await client.post("/loose", json={"method": "add", "params": [2, 2]})
    assert resp.status_code == 200
    data = resp.json()
    assert data["jsonrpc"] == "2.0"
    assert data["result"] == 4
    assert isinstance(data["id"], str) and data["id"]


@pytest.mark.anyio
async def test_loose_client_keeps_its_id(client):
    resp = await client.post("/loose", json={"method": "add", "params": [2, 2], "id": 5})
    assert resp.json()["id"] == 5
