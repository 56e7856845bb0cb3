"""
End-to-end tests for RelayServer over HTTP, with the ledger node replaced by httpx.MockTransport.
"""
import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock

from conftest import (
    FakeNode, API_KEY, API_SECRET, CHAIN_ID, SIGNER_ADDRESS, ADDRESS_A, ADDRESS_B,
    make_config, send_params,
)
from tx_relay.adapters.evm.constants import NONCE_MAP_KEY
from tx_relay.adapters.stores import InMemoryKeyValueStore
from tx_relay.clients.http_client import NodeRpcClient
from tx_relay.config import PolicyConfig
from tx_relay.engine.events import RelaySucceededEvent, SignedEvent
from tx_relay.servers import RelayServer, apps

AUTH = {"Authorization": f"Bearer {API_SECRET}"}
URL = f"/{API_KEY}/{CHAIN_ID}"


def rpc(method, params=None, request_id=1):
    return {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params if params is not None else []}


def make_app(node=None, store=None, **config_overrides) -> RelayServer:
    node = node or FakeNode(tx_count=3)
    return RelayServer(
        config=make_config(**config_overrides),
        store=store,
        client=NodeRpcClient(transport=httpx.MockTransport(node)),
    )


@pytest.fixture
def node():
    return FakeNode(tx_count=3)


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def client(node, store):
    with TestClient(make_app(node=node, store=store)) as test_client:
        yield test_client


def assert_error(response, code, message, request_id=1):
    assert response.status_code == 200
    assert response.json() == {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": request_id}


def test_eth_chain_id_returns_requested_chain(client):
    response = client.post(URL, json=rpc("eth_chainId", request_id=42), headers=AUTH)

    assert response.status_code == 200
    assert response.json() == {"jsonrpc": "2.0", "result": CHAIN_ID, "id": 42}


def test_eth_accounts_returns_signer(client):
    response = client.post(URL, json=rpc("eth_accounts"), headers=AUTH)

    assert response.json()["result"] == [SIGNER_ADDRESS]


def test_missing_secret(client):
    response = client.post(URL, json=rpc("eth_chainId"))

    assert_error(response, -32000, "API key and secret required")


def test_malformed_authorization_header(client):
    response = client.post(URL, json=rpc("eth_chainId"), headers={"Authorization": API_SECRET})

    assert_error(response, -32000, "API key and secret required")


def test_wrong_secret(client):
    response = client.post(URL, json=rpc("eth_chainId"), headers={"Authorization": "Bearer nope"})

    assert_error(response, -32000, "Invalid API key and/or secret")


def test_unknown_api_key(client):
    response = client.post(f"/publicunknown/{CHAIN_ID}", json=rpc("eth_chainId"), headers=AUTH)

    assert_error(response, -32000, "Invalid API key and/or secret")


def test_unknown_chain(client):
    response = client.post(f"/{API_KEY}/1", json=rpc("eth_chainId"), headers=AUTH)

    assert_error(response, -32000, "Chain id not supported")


def test_non_numeric_chain(client):
    response = client.post(f"/{API_KEY}/sepolia", json=rpc("eth_chainId"), headers=AUTH)

    assert_error(response, -32000, "Chain id required")


def test_non_json_body(client):
    """Parse errors carry a null id."""
    response = client.post(URL, content=b"not json", headers=AUTH)

    assert_error(response, -32700, "Parse error", request_id=None)


def test_parse_error_wins_over_auth(client):
    response = client.post(URL, content=b"{")

    assert_error(response, -32700, "Parse error", request_id=None)


def test_method_not_found(client):
    response = client.post(URL, json=rpc("eth_sign", request_id=5), headers=AUTH)

    assert_error(response, -32601, "Method not found", request_id=5)


def test_invalid_params(client, node):
    response = client.post(URL, json=rpc("eth_sendTransaction", [send_params(to="0x1234")]), headers=AUTH)

    assert_error(response, -32602, "Invalid params")
    assert node.methods == []


def test_send_transaction_returns_hash(client, node, store):
    """Valid send: result is the node's tx hash and the id is echoed."""
    response = client.post(URL, json=rpc("eth_sendTransaction", [send_params()], request_id=77), headers=AUTH)

    body = response.json()
    assert body["id"] == 77
    assert "error" not in body
    assert isinstance(body["result"], str)
    assert body["result"].startswith("0x") and len(body["result"]) == 66
    assert node.methods == ["eth_getTransactionCount", "eth_sendRawTransaction"]
    assert node.requests[0]["params"] == [SIGNER_ADDRESS, "pending"]


def test_sequential_sends_use_increasing_nonces(client, node, store):
    for request_id in (1, 2):
        response = client.post(URL, json=rpc("eth_sendTransaction", [send_params()], request_id), headers=AUTH)
        assert "result" in response.json()

    assert len(set(node.raw_transactions)) == 2
    assert store._data[NONCE_MAP_KEY] == {str(CHAIN_ID): 5}


def test_whitelist_policy(node):
    """Only whitelisted destinations are signed."""
    app = make_app(node=node, policy=PolicyConfig(whitelisted_addresses=[ADDRESS_A]))
    with TestClient(app) as client:
        rejected = client.post(URL, json=rpc("eth_sendTransaction", [send_params(to=ADDRESS_B)]), headers=AUTH)
        accepted = client.post(URL, json=rpc("eth_sendTransaction", [send_params(to=ADDRESS_A)]), headers=AUTH)

    assert_error(rejected, -32000, "Address not whitelisted")
    assert "result" in accepted.json()
    assert len(node.raw_transactions) == 1


def test_fee_cap_policy(node):
    app = make_app(node=node, policy=PolicyConfig(max_base_fee=100))
    with TestClient(app) as client:
        rejected = client.post(URL, json=rpc("eth_sendTransaction", [send_params(maxFeePerGas="150")]), headers=AUTH)
        accepted = client.post(URL, json=rpc("eth_sendTransaction", [send_params(maxFeePerGas="50")]), headers=AUTH)

    assert_error(rejected, -32000, "Max fee per gas too high")
    assert "result" in accepted.json()


def test_node_rejection_is_upstream_error_and_releases_nonce(store):
    node = FakeNode(tx_count=3, send_error="nonce too low")
    with TestClient(make_app(node=node, store=store)) as client:
        response = client.post(URL, json=rpc("eth_sendTransaction", [send_params()]), headers=AUTH)

    assert_error(response, -32000, "Upstream error: nonce too low")
    # reservation rolled back to the on-chain count
    assert store._data[NONCE_MAP_KEY] == {str(CHAIN_ID): 3}


def test_unexpected_exception_is_internal_error():
    app = make_app()
    app.adapter.send = AsyncMock(side_effect=RuntimeError("boom"))
    with TestClient(app) as client:
        response = client.post(URL, json=rpc("eth_sendTransaction", [send_params()], request_id=8), headers=AUTH)

    assert_error(response, -32603, "Internal error", request_id=8)
    assert "boom" not in response.text


def test_hooks_observe_outcomes(node):
    app = make_app(node=node)
    seen = []

    @app.hook(RelaySucceededEvent)
    async def record(event, deps):
        seen.append(event.result)

    with TestClient(app) as client:
        client.post(URL, json=rpc("eth_chainId"), headers=AUTH)

    assert seen == [CHAIN_ID]


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "chains": [CHAIN_ID], "address": SIGNER_ADDRESS}


def test_secrets_never_in_responses(client):
    response = client.post(URL, json=rpc("eth_chainId"), headers={"Authorization": "Bearer wrong"})

    assert API_SECRET not in response.text
    assert "wrong" not in response.text


def test_lost_broadcast_does_not_leave_nonce_gap(store):
    """A broadcast that times out without reaching the node is retried at the same nonce."""
    node = FakeNode(tx_count=3, dropped_sends=1)
    app = make_app(node=node, store=store)
    signed_nonces = []

    @app.hook(SignedEvent)
    async def record(event, deps):
        signed_nonces.append(event.signed.nonce)

    with TestClient(app) as client:
        responses = [
            client.post(URL, json=rpc("eth_sendTransaction", [send_params()], request_id), headers=AUTH)
            for request_id in (1, 2, 3)
        ]

    assert_error(responses[0], -32000, "Upstream request timed out")
    assert all("result" in response.json() for response in responses[1:])
    assert signed_nonces == [3, 3, 4]
    assert node.tx_count == 5
    assert store._data[NONCE_MAP_KEY] == {str(CHAIN_ID): 5}
    assert app.nonce_allocator.in_flight(SIGNER_ADDRESS, CHAIN_ID) == frozenset()


@pytest.mark.asyncio
async def test_client_disconnect_cancels_pending_broadcast(monkeypatch):
    monkeypatch.setattr(apps, "DISCONNECT_POLL_INTERVAL", 0.01)
    app = make_app()
    send_started = asyncio.Event()
    send_cancelled = asyncio.Event()

    async def hanging_send(signed, rpc_url):
        send_started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            send_cancelled.set()
            raise

    app.adapter.send = hanging_send

    body = json.dumps(rpc("eth_sendTransaction", [send_params()])).encode()
    body_sent = False

    async def receive():
        nonlocal body_sent
        if not body_sent:
            body_sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        if send_started.is_set():
            return {"type": "http.disconnect"}
        return {}

    sent = []

    async def send(message):
        sent.append(message)

    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": URL,
        "raw_path": URL.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [
            (b"authorization", f"Bearer {API_SECRET}".encode()),
            (b"content-type", b"application/json"),
        ],
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }

    await asyncio.wait_for(app(scope, receive, send), timeout=5)

    assert send_cancelled.is_set()
    assert sent[0]["type"] == "http.response.start"
    assert sent[0]["status"] == apps.CLIENT_CLOSED_REQUEST
    assert app.nonce_allocator.in_flight(SIGNER_ADDRESS, CHAIN_ID) == frozenset()
    await app.client.aclose()
