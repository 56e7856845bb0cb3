import json
from typing import List, Optional

import httpx
import pytest
from web3 import Web3

from tx_relay.clients.http_client import NodeRpcClient
from tx_relay.config import GatewayConfig, PolicyConfig

# test-only key, never funded on a public network
PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcab2e8c60e2b6f5a1"
SIGNER_ADDRESS = "0x1Df6b80252704fb504F0d830Ad95D6ed047fE3dA"

API_KEY = "public1f0e2d3c4b5a69788796a5b4c3d2e1f0"
API_SECRET = "secret0a1b2c3d4e5f60718293a4b5c6d7e8f9"

CHAIN_ID = 11155111
RPC_URL = "https://sepolia.node.test/rpc"

ADDRESS_A = "0x" + "aa" * 20
ADDRESS_B = "0x" + "bb" * 20


class FakeNode:
    """In-process JSON-RPC node for httpx.MockTransport."""

    def __init__(self, tx_count: int = 0, send_error: Optional[str] = None, dropped_sends: int = 0):
        self.tx_count = tx_count
        self.send_error = send_error
        # broadcasts that time out without reaching the mempool
        self.dropped_sends = dropped_sends
        self.methods: List[str] = []
        self.requests: List[dict] = []
        self.raw_transactions: List[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.methods.append(body["method"])
        self.requests.append(body)
        reply = {"jsonrpc": "2.0", "id": body["id"]}

        if body["method"] == "eth_getTransactionCount":
            reply["result"] = hex(self.tx_count)
        elif body["method"] == "eth_sendRawTransaction":
            if self.dropped_sends:
                self.dropped_sends -= 1
                raise httpx.ReadTimeout("timed out", request=request)
            if self.send_error:
                reply["error"] = {"code": -32000, "message": self.send_error}
            else:
                raw = body["params"][0]
                self.raw_transactions.append(raw)
                self.tx_count += 1
                reply["result"] = Web3.to_hex(Web3.keccak(hexstr=raw))
        else:
            reply["error"] = {"code": -32601, "message": "method not found"}

        return httpx.Response(200, json=reply)


def make_config(**overrides) -> GatewayConfig:
    values = dict(
        api_secrets={API_KEY: API_SECRET},
        chain_rpc_map={CHAIN_ID: RPC_URL},
        private_key=PRIVATE_KEY,
        policy=PolicyConfig(),
    )
    values.update(overrides)
    return GatewayConfig(**values)


def send_params(**overrides) -> dict:
    tx = {
        "to": ADDRESS_A,
        "data": "0x",
        "value": "0",
        "gas": "21000",
        "maxPriorityFeePerGas": "1",
        "maxFeePerGas": "50",
    }
    tx.update(overrides)
    return tx


@pytest.fixture
def fake_node():
    return FakeNode(tx_count=3)


@pytest.fixture
def node_client(fake_node):
    return NodeRpcClient(transport=httpx.MockTransport(fake_node))
