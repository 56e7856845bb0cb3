"""
Tests for individual pipeline handlers with stubbed collaborators.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from conftest import API_KEY, API_SECRET, CHAIN_ID, RPC_URL, SIGNER_ADDRESS, make_config, send_params
from tx_relay.adapters.evm.schemas import EVMTransactionRequest, EVMSignedTransaction
from tx_relay.adapters.registry import ChainRegistry
from tx_relay.engine.events import (
    Dependencies,
    RequestReceivedEvent,
    EnvelopeParsedEvent,
    AuthenticatedEvent,
    NetworkResolvedEvent,
    PolicyApprovedEvent,
    NonceAssignedEvent,
    SignedEvent,
    RelaySucceededEvent,
    RelayFailedEvent,
)
from tx_relay.engine.exceptions import InvalidParamsError, UpstreamError, ChainUnsupportedError
from tx_relay.schemas.bases import RelayStage
from tx_relay.schemas.rpc import JsonRpcRequest
from tx_relay.servers import flows

TX_HASH = "0x" + "ab" * 32


def mock_allocator() -> AsyncMock:
    allocator = AsyncMock()
    allocator.settle = MagicMock()
    return allocator


def make_deps(adapter=None, nonce_allocator=None):
    registry = ChainRegistry({CHAIN_ID: RPC_URL})
    signer = MagicMock()
    signer.address = SIGNER_ADDRESS
    return Dependencies(
        config=make_config(),
        registry=registry,
        signer=signer,
        nonce_allocator=nonce_allocator or mock_allocator(),
        adapter=adapter or AsyncMock(),
    )


def signed_event() -> SignedEvent:
    chain = ChainRegistry({CHAIN_ID: RPC_URL}).resolve(CHAIN_ID)
    signed = EVMSignedTransaction(
        chain_id=CHAIN_ID, nonce=4, tx_hash=TX_HASH, raw_transaction="0x02", sender=SIGNER_ADDRESS,
    )
    return SignedEvent(request_id=9, chain=chain, signed=signed)


def rpc_request(method="eth_chainId", params=None) -> JsonRpcRequest:
    return JsonRpcRequest(jsonrpc="2.0", id=9, method=method, params=params)


@pytest.mark.asyncio
async def test_parse_error_has_null_id():
    result = await flows.handle_request_received(RequestReceivedEvent(body=b"{oops"), make_deps())

    assert isinstance(result, RelayFailedEvent)
    assert result.request_id is None
    assert (result.error.code, result.error.message) == (-32700, "Parse error")
    assert result.failed_stage is RelayStage.RECEIVED


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    b'{"jsonrpc": "1.0", "id": 1, "method": "eth_chainId"}',
    b'{"jsonrpc": "2.0", "id": "1", "method": "eth_chainId"}',
    b'{"jsonrpc": "2.0", "id": 1}',
    b'[1, 2, 3]',
    b'',
])
async def test_malformed_envelopes(body):
    result = await flows.handle_request_received(RequestReceivedEvent(body=body), make_deps())

    assert isinstance(result, RelayFailedEvent)
    assert result.error.code == -32700


@pytest.mark.asyncio
async def test_envelope_parsed_carries_credentials_forward():
    event = RequestReceivedEvent(
        body=b'{"jsonrpc": "2.0", "id": 3, "method": "eth_accounts", "params": []}',
        api_key=API_KEY,
        api_secret=API_SECRET,
        chain_id=str(CHAIN_ID),
    )

    result = await flows.handle_request_received(event, make_deps())

    assert isinstance(result, EnvelopeParsedEvent)
    assert result.request.id == 3
    assert result.api_secret.get_secret_value() == API_SECRET
    assert API_SECRET not in repr(event)
    assert API_SECRET not in repr(result)


@pytest.mark.asyncio
async def test_failed_authentication_echoes_id():
    event = EnvelopeParsedEvent(request=rpc_request(), api_key=API_KEY, api_secret=SecretStr("bad"))

    result = await flows.handle_envelope_parsed(event, make_deps())

    assert isinstance(result, RelayFailedEvent)
    assert result.request_id == 9
    assert result.error.message == "Invalid API key and/or secret"


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", [None, "", "abc", "0", "-1", "1.0", "0x1"])
async def test_chain_id_required(raw):
    result = await flows.handle_authenticated(AuthenticatedEvent(request=rpc_request(), chain_id=raw), make_deps())

    assert isinstance(result, RelayFailedEvent)
    assert result.error.message == "Chain id required"


def test_parse_chain_id():
    assert flows.parse_chain_id("8453") == 8453
    with pytest.raises(ChainUnsupportedError):
        flows.parse_chain_id("8453a")


@pytest.mark.asyncio
async def test_unknown_method():
    chain = ChainRegistry({CHAIN_ID: RPC_URL}).resolve(CHAIN_ID)
    event = NetworkResolvedEvent(request=rpc_request(method="eth_getBalance"), chain=chain)

    result = await flows.handle_network_resolved(event, make_deps())

    assert isinstance(result, RelayFailedEvent)
    assert (result.error.code, result.error.message) == (-32601, "Method not found")


@pytest.mark.parametrize("params", [
    None,
    {},
    [],
    [send_params(), send_params()],
    ["0xdeadbeef"],
    [send_params(gas="lots")],
])
def test_send_transaction_params_shape(params):
    with pytest.raises(InvalidParamsError):
        flows.parse_send_transaction_params(params)


@pytest.mark.asyncio
async def test_policy_approved_reserves_nonce_for_signer():
    allocator = mock_allocator()
    allocator.get_nonce.return_value = 12
    chain = ChainRegistry({CHAIN_ID: RPC_URL}).resolve(CHAIN_ID)
    event = PolicyApprovedEvent(
        request_id=9, chain=chain, transaction=EVMTransactionRequest.model_validate(send_params()),
    )

    result = await flows.handle_policy_approved(event, make_deps(nonce_allocator=allocator))

    assert isinstance(result, NonceAssignedEvent)
    assert result.nonce == 12
    allocator.get_nonce.assert_awaited_once_with(SIGNER_ADDRESS, CHAIN_ID, RPC_URL)


@pytest.mark.asyncio
async def test_signing_failure_releases_nonce():
    allocator = mock_allocator()
    deps = make_deps(nonce_allocator=allocator)
    deps.signer.sign.side_effect = RuntimeError("hsm offline")
    chain = ChainRegistry({CHAIN_ID: RPC_URL}).resolve(CHAIN_ID)
    event = NonceAssignedEvent(
        request_id=9, chain=chain, transaction=EVMTransactionRequest.model_validate(send_params()), nonce=4,
    )

    with pytest.raises(RuntimeError):
        await flows.handle_nonce_assigned(event, deps)
    allocator.release.assert_awaited_once_with(SIGNER_ADDRESS, CHAIN_ID, 4)


@pytest.mark.asyncio
async def test_broadcast_success():
    adapter = AsyncMock()
    adapter.send.return_value = TX_HASH

    result = await flows.handle_signed(signed_event(), make_deps(adapter=adapter))

    assert isinstance(result, RelaySucceededEvent)
    assert result.result == TX_HASH
    assert result.request_id == 9
    adapter.send.assert_awaited_once()


@pytest.mark.asyncio
async def test_rejected_broadcast_releases_nonce():
    """A node rejection means the nonce was not consumed."""
    adapter = AsyncMock()
    adapter.send.side_effect = UpstreamError("Upstream error: nonce too low", rejected=True)
    allocator = mock_allocator()

    result = await flows.handle_signed(signed_event(), make_deps(adapter=adapter, nonce_allocator=allocator))

    assert isinstance(result, RelayFailedEvent)
    assert result.error.message == "Upstream error: nonce too low"
    assert result.failed_stage is RelayStage.BROADCAST
    allocator.release.assert_awaited_once_with(SIGNER_ADDRESS, CHAIN_ID, 4)
    allocator.settle.assert_not_called()


@pytest.mark.asyncio
async def test_timed_out_broadcast_keeps_nonce():
    """After a timeout the transaction may be in the mempool; the nonce stays reserved."""
    adapter = AsyncMock()
    adapter.send.side_effect = UpstreamError("Upstream request timed out")
    allocator = mock_allocator()

    result = await flows.handle_signed(signed_event(), make_deps(adapter=adapter, nonce_allocator=allocator))

    assert isinstance(result, RelayFailedEvent)
    assert result.error.code == -32000
    allocator.release.assert_not_awaited()
    allocator.settle.assert_called_once_with(SIGNER_ADDRESS, CHAIN_ID, 4)


@pytest.mark.asyncio
async def test_successful_broadcast_settles_nonce():
    adapter = AsyncMock()
    adapter.send.return_value = TX_HASH
    allocator = mock_allocator()

    await flows.handle_signed(signed_event(), make_deps(adapter=adapter, nonce_allocator=allocator))

    allocator.settle.assert_called_once_with(SIGNER_ADDRESS, CHAIN_ID, 4)
    allocator.release.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancelled_broadcast_settles_nonce():
    adapter = AsyncMock()
    adapter.send.side_effect = asyncio.CancelledError()
    allocator = mock_allocator()

    with pytest.raises(asyncio.CancelledError):
        await flows.handle_signed(signed_event(), make_deps(adapter=adapter, nonce_allocator=allocator))
    allocator.settle.assert_called_once_with(SIGNER_ADDRESS, CHAIN_ID, 4)
    allocator.release.assert_not_awaited()


def test_setup_event_bus_registers_every_stage():
    bus = flows.setup_event_bus()

    for event_class in (RequestReceivedEvent, EnvelopeParsedEvent, AuthenticatedEvent,
                        NetworkResolvedEvent, PolicyApprovedEvent, NonceAssignedEvent, SignedEvent):
        assert bus._subscribers[event_class]
    assert bus._hooks[RelayFailedEvent]
