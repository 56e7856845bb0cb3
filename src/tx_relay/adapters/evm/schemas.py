"""
EVM Adapter Schema Models

Pydantic models for EVM transaction relay operations. All classes inherit
from the base schema hierarchy in ``schemas.bases``.

Request classes:
    - EVMTransactionRequest: Validated ``eth_sendTransaction`` parameter object.

Result classes:
    - EVMSignedTransaction: Signed, RLP-encoded type-2 transaction plus its hash.

Supporting classes:
    - ChainConfig: Resolved network (endpoint + chain parameters).
"""

import re
from typing import Any

from pydantic import Field, field_validator
from web3 import Web3

from ...schemas.bases import BaseSignedTransaction, CanonicalModel
from .constants import EvmChainParams, MAX_UINT256


_HEX_BYTES_RE = re.compile(r"^0x(?:[0-9a-fA-F]{2})*$")
_HEX_INT_RE = re.compile(r"^0x[0-9a-fA-F]+$")
_DEC_INT_RE = re.compile(r"^[0-9]+$")


def parse_quantity(value: Any) -> int:
    """
    Parse a wire quantity into an unsigned 256-bit integer.

    Quantities travel as strings, either decimal (``"1000"``) or 0x-prefixed
    hex (``"0x3e8"``).

    Args:
        value: Raw field value from the request.

    Returns:
        int: Parsed value, ``0 <= value <= 2**256 - 1``.

    Raises:
        ValueError: If the value is not a string, not a number, or out of range.
    """
    if not isinstance(value, str):
        raise ValueError("quantity must be a decimal or hex string")

    text = value.strip()
    if _HEX_INT_RE.match(text):
        parsed = int(text, 16)
    elif _DEC_INT_RE.match(text):
        parsed = int(text, 10)
    else:
        raise ValueError(f"invalid quantity: {value!r}")

    if parsed > MAX_UINT256:
        raise ValueError("quantity exceeds uint256")
    return parsed


class EVMTransactionRequest(CanonicalModel):
    """
    Parameters of an ``eth_sendTransaction`` call.

    Field aliases follow the Ethereum JSON-RPC naming; unknown fields such as
    ``from`` are ignored because every transaction is signed by the gateway's
    own key.

    Attributes:
        to: Destination address, normalized to checksum form.
        data: Call data as 0x-prefixed hex (``"0x"`` for a plain transfer).
        value: Wei to transfer.
        gas: Gas limit.
        max_priority_fee_per_gas: EIP-1559 tip cap in wei.
        max_fee_per_gas: EIP-1559 fee cap in wei.

    Example::

        request = EVMTransactionRequest.model_validate({
            "to": "0x5FbDB2315678afecb367f032d93F642f64180aa3",
            "data": "0x",
            "value": "0",
            "gas": "21000",
            "maxPriorityFeePerGas": "0x3b9aca00",
            "maxFeePerGas": "30000000000",
        })
    """

    to: str = Field(..., description="Destination address (checksum)")
    data: str = Field(..., description="Call data (0x-prefixed hex)")
    value: int = Field(..., description="Value in wei")
    gas: int = Field(..., description="Gas limit")
    max_priority_fee_per_gas: int = Field(..., alias="maxPriorityFeePerGas", description="Priority fee cap in wei")
    max_fee_per_gas: int = Field(..., alias="maxFeePerGas", description="Max fee per gas in wei")

    @field_validator("to", mode="before")
    @classmethod
    def _validate_address(cls, value: Any) -> str:
        if not isinstance(value, str) or not Web3.is_address(value):
            raise ValueError("invalid address")
        return Web3.to_checksum_address(value)

    @field_validator("data", mode="before")
    @classmethod
    def _validate_data(cls, value: Any) -> str:
        if not isinstance(value, str) or not _HEX_BYTES_RE.match(value):
            raise ValueError("data must be 0x-prefixed hex bytes")
        return value.lower()

    @field_validator("value", "gas", "max_priority_fee_per_gas", "max_fee_per_gas", mode="before")
    @classmethod
    def _validate_quantity(cls, value: Any) -> int:
        return parse_quantity(value)


class EVMSignedTransaction(BaseSignedTransaction):
    """
    Signed EIP-1559 transaction ready for ``eth_sendRawTransaction``.

    Attributes:
        raw_transaction: 0x-prefixed hex of the signed, typed transaction envelope.
        tx_hash: Keccak hash of ``raw_transaction`` (0x-prefixed).
        sender: Checksum address of the signing identity.
    """

    raw_transaction: str = Field(..., description="Signed transaction bytes (0x-prefixed hex)")
    sender: str = Field(..., description="Signer address")

    def __repr__(self) -> str:
        return f"EVMSignedTransaction(chain_id={self.chain_id}, nonce={self.nonce}, tx_hash={self.tx_hash})"


class ChainConfig(CanonicalModel):
    """
    A network the gateway can relay to.

    Attributes:
        chain_id: EVM chain id.
        rpc_url: JSON-RPC endpoint used for nonce lookup and broadcast.
        params: Static chain parameters from the built-in table.
    """

    chain_id: int = Field(..., gt=0, description="EVM chain id")
    rpc_url: str = Field(..., description="JSON-RPC endpoint URL")
    params: EvmChainParams = Field(..., description="Static chain parameters")

    def __repr__(self) -> str:
        # endpoint URLs often embed provider API keys
        return f"ChainConfig(chain_id={self.chain_id}, name={self.params.name!r})"
