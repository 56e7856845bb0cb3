"""
EVM Transaction Signing

Builds EIP-1559 (type 2) transactions and signs them in-process with
``eth_account``. No RPC calls are made here; the nonce is supplied by the
caller.

Exported helpers
----------------
build_transaction
    Assemble the canonical transaction dict from a validated request,
    a nonce and a chain id.

TransactionSigner
    Holds the single process-wide signing key and turns a transaction dict
    into an ``EVMSignedTransaction``.
"""

import logging
from typing import Any, Dict, Union

from eth_account import Account
from pydantic import SecretStr
from web3 import Web3

from .constants import DYNAMIC_FEE_TX_TYPE
from .schemas import EVMTransactionRequest, EVMSignedTransaction
from ...engine.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def build_transaction(request: EVMTransactionRequest, nonce: int, chain_id: int) -> Dict[str, Any]:
    """
    Assemble an EIP-1559 transaction dict.

    Args:
        request: Policy-approved transaction request.
        nonce: Sequence number resolved by the nonce allocator.
        chain_id: EIP-155 chain id the transaction is bound to.

    Returns:
        Dict[str, Any]: Transaction dict accepted by ``Account.sign_transaction``.

    Example::

        tx = build_transaction(request, nonce=7, chain_id=11155111)
        # {"type": 2, "chainId": 11155111, "nonce": 7, "to": "0x...", ...}
    """
    if nonce < 0:
        raise ValueError("nonce must be non-negative")

    return {
        "type": DYNAMIC_FEE_TX_TYPE,
        "chainId": chain_id,
        "nonce": nonce,
        "to": request.to,
        "data": request.data,
        "value": request.value,
        "gas": request.gas,
        "maxPriorityFeePerGas": request.max_priority_fee_per_gas,
        "maxFeePerGas": request.max_fee_per_gas,
        "accessList": [],
    }


class TransactionSigner:
    """
    Signs transactions with the gateway's single signing identity.

    Every accepted request is signed by the same key regardless of caller.
    The key lives only in this object, wrapped in ``SecretStr`` so it never
    shows up in ``repr`` or logs.

    Attributes:
        address: Checksum address of the signing identity.

    Example:
        signer = TransactionSigner(private_key=SecretStr("0x..."))
        tx = signer.build(request, nonce=0, chain_id=1)
        signed = signer.sign(tx)
    """

    def __init__(self, private_key: Union[str, SecretStr]):
        """
        Args:
            private_key: 0x-prefixed hex secp256k1 key.

        Raises:
            ConfigurationError: If the key is malformed.
        """
        secret = private_key if isinstance(private_key, SecretStr) else SecretStr(private_key)
        try:
            self._account = Account.from_key(secret.get_secret_value())
        except Exception as e:
            raise ConfigurationError("Invalid signing key") from e
        self.address: str = Web3.to_checksum_address(self._account.address)

    def __repr__(self) -> str:
        return f"TransactionSigner(address={self.address})"

    def build(self, request: EVMTransactionRequest, nonce: int, chain_id: int) -> Dict[str, Any]:
        """Assemble the transaction dict. See ``build_transaction``."""
        return build_transaction(request, nonce, chain_id)

    def sign(self, transaction: Dict[str, Any]) -> EVMSignedTransaction:
        """
        Sign a transaction dict.

        Signing is deterministic (RFC 6979): the same dict always produces the
        same raw bytes and hash.

        Args:
            transaction: Output of ``build``.

        Returns:
            EVMSignedTransaction: Raw signed bytes and hash as 0x hex.
        """
        signed = self._account.sign_transaction(transaction)
        result = EVMSignedTransaction(
            chain_id=transaction["chainId"],
            nonce=transaction["nonce"],
            tx_hash=Web3.to_hex(signed.hash),
            raw_transaction=Web3.to_hex(signed.raw_transaction),
            sender=self.address,
        )
        logger.debug("Signed tx %s (chain %s, nonce %s)", result.tx_hash, result.chain_id, result.nonce)
        return result
