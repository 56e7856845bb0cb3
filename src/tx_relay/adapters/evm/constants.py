"""
EVM Chain Configuration Management

Provides the built-in chain-parameter table and shared EVM constants.
A chain is only relayable when it appears in this table AND an RPC endpoint
is configured for it (see ``adapters.registry.ChainRegistry``).
"""

from typing import Dict, Optional, List

from pydantic import BaseModel, ConfigDict, Field


#: Largest value representable in an EVM quantity field.
MAX_UINT256: int = 2**256 - 1

#: Key under which the nonce map is kept in the persisted store.
NONCE_MAP_KEY: str = "nonceMap"

#: EIP-2718 transaction type for EIP-1559 fee-market transactions.
DYNAMIC_FEE_TX_TYPE: int = 2


class EvmChainParams(BaseModel):
    """Static EVM network parameters."""
    model_config = ConfigDict(frozen=True)

    chain_id: int = Field(..., gt=0, description="EIP-155 chain id")
    network: str = Field(..., description="Network slug")
    name: str = Field(..., description="Human-readable network name")
    native_currency: str = Field(default="ETH", description="Native currency symbol")
    explorer_url: str = Field(..., description="Block explorer URL")
    testnet: bool = Field(default=False, description="Whether the network is a testnet")


# Raw chain parameter data, keyed by chain id.
_EVM_CHAINS_DATA: Dict[int, Dict] = {
    1: {
        "network": "ethereum-mainnet",
        "name": "Ethereum Mainnet",
        "explorer_url": "https://etherscan.io",
    },
    11155111: {
        "network": "ethereum-sepolia",
        "name": "Sepolia Testnet",
        "explorer_url": "https://sepolia.etherscan.io",
        "testnet": True,
    },
    17000: {
        "network": "ethereum-holesky",
        "name": "Holesky Testnet",
        "explorer_url": "https://holesky.etherscan.io",
        "testnet": True,
    },
    8453: {
        "network": "base-mainnet",
        "name": "Base Mainnet",
        "explorer_url": "https://basescan.org",
    },
    84532: {
        "network": "base-sepolia",
        "name": "Base Sepolia",
        "explorer_url": "https://sepolia.basescan.org",
        "testnet": True,
    },
    10: {
        "network": "optimism-mainnet",
        "name": "OP Mainnet",
        "explorer_url": "https://optimistic.etherscan.io",
    },
    11155420: {
        "network": "optimism-sepolia",
        "name": "OP Sepolia",
        "explorer_url": "https://sepolia-optimism.etherscan.io",
        "testnet": True,
    },
    534352: {
        "network": "scroll-mainnet",
        "name": "Scroll",
        "explorer_url": "https://scrollscan.com",
    },
    534351: {
        "network": "scroll-sepolia",
        "name": "Scroll Sepolia",
        "explorer_url": "https://sepolia.scrollscan.com",
        "testnet": True,
    },
    59144: {
        "network": "linea-mainnet",
        "name": "Linea Mainnet",
        "explorer_url": "https://lineascan.build",
    },
    59141: {
        "network": "linea-sepolia",
        "name": "Linea Sepolia",
        "explorer_url": "https://sepolia.lineascan.build",
        "testnet": True,
    },
}


_EVM_CHAINS: Dict[int, EvmChainParams] = {
    chain_id: EvmChainParams(chain_id=chain_id, **data)
    for chain_id, data in _EVM_CHAINS_DATA.items()
}


def get_chain_params(chain_id: int) -> Optional[EvmChainParams]:
    """
    Look up static parameters for a chain.

    Args:
        chain_id: EIP-155 chain id.

    Returns:
        EvmChainParams, or None if the chain is not in the built-in table.
    """
    return _EVM_CHAINS.get(chain_id)


def list_chain_ids() -> List[int]:
    """Return every chain id in the built-in table, sorted."""
    return sorted(_EVM_CHAINS)
