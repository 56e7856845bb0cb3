"""
Gateway configuration.

All settings are read once at startup, validated, and frozen. Nothing reads
the environment after ``GatewayConfig.from_env()`` returns.

Environment variables:
    API_SECRETS            JSON object, API key -> API secret (required)
    CHAIN_RPC_MAP          JSON object, chain id -> node URL (required)
    ETH_PRIVATE_KEY        0x-prefixed signing key (required)
    WHITELISTED_ADDRESSES  JSON list of allowed destinations (default: [])
    MAX_BASE_FEE           maxFeePerGas ceiling in wei, 0 = none (default: 0)
    RPC_TIMEOUT            Seconds per outbound node call (default: 10)
    NONCE_MODE             "serialized" or "advisory" (default: serialized)
"""

import json
import logging
import os
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_serializer, field_validator

from .adapters.evm.nonces import NonceMode
from .adapters.evm.schemas import parse_quantity
from .clients.http_client import DEFAULT_RPC_TIMEOUT
from .engine.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class PolicyConfig(BaseModel):
    """
    Immutable relay policy.

    Attributes:
        whitelisted_addresses: Allowed destinations, lower-cased. Empty = allow all.
        max_base_fee: Ceiling for ``maxFeePerGas`` in wei. Zero = no ceiling.
    """
    model_config = ConfigDict(frozen=True)

    whitelisted_addresses: FrozenSet[str] = Field(default_factory=frozenset)
    max_base_fee: int = Field(default=0, ge=0)

    @field_validator("whitelisted_addresses", mode="before")
    @classmethod
    def _normalize_addresses(cls, value: Iterable[str]) -> FrozenSet[str]:
        if isinstance(value, str):
            raise ValueError("whitelist must be a list of addresses")
        return frozenset(str(address).lower() for address in value)


class GatewayConfig(BaseModel):
    """
    Immutable gateway configuration.

    Attributes:
        api_secrets: API key -> secret. Secrets never appear in ``repr``.
        chain_rpc_map: Chain id -> node JSON-RPC URL.
        private_key: Signing key of the gateway's single identity.
        policy: Whitelist and fee ceiling.
        rpc_timeout: Seconds allowed for each outbound node call.
        nonce_mode: Nonce allocator consistency mode.
    """
    model_config = ConfigDict(frozen=True)

    api_secrets: Mapping[str, SecretStr]
    chain_rpc_map: Mapping[int, str]
    private_key: SecretStr
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    rpc_timeout: float = Field(default=DEFAULT_RPC_TIMEOUT, gt=0)
    nonce_mode: NonceMode = NonceMode.SERIALIZED

    @field_validator("api_secrets")
    @classmethod
    def _require_credentials(cls, value: Mapping[str, SecretStr]) -> Mapping[str, SecretStr]:
        if not value:
            raise ValueError("at least one API key is required")
        return MappingProxyType(dict(value))

    @field_validator("chain_rpc_map")
    @classmethod
    def _require_endpoints(cls, value: Mapping[int, str]) -> Mapping[int, str]:
        if not value:
            raise ValueError("at least one chain endpoint is required")
        for chain_id, url in value.items():
            if chain_id <= 0:
                raise ValueError("chain ids must be positive")
            if not url:
                raise ValueError(f"empty endpoint for chain {chain_id}")
        return MappingProxyType(dict(value))

    @field_serializer("api_secrets", "chain_rpc_map")
    def _serialize_mapping(self, value: Mapping[Any, Any]) -> Dict[Any, Any]:
        return dict(value)

    @classmethod
    def from_env(
        cls,
        env_file: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "GatewayConfig":
        """
        Build the configuration from environment variables.

        Args:
            env_file: Optional ``.env`` path loaded before reading. Ignored
                when ``environ`` is given.
            environ: Explicit variable mapping (defaults to ``os.environ``).

        Returns:
            GatewayConfig: Validated, frozen configuration.

        Raises:
            ConfigurationError: If a required variable is missing or any value is malformed.
        """
        if environ is None:
            load_dotenv(dotenv_path=env_file)
            environ = os.environ

        private_key = environ.get("ETH_PRIVATE_KEY")
        if not private_key:
            raise ConfigurationError("ETH_PRIVATE_KEY is required")

        api_secrets = _load_json(environ, "API_SECRETS", required=True)
        chain_rpc_map = _load_json(environ, "CHAIN_RPC_MAP", required=True)
        whitelist = _load_json(environ, "WHITELISTED_ADDRESSES", default=[])

        if not isinstance(api_secrets, dict):
            raise ConfigurationError("API_SECRETS must be a JSON object")
        if not isinstance(chain_rpc_map, dict):
            raise ConfigurationError("CHAIN_RPC_MAP must be a JSON object")
        if not isinstance(whitelist, list):
            raise ConfigurationError("WHITELISTED_ADDRESSES must be a JSON list")

        try:
            max_base_fee = parse_quantity(environ.get("MAX_BASE_FEE") or "0")
        except ValueError as e:
            raise ConfigurationError("MAX_BASE_FEE must be a decimal or hex integer") from e

        try:
            return cls(
                api_secrets=api_secrets,
                chain_rpc_map=chain_rpc_map,
                private_key=private_key,
                policy=PolicyConfig(whitelisted_addresses=whitelist, max_base_fee=max_base_fee),
                rpc_timeout=environ.get("RPC_TIMEOUT") or DEFAULT_RPC_TIMEOUT,
                nonce_mode=(environ.get("NONCE_MODE") or NonceMode.SERIALIZED.value).lower(),
            )
        except ValidationError as e:
            # only field locations: input values may hold secrets
            fields = sorted({".".join(str(part) for part in err["loc"]) for err in e.errors()})
            raise ConfigurationError(f"Invalid configuration: {', '.join(fields)}") from None

    def __repr__(self) -> str:
        return (
            f"GatewayConfig(api_keys={len(self.api_secrets)}, chains={sorted(self.chain_rpc_map)}, "
            f"nonce_mode={self.nonce_mode.value}, rpc_timeout={self.rpc_timeout})"
        )


def _load_json(environ: Mapping[str, str], name: str, required: bool = False, default: Any = None) -> Any:
    raw = environ.get(name)
    if not raw:
        if required:
            raise ConfigurationError(f"{name} is required")
        return default
    try:
        return json.loads(raw)
    except ValueError:
        raise ConfigurationError(f"{name} is not valid JSON") from None


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the gateway process."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
