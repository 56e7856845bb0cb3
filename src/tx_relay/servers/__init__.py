from .apps import RelayServer
from .policy import check_whitelist, check_fee_cap, enforce_policy
from .security import (
    authenticate,
    parse_bearer,
    create_api_credentials,
    create_private_key,
    address_from_private_key,
    save_key_to_env,
)

__all__ = [
    "RelayServer",
    "check_whitelist",
    "check_fee_cap",
    "enforce_policy",
    "authenticate",
    "parse_bearer",
    "create_api_credentials",
    "create_private_key",
    "address_from_private_key",
    "save_key_to_env",
]
