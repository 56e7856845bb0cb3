import hmac
import logging
import os
import uuid
from typing import Dict, Mapping, Optional, Union

from eth_account import Account
from pydantic import SecretStr
from web3 import Web3

from ..engine.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

# compared against when the key is unknown so both paths do the same work
_DUMMY_SECRET = "secret" + "0" * 32


def parse_bearer(authorization: Optional[str]) -> Optional[str]:
    """
    Extract the credential from an ``Authorization: Bearer <secret>`` header.

    Args:
        authorization: Raw header value, possibly None.

    Returns:
        The secret, or None if the header is missing or not a Bearer header.
    """
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def authenticate(
    api_key: Optional[str],
    api_secret: Optional[Union[str, SecretStr]],
    api_secrets: Mapping[str, SecretStr],
) -> str:
    """
    Check an API key and secret against the configured table.

    Args:
        api_key: Key taken from the request path.
        api_secret: Secret taken from the Authorization header.
        api_secrets: Configured key -> secret table.

    Returns:
        The authenticated API key.

    Raises:
        AuthenticationError: If either value is missing, the key is unknown,
            or the secret does not match.
    """
    if isinstance(api_secret, SecretStr):
        api_secret = api_secret.get_secret_value()
    if not api_key or not api_secret:
        raise AuthenticationError("API key and secret required")

    expected = api_secrets.get(api_key)
    expected_value = expected.get_secret_value() if expected is not None else _DUMMY_SECRET

    matched = hmac.compare_digest(expected_value.encode(), api_secret.encode())
    if expected is None or not matched:
        logger.warning("Rejected credentials for API key %s", api_key[:12])
        raise AuthenticationError("Invalid API key and/or secret")
    return api_key


def create_api_credentials(count: int = 1) -> Dict[str, str]:
    """
    Generate API key/secret pairs in the ``API_SECRETS`` format.

    Args:
        count: Number of pairs to generate.

    Returns:
        ``{"public<hex>": "secret<hex>", ...}``
    """
    if count < 1:
        raise ValueError("count must be at least 1")
    return {f"public{uuid.uuid4().hex}": f"secret{uuid.uuid4().hex}" for _ in range(count)}


def create_private_key() -> str:
    """Generate a fresh secp256k1 signing key as 0x-prefixed hex."""
    return Web3.to_hex(Account.create().key)


def address_from_private_key(private_key: str) -> str:
    """
    Derive the checksum address of a signing key.

    Raises:
        ValueError: If the key is malformed.
    """
    try:
        account = Account.from_key(private_key)
    except Exception as e:
        raise ValueError("Invalid private key") from e
    return Web3.to_checksum_address(account.address)


def save_key_to_env(key_name: str, key_value: str, env_file: str = ".env"):
    """
    Save or update a key-value pair in a .env file.

    Args:
        key_name: The environment variable name (e.g., "ETH_PRIVATE_KEY").
        key_value: The actual value to save.
        env_file: Path to the .env file. Defaults to ".env".
    """
    lines = []
    found = False
    new_line = f"{key_name}={key_value}\n"

    if os.path.exists(env_file):
        with open(env_file, "r", encoding="utf-8") as f:
            lines = f.readlines()

    for i, line in enumerate(lines):
        if line.startswith(f"{key_name}="):
            lines[i] = new_line
            found = True
            break

    if not found:
        # Ensure the file ends with a newline before appending
        if lines and not lines[-1].endswith("\n"):
            lines[-1] += "\n"
        lines.append(new_line)

    with open(env_file, "w", encoding="utf-8") as f:
        f.writelines(lines)
