"""
Relay policy checks.

Stateless predicates applied to every ``eth_sendTransaction`` request after
its parameters are validated. Order matters: the whitelist is checked before
the fee ceiling, so a request failing both reports the whitelist violation.
"""

import logging
from typing import AbstractSet

from ..adapters.evm.schemas import EVMTransactionRequest
from ..config import PolicyConfig
from ..engine.exceptions import PolicyViolationError

logger = logging.getLogger(__name__)


def check_whitelist(to: str, whitelist: AbstractSet[str]) -> None:
    """
    Check a destination against the whitelist.

    Args:
        to: Destination address (any case).
        whitelist: Allowed addresses (any case); empty allows everything.

    Raises:
        PolicyViolationError: If the whitelist is non-empty and ``to`` is not in it.
    """
    if not whitelist:
        return
    if to.lower() not in {address.lower() for address in whitelist}:
        logger.warning("Rejected destination %s: not whitelisted", to)
        raise PolicyViolationError("Address not whitelisted")


def check_fee_cap(max_fee_per_gas: int, max_base_fee: int) -> None:
    """
    Check ``maxFeePerGas`` against the fee ceiling.

    Args:
        max_fee_per_gas: Requested fee cap in wei.
        max_base_fee: Configured ceiling in wei; zero disables the check.

    Raises:
        PolicyViolationError: If the ceiling is set and exceeded.
    """
    if max_base_fee == 0:
        return
    if max_fee_per_gas > max_base_fee:
        logger.warning("Rejected maxFeePerGas %s above ceiling %s", max_fee_per_gas, max_base_fee)
        raise PolicyViolationError("Max fee per gas too high")


def enforce_policy(request: EVMTransactionRequest, policy: PolicyConfig) -> None:
    """Run every policy check in order. Raises on the first violation."""
    check_whitelist(request.to, policy.whitelisted_addresses)
    check_fee_cap(request.max_fee_per_gas, policy.max_base_fee)
