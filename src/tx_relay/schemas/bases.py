"""
Base Schema Models for the tx-relay gateway

This module defines the fundamental base classes that the other schema models
inherit from.

Core Classes:
    - CanonicalModel: Pydantic base model shared by every schema
    - RelayStage: States of the request pipeline
    - BaseSignedTransaction: Abstract signed transaction produced for a specific chain

Dependencies:
    - pydantic: For data validation and serialization
"""

from abc import ABC
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CanonicalModel(BaseModel):
    """
    Pydantic base model for gateway schemas.

    Fields may be populated either by name or by alias, so wire names such as
    ``maxFeePerGas`` and Python names such as ``max_fee_per_gas`` are both accepted.
    """

    model_config = ConfigDict(populate_by_name=True)


class RelayStage(str, Enum):
    """
    States of a relayed request.

    A request moves forward through the stages in declaration order. Any
    failure moves it straight to ``RESPONDED``; ``RESPONDED`` is terminal.
    """
    RECEIVED = "received"
    ENVELOPE_PARSED = "envelope_parsed"
    AUTHENTICATED = "authenticated"
    NETWORK_RESOLVED = "network_resolved"
    POLICY_APPROVED = "policy_approved"
    NONCE_ASSIGNED = "nonce_assigned"
    SIGNED = "signed"
    BROADCAST = "broadcast"
    RESPONDED = "responded"


class BaseSignedTransaction(CanonicalModel, ABC):
    """
    Abstract base class for a signed transaction ready for submission.

    Chain-family implementations add the encoded payload; this base carries
    the fields every family shares.

    Attributes:
        chain_id: Network the transaction is bound to
        nonce: Sequence number the transaction was signed with
        tx_hash: Content identifier of the signed transaction
    """

    chain_id: int = Field(..., gt=0, description="Network identifier")
    nonce: int = Field(..., ge=0, description="Sequence number")
    tx_hash: str = Field(..., description="Transaction hash (content identifier)")
