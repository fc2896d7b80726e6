"""
Core data models using Pydantic for validation and serialization.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator


class NetworkType(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"


class UnspentRef(BaseModel):
    """Reference to one previously unspent transaction output."""

    transaction_id: str = Field(..., min_length=64, max_length=64)
    output_index: int = Field(..., ge=0)

    model_config = {"frozen": True}

    @field_validator("transaction_id")
    @classmethod
    def validate_transaction_id(cls, v: str) -> str:
        try:
            bytes.fromhex(v)
        except ValueError as e:
            raise ValueError("transaction_id must be hex") from e
        return v.lower()

    @property
    def ref(self) -> UnspentRef:
        return UnspentRef(transaction_id=self.transaction_id, output_index=self.output_index)

    def __str__(self) -> str:
        return f"{self.transaction_id}:{self.output_index}"


class UnspentOutput(UnspentRef):
    """Unspent output owned by ``address`` worth ``amount`` satoshis."""

    amount: int = Field(..., ge=0)
    address: str


class TxOutputSpec(BaseModel):
    """Requested destination of a new transaction."""

    address: str = Field(..., min_length=1)
    amount: int = Field(..., ge=0)


class CoinJoinInput(BaseModel):
    """
    One input declared for a CoinJoin round.

    ``message_public_key`` is the hex NaCl public key the owner of the input
    receives encrypted round material under.
    """

    address: str = Field(..., min_length=1)
    amount: int = Field(default=0, ge=0)
    message_public_key: str = Field(..., min_length=64, max_length=64)


class CoinJoin(BaseModel):
    """
    Agreed shape of a joint transaction.

    ``participants`` is authoritative and independent of ``len(inputs)``:
    one participant may contribute several inputs.
    """

    participants: int = Field(..., ge=0)
    inputs: list[CoinJoinInput] = Field(default_factory=list)
    outputs: list[TxOutputSpec] = Field(default_factory=list)

    @property
    def input_addresses(self) -> list[str]:
        seen: list[str] = []
        for coin_join_input in self.inputs:
            if coin_join_input.address not in seen:
                seen.append(coin_join_input.address)
        return seen

    def get_input(self, address: str) -> CoinJoinInput | None:
        for coin_join_input in self.inputs:
            if coin_join_input.address == address:
                return coin_join_input
        return None


class ParticipantInput(BaseModel):
    """Input offered by a participant after proving ownership of a key."""

    address: str
    amount: int = Field(..., ge=0)
    public_key: str
    unspent: list[UnspentOutput] = Field(default_factory=list)
