"""
Unspent output resolution from raw address history.
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from muxcore.bitcoin import btc_to_sats
from muxcore.errors import ProviderError
from muxcore.models import UnspentOutput, UnspentRef
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from muxwallet.backends.base import ChainDataGateway


TX_HASH_PATTERN = r"^[0-9a-fA-F]{64}$"


class PrevOut(BaseModel):
    hash: str = Field(..., pattern=TX_HASH_PATTERN)
    n: int = Field(..., ge=0)


class HistoryInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    prev_out: PrevOut | None = None


class HistoryOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    address: str | None = None
    value: int

    @field_validator("value", mode="before")
    @classmethod
    def convert_btc(cls, v: Any) -> int:
        # Provider reports BTC, as a decimal string or number
        if isinstance(v, (str, int, float)) and not isinstance(v, bool):
            return btc_to_sats(str(v) if isinstance(v, int) else v)
        raise ValueError(f"Invalid output value: {v!r}")


class HistoryTransaction(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    hash: str = Field(..., pattern=TX_HASH_PATTERN)
    inputs: list[HistoryInput] = Field(default_factory=list, alias="in")
    outputs: list[HistoryOutput] = Field(default_factory=list, alias="out")


class AddressHistory(BaseModel):
    model_config = ConfigDict(extra="ignore")

    transactions: list[HistoryTransaction] = Field(default_factory=list)

    @field_validator("transactions", mode="before")
    @classmethod
    def flatten_mapping(cls, v: Any) -> Any:
        # webbtc returns transactions keyed by hash
        if isinstance(v, dict):
            return list(v.values())
        return v


def parse_history(data: dict[str, Any]) -> AddressHistory:
    """
    Parse a raw provider history.

    Raises:
        ProviderError: If the data does not have the expected shape
    """
    try:
        return AddressHistory.model_validate(data)
    except ValidationError as e:
        raise ProviderError(f"Unexpected history format: {e.error_count()} error(s)") from e


class UnspentSetResolver:
    """
    Reconstructs the unspent outputs of an address from its raw history.

    Outputs paid to the address are collected first, then every output
    referenced by an input of any returned transaction is removed, whichever
    address spent it.
    """

    def __init__(self, gateway: ChainDataGateway):
        self.gateway = gateway

    async def unspent_for_address(self, address: str) -> list[UnspentOutput]:
        data = await self.gateway.fetch_history(address)
        unspent = self.resolve(address, data)
        logger.debug(f"Found {len(unspent)} unspent output(s) for {address}")
        return unspent

    @staticmethod
    def resolve(address: str, data: dict[str, Any]) -> list[UnspentOutput]:
        """
        Compute the unspent set of ``address`` from raw history ``data``.

        Returns:
            Unspent outputs in order of first appearance

        Raises:
            ProviderError: If the history cannot be parsed
        """
        history = parse_history(data)

        candidates: dict[UnspentRef, int] = {}
        for txn in history.transactions:
            for index, out in enumerate(txn.outputs):
                if out.address == address:
                    ref = UnspentRef(transaction_id=txn.hash, output_index=index)
                    candidates[ref] = out.value

        for ref in UnspentSetResolver.spends(history):
            candidates.pop(ref, None)

        return [
            UnspentOutput(
                transaction_id=ref.transaction_id,
                output_index=ref.output_index,
                amount=amount,
                address=address,
            )
            for ref, amount in candidates.items()
        ]

    @staticmethod
    def spends(history: AddressHistory | dict[str, Any]) -> dict[UnspentRef, str]:
        """
        Map every output referenced by an input in ``history`` to the hash of
        the transaction spending it.
        """
        if isinstance(history, dict):
            history = parse_history(history)

        spent: dict[UnspentRef, str] = {}
        for txn in history.transactions:
            for txin in txn.inputs:
                if txin.prev_out is None:
                    continue
                ref = UnspentRef(transaction_id=txin.prev_out.hash, output_index=txin.prev_out.n)
                spent.setdefault(ref, txn.hash)
        return spent
