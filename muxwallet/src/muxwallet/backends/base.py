"""
Base chain data gateway interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class RelayResult:
    """Outcome of relaying a signed transaction: a hash, or an error."""

    hash: str | None = None
    error: str | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.hash is not None


class ChainDataGateway(ABC):
    """
    Abstract chain data provider.

    Pure I/O boundary: implementations fetch raw data and never interpret it.
    Retry and failover policy belong to implementations, not to callers.
    """

    @abstractmethod
    async def fetch_history(self, address: str) -> dict[str, Any]:
        """
        Get the raw transaction history of an address.

        Shape: {"transactions": [{"hash", "in": [{"prev_out": {"hash", "n"}}],
        "out": [{"address", "value"}]}]}; "transactions" may also be a mapping
        keyed by hash.
        """

    @abstractmethod
    async def fetch_raw_transaction(self, transaction_hash: str) -> bytes:
        """Get the serialized bytes of a transaction"""

    @abstractmethod
    async def relay(self, raw_transaction: bytes) -> RelayResult:
        """Relay a signed transaction to the network"""

    async def close(self) -> None:
        """Release network resources"""
