"""
Bitcoin network service for CoinJoin participants.

BitcoinNetwork wires one chain data gateway into the resolver, assembler,
validator and signer. Network-facing operations are coroutines; drive them
with muxcore.tasks.run_blocking() or hand them to submit() with a callback.

Usage:
    network = BitcoinNetwork(WebBtcGateway(), NetworkType.TESTNET)
    participant = run_blocking(network.build_input(private_key))
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine, Sequence
from typing import Any

from loguru import logger
from muxcore.crypto import KeyPair
from muxcore.errors import ProviderError
from muxcore.models import NetworkType, ParticipantInput, TxOutputSpec, UnspentOutput, UnspentRef
from muxcore.settings import CoinmuxSettings
from muxcore.tasks import Event, run_with_callback

from muxwallet.backends.base import ChainDataGateway
from muxwallet.backends.webbtc import WebBtcGateway
from muxwallet.wallet.signing import InputSigner
from muxwallet.wallet.transaction import AssembledTransaction, TransactionAssembler
from muxwallet.wallet.unspent import UnspentSetResolver
from muxwallet.wallet.validation import InputValidator


class BitcoinNetwork:
    def __init__(
        self,
        gateway: ChainDataGateway,
        network: NetworkType = NetworkType.TESTNET,
        check_spent: bool = True,
    ):
        self.gateway = gateway
        self.network = network
        self.resolver = UnspentSetResolver(gateway)
        self.assembler = TransactionAssembler(gateway, network, check_spent=check_spent)
        self.validator = InputValidator(self.assembler)
        self.signer = InputSigner(self.validator)

    @classmethod
    def from_settings(cls, settings: CoinmuxSettings) -> BitcoinNetwork:
        gateway = WebBtcGateway(
            base_url=settings.get_provider_url(),
            timeout=settings.provider.timeout,
        )
        return cls(gateway, settings.network)

    async def unspent_inputs_for_address(self, address: str) -> list[UnspentOutput]:
        return await self.resolver.unspent_for_address(address)

    async def build_unsigned_transaction(
        self,
        unspent_inputs: Sequence[UnspentRef],
        outputs: Sequence[TxOutputSpec],
    ) -> AssembledTransaction:
        return await self.assembler.build(unspent_inputs, outputs)

    def build_transaction_input_script_sig(
        self, transaction: AssembledTransaction, input_index: int, private_key: str
    ) -> bytes:
        return self.signer.build_script_sig(transaction, input_index, private_key)

    def sign_transaction_input(
        self, transaction: AssembledTransaction, input_index: int, script_sig: bytes
    ) -> None:
        self.signer.sign_transaction_input(transaction, input_index, script_sig)

    def transaction_input_unspent(
        self, transaction: AssembledTransaction, input_index: int
    ) -> bool:
        return self.signer.transaction_input_unspent(transaction, input_index)

    def script_sig_valid(
        self, transaction: AssembledTransaction, input_index: int, script_sig: bytes
    ) -> bool:
        return self.signer.script_sig_valid(transaction, input_index, script_sig)

    async def post_transaction(self, transaction: AssembledTransaction | bytes) -> str:
        """
        Relay a signed transaction.

        Returns:
            Hash reported by the provider

        Raises:
            ProviderError: If the provider rejects the transaction
        """
        raw = transaction if isinstance(transaction, bytes) else transaction.serialize()
        result = await self.gateway.relay(raw)
        if not result.ok:
            message = result.error or "Unknown error"
            if result.detail:
                message = f"{message}: {result.detail}"
            raise ProviderError(message)
        assert result.hash is not None
        return result.hash

    async def build_input(self, private_key: str) -> ParticipantInput:
        """
        Derive the participant input owned by ``private_key``.

        Raises:
            CryptoError: If the private key is invalid
            ProviderError: If the unspent outputs cannot be resolved
        """
        keypair = KeyPair.from_string(private_key)
        address = keypair.p2pkh_address(self.network)
        unspent = await self.unspent_inputs_for_address(address)
        amount = sum(output.amount for output in unspent)
        logger.info(f"Participant input {address}: {len(unspent)} output(s), {amount} sats")
        return ParticipantInput(
            address=address,
            amount=amount,
            public_key=keypair.public_key_hex(),
            unspent=unspent,
        )

    def submit(
        self,
        coro: Coroutine[Any, Any, Any],
        callback: Callable[[Event], None],
        name: str | None = None,
    ) -> asyncio.Task[None]:
        """Start ``coro`` and deliver its single completion Event to ``callback``."""
        return run_with_callback(coro, callback, name=name)

    async def close(self) -> None:
        await self.gateway.close()
