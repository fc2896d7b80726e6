"""
Unsigned CoinJoin transaction model and its assembly from previous outputs.

An AssembledTransaction is a plain value owned by its caller: an ordered list
of input slots, each connected to the previous output it spends, and an
ordered list of outputs. The only in-place mutation is attaching a verified
signing script to an unsigned slot (see wallet.validation).
"""

from __future__ import annotations

import struct
from collections.abc import Sequence
from dataclasses import dataclass, field

from loguru import logger
from muxcore.bitcoin import (
    RawTransaction,
    RawTxInput,
    RawTxOutput,
    TxOutput,
    address_to_scriptpubkey,
    hash256,
    parse_transaction,
    scriptpubkey_to_address,
)
from muxcore.constants import SEQUENCE_FINAL, SIGHASH_ALL, TX_LOCKTIME, TX_VERSION
from muxcore.errors import CoinmuxError, FetchFailed, ProviderError
from muxcore.models import NetworkType, TxOutputSpec, UnspentRef

from muxwallet.backends.base import ChainDataGateway
from muxwallet.wallet.unspent import UnspentSetResolver

# =============================================================================
# Errors
# =============================================================================


class TransactionError(CoinmuxError):
    pass


class IndexOutOfRange(TransactionError):
    """A referenced previous output index does not exist."""

    pass


class InvalidIndex(TransactionError):
    """An input index outside the transaction's inputs."""

    pass


class InputStateError(TransactionError):
    """Protocol-state violation on one input slot."""

    def __init__(self, message: str, input_index: int):
        super().__init__(message)
        self.input_index = input_index


class NoConnectedOutput(InputStateError):
    pass


class AlreadySigned(InputStateError):
    pass


class AlreadySpent(InputStateError):
    pass


class TransactionSigningError(TransactionError):
    """A signing script failed verification and was not attached."""

    pass


# =============================================================================
# Models
# =============================================================================


@dataclass
class ConnectedOutput:
    """Previous output spent by an input slot."""

    value: int
    scriptpubkey: bytes
    # Hash of a known transaction already spending this output
    spent_by: str | None = None


@dataclass
class TransactionInputSlot:
    transaction_id: str
    output_index: int
    connected_output: ConnectedOutput | None = None
    script_sig: bytes = b""
    sequence: int = SEQUENCE_FINAL

    @property
    def is_signed(self) -> bool:
        return len(self.script_sig) != 0

    @property
    def ref(self) -> UnspentRef:
        return UnspentRef(transaction_id=self.transaction_id, output_index=self.output_index)

    def __str__(self) -> str:
        return f"{self.transaction_id}:{self.output_index}"


@dataclass
class AssembledTransaction:
    inputs: list[TransactionInputSlot] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)
    version: int = TX_VERSION
    locktime: int = TX_LOCKTIME

    def serialize(self, script_sigs: Sequence[bytes] | None = None) -> bytes:
        """
        Serialize to raw transaction bytes.

        Args:
            script_sigs: Optional per-input scripts replacing the slots' own
        """
        if script_sigs is None:
            script_sigs = [slot.script_sig for slot in self.inputs]
        raw = RawTransaction(
            inputs=[
                RawTxInput(slot.transaction_id, slot.output_index, bytes(script_sig), slot.sequence)
                for slot, script_sig in zip(self.inputs, script_sigs, strict=True)
            ],
            outputs=[RawTxOutput(out.value, out.script_bytes()) for out in self.outputs],
            version=self.version,
            locktime=self.locktime,
        )
        return raw.serialize()

    def to_hex(self) -> str:
        return self.serialize().hex()

    @property
    def txid(self) -> str:
        return hash256(self.serialize())[::-1].hex()

    @property
    def is_fully_signed(self) -> bool:
        return all(slot.is_signed for slot in self.inputs)

    def signature_hash(
        self,
        input_index: int,
        script_code: bytes,
        sighash_type: int = SIGHASH_ALL,
    ) -> bytes:
        """
        Legacy (pre-segwit) signature hash of one input.

        Every input script is emptied except the signed one, which carries
        ``script_code``; the serialization is followed by the 4-byte sighash
        type and double-SHA256 hashed.
        """
        if not 0 <= input_index < len(self.inputs):
            raise InvalidIndex(f"Invalid input index: {input_index}")
        if sighash_type != SIGHASH_ALL:
            raise TransactionError(f"Unsupported sighash type: {sighash_type:#x}")

        scripts = [b""] * len(self.inputs)
        scripts[input_index] = script_code
        preimage = self.serialize(scripts) + struct.pack("<I", sighash_type)
        return hash256(preimage)

    def unspent_refs(self) -> list[UnspentRef]:
        return [slot.ref for slot in self.inputs]

    def output_specs(self) -> list[TxOutputSpec]:
        return [TxOutputSpec(address=out.address, amount=out.value) for out in self.outputs]


# =============================================================================
# Assembly
# =============================================================================


class TransactionAssembler:
    """
    Builds unsigned transactions from previous output references and
    destinations.
    """

    def __init__(
        self,
        gateway: ChainDataGateway,
        network: NetworkType = NetworkType.TESTNET,
        check_spent: bool = True,
    ):
        self.gateway = gateway
        self.network = network
        self.check_spent = check_spent

    async def build(
        self,
        unspent_inputs: Sequence[UnspentRef],
        outputs: Sequence[TxOutputSpec],
    ) -> AssembledTransaction:
        """
        Assemble an unsigned transaction.

        Inputs are appended exactly in the given order, each connected to the
        referenced output of its fetched previous transaction.

        Raises:
            FetchFailed: A previous transaction cannot be retrieved or parsed
            IndexOutOfRange: A referenced output index does not exist
        """
        connected: list[ConnectedOutput] = []
        fetched: dict[str, list[RawTxOutput]] = {}
        for ref in unspent_inputs:
            if ref.transaction_id not in fetched:
                fetched[ref.transaction_id] = await self._fetch_outputs(ref.transaction_id)
            prev_outputs = fetched[ref.transaction_id]
            if ref.output_index < 0 or ref.output_index >= len(prev_outputs):
                raise IndexOutOfRange(f"Output index does not exist: {ref}")
            prev_output = prev_outputs[ref.output_index]
            connected.append(
                ConnectedOutput(value=prev_output.value, scriptpubkey=prev_output.scriptpubkey)
            )

        if self.check_spent:
            await self._mark_spent(unspent_inputs, connected)

        transaction = self.assemble(unspent_inputs, connected, outputs)
        logger.info(
            f"Built unsigned transaction with {len(transaction.inputs)} input(s) "
            f"and {len(transaction.outputs)} output(s)"
        )
        return transaction

    def assemble(
        self,
        unspent_inputs: Sequence[UnspentRef],
        connected_outputs: Sequence[ConnectedOutput | None],
        outputs: Sequence[TxOutputSpec],
    ) -> AssembledTransaction:
        """Assemble from already connected previous outputs, without I/O."""
        transaction = AssembledTransaction()
        for ref, connected in zip(unspent_inputs, connected_outputs, strict=True):
            transaction.inputs.append(
                TransactionInputSlot(
                    transaction_id=ref.transaction_id,
                    output_index=ref.output_index,
                    connected_output=connected,
                )
            )
        for spec in outputs:
            try:
                scriptpubkey = address_to_scriptpubkey(spec.address)
            except ValueError as e:
                raise TransactionError(f"Invalid output address {spec.address}: {e}") from e
            transaction.outputs.append(
                TxOutput(address=spec.address, value=spec.amount, scriptpubkey=scriptpubkey)
            )
        return transaction

    def clone(self, source: AssembledTransaction) -> AssembledTransaction:
        """
        Rebuild an independent, unsigned copy of ``source``.

        Connected outputs are copied, so nothing done to the clone is visible
        through the original.
        """
        connected = [
            None
            if slot.connected_output is None
            else ConnectedOutput(
                value=slot.connected_output.value,
                scriptpubkey=bytes(slot.connected_output.scriptpubkey),
                spent_by=slot.connected_output.spent_by,
            )
            for slot in source.inputs
        ]
        clone = self.assemble(source.unspent_refs(), connected, source.output_specs())
        clone.version = source.version
        clone.locktime = source.locktime
        for clone_slot, slot in zip(clone.inputs, source.inputs, strict=True):
            clone_slot.sequence = slot.sequence
        return clone

    async def _fetch_outputs(self, transaction_id: str) -> list[RawTxOutput]:
        try:
            raw = await self.gateway.fetch_raw_transaction(transaction_id)
        except ProviderError as e:
            raise FetchFailed(f"Unable to fetch transaction {transaction_id}: {e}") from e

        try:
            parsed = parse_transaction(raw)
        except ValueError as e:
            raise FetchFailed(f"Unable to parse transaction {transaction_id}: {e}") from e
        return parsed.outputs

    async def _mark_spent(
        self, unspent_inputs: Sequence[UnspentRef], connected: Sequence[ConnectedOutput]
    ) -> None:
        """Record outputs already consumed by a transaction in their address history."""
        histories: dict[str, dict[UnspentRef, str]] = {}
        for ref, connected_output in zip(unspent_inputs, connected, strict=True):
            try:
                address = scriptpubkey_to_address(connected_output.scriptpubkey, self.network)
            except ValueError:
                logger.debug(f"No address for locking script of {ref}, skipping spend check")
                continue

            if address not in histories:
                data = await self.gateway.fetch_history(address)
                histories[address] = UnspentSetResolver.spends(data)

            key = UnspentRef(transaction_id=ref.transaction_id, output_index=ref.output_index)
            spent_by = histories[address].get(key)
            if spent_by is not None:
                logger.warning(f"Output {ref} already spent by {spent_by}")
                connected_output.spent_by = spent_by
