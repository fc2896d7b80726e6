"""
Tests for unsigned transaction assembly.
"""

from __future__ import annotations

import pytest
from _muxwallet_test_helpers import (
    CAROL_KEY,
    NETWORK,
    Funding,
    InMemoryGateway,
    address_for,
    history_tx,
    make_funding_tx,
)
from muxcore.bitcoin import address_to_scriptpubkey, hash256, parse_transaction
from muxcore.constants import SEQUENCE_FINAL
from muxcore.errors import FetchFailed
from muxcore.models import TxOutputSpec, UnspentRef

from muxwallet.wallet.transaction import (
    AssembledTransaction,
    IndexOutOfRange,
    InvalidIndex,
    TransactionAssembler,
    TransactionError,
)


class TestBuild:
    @pytest.mark.asyncio
    async def test_inputs_in_caller_order(
        self, assembler: TransactionAssembler, funding: Funding, outputs: list[TxOutputSpec]
    ) -> None:
        refs = list(reversed(funding.refs))

        transaction = await assembler.build(refs, outputs)

        assert [slot.output_index for slot in transaction.inputs] == [1, 0]
        assert all(slot.transaction_id == funding.txid for slot in transaction.inputs)
        assert all(not slot.is_signed for slot in transaction.inputs)
        assert all(slot.sequence == SEQUENCE_FINAL for slot in transaction.inputs)
        assert transaction.unspent_refs() == refs

    @pytest.mark.asyncio
    async def test_connected_outputs(
        self, assembler: TransactionAssembler, funding: Funding, outputs: list[TxOutputSpec]
    ) -> None:
        transaction = await assembler.build(funding.refs, outputs)

        first, second = (slot.connected_output for slot in transaction.inputs)
        assert first is not None and second is not None
        assert first.value == 100_000
        assert first.scriptpubkey == address_to_scriptpubkey(funding.alice)
        assert second.value == 50_000
        assert second.scriptpubkey == address_to_scriptpubkey(funding.bob)
        assert first.spent_by is None

    @pytest.mark.asyncio
    async def test_outputs(
        self, assembler: TransactionAssembler, funding: Funding, outputs: list[TxOutputSpec]
    ) -> None:
        transaction = await assembler.build(funding.refs, outputs)

        assert transaction.output_specs() == outputs
        assert transaction.outputs[0].script_bytes() == address_to_scriptpubkey(funding.bob)

    @pytest.mark.asyncio
    async def test_previous_transaction_fetched_once(
        self,
        assembler: TransactionAssembler,
        gateway: InMemoryGateway,
        funding: Funding,
        outputs: list[TxOutputSpec],
    ) -> None:
        await assembler.build(funding.refs, outputs)
        assert gateway.fetch_count == 1

    @pytest.mark.asyncio
    async def test_index_out_of_range(
        self, assembler: TransactionAssembler, funding: Funding, outputs: list[TxOutputSpec]
    ) -> None:
        refs = [UnspentRef(transaction_id=funding.txid, output_index=2)]
        with pytest.raises(IndexOutOfRange, match="Output index does not exist"):
            await assembler.build(refs, outputs)

    @pytest.mark.asyncio
    async def test_missing_previous_transaction(
        self, assembler: TransactionAssembler, outputs: list[TxOutputSpec]
    ) -> None:
        refs = [UnspentRef(transaction_id="ef" * 32, output_index=0)]
        with pytest.raises(FetchFailed, match="Unable to fetch"):
            await assembler.build(refs, outputs)

    @pytest.mark.asyncio
    async def test_unparseable_previous_transaction(
        self, assembler: TransactionAssembler, gateway: InMemoryGateway, outputs: list[TxOutputSpec]
    ) -> None:
        gateway.add_transaction("ef" * 32, b"\x01\x00")
        refs = [UnspentRef(transaction_id="ef" * 32, output_index=0)]
        with pytest.raises(FetchFailed, match="Unable to parse"):
            await assembler.build(refs, outputs)

    @pytest.mark.asyncio
    async def test_invalid_output_address(
        self, assembler: TransactionAssembler, funding: Funding
    ) -> None:
        with pytest.raises(TransactionError, match="Invalid output address"):
            await assembler.build(funding.refs, [TxOutputSpec(address="nonsense", amount=1)])

    @pytest.mark.asyncio
    async def test_records_existing_spend(
        self,
        assembler: TransactionAssembler,
        gateway: InMemoryGateway,
        funding: Funding,
        outputs: list[TxOutputSpec],
    ) -> None:
        spender = "5a" * 32
        gateway.add_history(
            funding.alice, history_tx(spender, inputs=[(funding.txid, 0)], outputs=[])
        )

        transaction = await assembler.build(funding.refs, outputs)

        alice_slot, bob_slot = transaction.inputs
        assert alice_slot.connected_output is not None
        assert alice_slot.connected_output.spent_by == spender
        assert bob_slot.connected_output is not None
        assert bob_slot.connected_output.spent_by is None

    @pytest.mark.asyncio
    async def test_spend_check_disabled(
        self, gateway: InMemoryGateway, funding: Funding, outputs: list[TxOutputSpec]
    ) -> None:
        gateway.add_history(funding.alice, history_tx("5a" * 32, inputs=[(funding.txid, 0)]))
        assembler = TransactionAssembler(gateway, NETWORK, check_spent=False)

        transaction = await assembler.build(funding.refs, outputs)

        assert transaction.inputs[0].connected_output is not None
        assert transaction.inputs[0].connected_output.spent_by is None

    @pytest.mark.asyncio
    async def test_inputs_from_several_transactions(
        self, assembler: TransactionAssembler, gateway: InMemoryGateway, funding: Funding
    ) -> None:
        carol = address_for(CAROL_KEY)
        txid, raw = make_funding_tx([(carol, 7_000)], nonce=1)
        gateway.add_transaction(txid, raw)
        refs = [funding.refs[0], UnspentRef(transaction_id=txid, output_index=0)]

        transaction = await assembler.build(refs, [TxOutputSpec(address=carol, amount=100_000)])

        connected = [slot.connected_output for slot in transaction.inputs]
        values = [output.value for output in connected if output is not None]
        assert values == [100_000, 7_000]


class TestAssembledTransaction:
    @pytest.mark.asyncio
    async def test_serialize_roundtrip(
        self, assembler: TransactionAssembler, funding: Funding, outputs: list[TxOutputSpec]
    ) -> None:
        transaction = await assembler.build(funding.refs, outputs)

        parsed = parse_transaction(transaction.serialize())

        assert parsed.version == 1
        assert parsed.locktime == 0
        assert [(i.txid, i.vout, i.script_sig) for i in parsed.inputs] == [
            (funding.txid, 0, b""),
            (funding.txid, 1, b""),
        ]
        assert [o.value for o in parsed.outputs] == [49_000, 49_000, 50_000]
        assert parsed.txid == transaction.txid
        assert transaction.to_hex() == transaction.serialize().hex()
        assert transaction.txid == hash256(transaction.serialize())[::-1].hex()

    @pytest.mark.asyncio
    async def test_signature_hash_per_input(
        self, assembler: TransactionAssembler, funding: Funding, outputs: list[TxOutputSpec]
    ) -> None:
        transaction = await assembler.build(funding.refs, outputs)
        script = address_to_scriptpubkey(funding.alice)

        first = transaction.signature_hash(0, script)
        second = transaction.signature_hash(1, script)

        assert len(first) == 32
        assert first != second

    @pytest.mark.asyncio
    async def test_signature_hash_ignores_other_scripts(
        self, assembler: TransactionAssembler, funding: Funding, outputs: list[TxOutputSpec]
    ) -> None:
        transaction = await assembler.build(funding.refs, outputs)
        script = address_to_scriptpubkey(funding.alice)
        before = transaction.signature_hash(0, script)

        transaction.inputs[1].script_sig = b"\x51"

        assert transaction.signature_hash(0, script) == before

    def test_signature_hash_invalid_index(self) -> None:
        with pytest.raises(InvalidIndex):
            AssembledTransaction().signature_hash(0, b"")

    @pytest.mark.asyncio
    async def test_unsupported_sighash_type(
        self, assembler: TransactionAssembler, funding: Funding, outputs: list[TxOutputSpec]
    ) -> None:
        transaction = await assembler.build(funding.refs, outputs)
        with pytest.raises(TransactionError, match="Unsupported sighash"):
            transaction.signature_hash(0, b"", sighash_type=0x03)


class TestClone:
    @pytest.mark.asyncio
    async def test_clone_is_independent_and_unsigned(
        self,
        assembler: TransactionAssembler,
        gateway: InMemoryGateway,
        funding: Funding,
        outputs: list[TxOutputSpec],
    ) -> None:
        transaction = await assembler.build(funding.refs, outputs)
        transaction.inputs[0].script_sig = b"\x51"
        fetches = gateway.fetch_count

        clone = assembler.clone(transaction)

        assert gateway.fetch_count == fetches
        assert clone.unspent_refs() == transaction.unspent_refs()
        assert clone.output_specs() == transaction.output_specs()
        assert not clone.inputs[0].is_signed

        clone.inputs[1].script_sig = b"\x52"
        assert clone.inputs[1].connected_output is not transaction.inputs[1].connected_output
        assert not transaction.inputs[1].is_signed

    @pytest.mark.asyncio
    async def test_clone_keeps_spent_marker(
        self,
        assembler: TransactionAssembler,
        gateway: InMemoryGateway,
        funding: Funding,
        outputs: list[TxOutputSpec],
    ) -> None:
        gateway.add_history(funding.alice, history_tx("5a" * 32, inputs=[(funding.txid, 0)]))
        transaction = await assembler.build(funding.refs, outputs)

        clone = assembler.clone(transaction)

        assert clone.inputs[0].connected_output is not None
        assert clone.inputs[0].connected_output.spent_by == "5a" * 32

    def test_clone_without_connected_output(self, assembler: TransactionAssembler) -> None:
        ref = UnspentRef(transaction_id="ab" * 32, output_index=0)
        source = assembler.assemble([ref], [None], [])
        clone = assembler.clone(source)
        assert clone.inputs[0].connected_output is None
