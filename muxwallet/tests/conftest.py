"""
Pytest configuration and fixtures for muxwallet tests.
"""

from __future__ import annotations

import pytest
from _muxwallet_test_helpers import (
    ALICE_KEY,
    BOB_KEY,
    NETWORK,
    Funding,
    InMemoryGateway,
    address_for,
    make_funding_tx,
)
from muxcore.models import TxOutputSpec

from muxwallet.network import BitcoinNetwork
from muxwallet.wallet.signing import InputSigner
from muxwallet.wallet.transaction import TransactionAssembler
from muxwallet.wallet.validation import InputValidator


@pytest.fixture
def gateway() -> InMemoryGateway:
    return InMemoryGateway()


@pytest.fixture
def funding(gateway: InMemoryGateway) -> Funding:
    alice = address_for(ALICE_KEY)
    bob = address_for(BOB_KEY)
    txid, raw = make_funding_tx([(alice, 100_000), (bob, 50_000)])
    gateway.add_transaction(txid, raw)
    return Funding(txid=txid, raw=raw, alice=alice, bob=bob)


@pytest.fixture
def outputs(funding: Funding) -> list[TxOutputSpec]:
    """CoinJoin outputs: equal amounts back to fresh addresses of each party."""
    return [
        TxOutputSpec(address=funding.bob, amount=49_000),
        TxOutputSpec(address=funding.alice, amount=49_000),
        TxOutputSpec(address=funding.alice, amount=50_000),
    ]


@pytest.fixture
def assembler(gateway: InMemoryGateway) -> TransactionAssembler:
    return TransactionAssembler(gateway, NETWORK)


@pytest.fixture
def validator(assembler: TransactionAssembler) -> InputValidator:
    return InputValidator(assembler)


@pytest.fixture
def signer(validator: InputValidator) -> InputSigner:
    return InputSigner(validator)


@pytest.fixture
def network(gateway: InMemoryGateway) -> BitcoinNetwork:
    return BitcoinNetwork(gateway, NETWORK)
