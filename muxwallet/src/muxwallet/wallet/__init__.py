"""
Transaction assembly, validation and signing for CoinJoin rounds.
"""

from muxwallet.wallet.signing import InputSigner
from muxwallet.wallet.transaction import AssembledTransaction, TransactionAssembler
from muxwallet.wallet.unspent import UnspentSetResolver
from muxwallet.wallet.validation import InputValidator, ScriptVerification

__all__ = [
    "AssembledTransaction",
    "InputSigner",
    "InputValidator",
    "ScriptVerification",
    "TransactionAssembler",
    "UnspentSetResolver",
]
