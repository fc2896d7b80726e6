"""
Signing of CoinJoin transaction inputs.

Legacy P2PKH inputs are signed over the SIGHASH_ALL digest; a signing script
is only ever attached after it verifies.
"""

from __future__ import annotations

from loguru import logger
from muxcore.bitcoin import hash160
from muxcore.constants import SIGHASH_ALL
from muxcore.crypto import KeyPair
from muxcore.errors import CoinmuxError
from muxcore.script import ScriptError, build_p2pkh_script_sig, p2pkh_pubkey_hash

from muxwallet.wallet.transaction import AssembledTransaction, TransactionSigningError
from muxwallet.wallet.validation import InputValidator


class InputSigner:
    def __init__(self, validator: InputValidator):
        self.validator = validator

    def build_script_sig(
        self, transaction: AssembledTransaction, input_index: int, private_key: str
    ) -> bytes:
        """
        Produce a signing script for one input without attaching it.

        Args:
            transaction: Transaction being signed
            input_index: Index of the input to sign
            private_key: Hex or WIF private key owning the previous output

        Returns:
            P2PKH signing script: <signature+hashtype> <pubkey>

        Raises:
            InputStateError: If the input may not be signed
            CryptoError: If the private key is invalid
            TransactionSigningError: If the key does not own the output
        """
        slot = self.validator.unspent_input(transaction, input_index)
        assert slot.connected_output is not None
        keypair = KeyPair.from_string(private_key)

        scriptpubkey = slot.connected_output.scriptpubkey
        try:
            pubkey_hash = p2pkh_pubkey_hash(scriptpubkey)
        except ScriptError as e:
            raise TransactionSigningError(f"Unable to sign input {input_index}: {e}") from e

        pubkey = next(
            (pk for pk in keypair.candidate_public_keys() if hash160(pk) == pubkey_hash),
            None,
        )
        if pubkey is None:
            raise TransactionSigningError(
                f"Private key does not own the output spent by input {input_index}"
            )

        digest = transaction.signature_hash(input_index, scriptpubkey, SIGHASH_ALL)
        signature = keypair.sign_digest(digest) + bytes([SIGHASH_ALL])
        return build_p2pkh_script_sig(signature, pubkey)

    def sign_transaction_input(
        self, transaction: AssembledTransaction, input_index: int, script_sig: bytes
    ) -> None:
        """Attach ``script_sig`` to the input once it verifies."""
        self.validator.attach_script(transaction, input_index, script_sig)
        logger.info(f"Signed input {input_index} of {transaction.txid}")

    def transaction_input_unspent(
        self, transaction: AssembledTransaction, input_index: int
    ) -> bool:
        try:
            self.validator.unspent_input(transaction, input_index)
        except CoinmuxError as e:
            logger.debug(f"Input {input_index} not signable: {e}")
            return False
        return True

    def script_sig_valid(
        self, transaction: AssembledTransaction, input_index: int, script_sig: bytes
    ) -> bool:
        return self.validator.script_sig_valid(transaction, input_index, script_sig)
