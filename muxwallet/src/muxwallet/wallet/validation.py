"""
Independent verification of per-input signing scripts.

Every participant checks every signing script it receives against the
locking script of the output it spends before trusting the joint
transaction.
"""

from __future__ import annotations

from enum import Enum

from loguru import logger
from muxcore.constants import SIGHASH_ALL
from muxcore.crypto import verify_digest
from muxcore.errors import CoinmuxError, InternalError
from muxcore.script import ScriptError, parse_p2pkh_script_sig

from muxwallet.wallet.transaction import (
    AlreadySigned,
    AlreadySpent,
    AssembledTransaction,
    InvalidIndex,
    NoConnectedOutput,
    TransactionAssembler,
    TransactionInputSlot,
    TransactionSigningError,
)


class ScriptVerification(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    ALREADY_SPENT = "already_spent"


class InputValidator:
    """
    Gatekeeper for attaching signing scripts to transaction inputs.

    An input may receive a signing script only while it is in range,
    connected to a previous output, unsigned, and not spent by a transaction
    the provider already knows about.
    """

    def __init__(self, assembler: TransactionAssembler):
        self.assembler = assembler

    def unspent_input(
        self, transaction: AssembledTransaction, input_index: int
    ) -> TransactionInputSlot:
        """
        Return the input slot at ``input_index`` if it may be signed.

        Raises:
            InvalidIndex: Index outside the transaction's inputs
            NoConnectedOutput: The slot has no previous output
            AlreadySigned: The slot already carries a signing script
            AlreadySpent: The previous output is spent, or the current
                script already satisfies it
        """
        if not 0 <= input_index < len(transaction.inputs):
            raise InvalidIndex(f"Invalid input index: {input_index}")

        slot = transaction.inputs[input_index]
        if slot.connected_output is None:
            raise NoConnectedOutput("No connected output", input_index)
        if slot.is_signed:
            raise AlreadySigned("Signing already signed transaction", input_index)
        if self.verify_input(transaction, input_index) is not ScriptVerification.INVALID:
            raise AlreadySpent("Input already spent", input_index)
        return slot

    def check_script_sig(
        self, transaction: AssembledTransaction, input_index: int, script_sig: bytes
    ) -> None:
        """
        Check ``script_sig`` against the locking script of the input's
        previous output.

        Raises:
            ScriptError: If the script does not unlock the output
        """
        slot = transaction.inputs[input_index]
        if slot.connected_output is None:
            raise ScriptError("No connected output to verify against")

        scriptpubkey = slot.connected_output.scriptpubkey
        signature, pubkey = parse_p2pkh_script_sig(script_sig, scriptpubkey)
        if signature[-1] != SIGHASH_ALL:
            raise ScriptError(f"Unsupported sighash type: {signature[-1]:#x}")

        digest = transaction.signature_hash(input_index, scriptpubkey, SIGHASH_ALL)
        try:
            valid = verify_digest(pubkey, signature[:-1], digest)
        except ValueError as e:
            raise ScriptError(f"Malformed signature or public key: {e}") from e
        if not valid:
            raise ScriptError("Signature does not match transaction")

    def verify_input(
        self,
        transaction: AssembledTransaction,
        input_index: int,
        script_sig: bytes | None = None,
    ) -> ScriptVerification:
        """
        Three-valued probe of one input.

        Uses the slot's own signing script unless ``script_sig`` is given.
        """
        try:
            slot = transaction.inputs[input_index]
            connected = slot.connected_output
            if connected is not None and connected.spent_by is not None:
                result = ScriptVerification.ALREADY_SPENT
            else:
                script = slot.script_sig if script_sig is None else script_sig
                try:
                    self.check_script_sig(transaction, input_index, script)
                    result = ScriptVerification.VALID
                except ScriptError as e:
                    logger.trace(f"Input {input_index} script rejected: {e}")
                    result = ScriptVerification.INVALID
        except CoinmuxError:
            raise
        except Exception as e:
            raise InternalError(f"Unable to verify input {input_index}: {e}") from e

        logger.debug(f"Input {input_index} verification: {result.value}")
        return result

    def attach_script(
        self, transaction: AssembledTransaction, input_index: int, script_sig: bytes
    ) -> None:
        """
        Store ``script_sig`` on the input after it passes the gate and
        verifies. The slot is left untouched on any failure.
        """
        slot = self.unspent_input(transaction, input_index)
        try:
            self.check_script_sig(transaction, input_index, script_sig)
        except ScriptError as e:
            raise TransactionSigningError(f"Unable to verify signature: {e}") from e
        slot.script_sig = bytes(script_sig)
        logger.debug(f"Attached signing script to input {input_index}")

    def script_sig_valid(
        self, transaction: AssembledTransaction, input_index: int, script_sig: bytes
    ) -> bool:
        """Whether ``script_sig`` could be attached. Works on a clone."""
        clone = self.assembler.clone(transaction)
        try:
            self.attach_script(clone, input_index, script_sig)
        except (InvalidIndex, NoConnectedOutput, AlreadySigned, AlreadySpent) as e:
            logger.debug(f"Input {input_index} cannot take a script: {e}")
            return False
        except TransactionSigningError as e:
            logger.debug(str(e))
            return False
        return True
