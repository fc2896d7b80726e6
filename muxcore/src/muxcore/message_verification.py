"""
Message verification for a CoinJoin round.

A MessageVerification carries a random message identifier encrypted with a
shared secret key, and that secret key sealed once per participant under the
message public key the participant publishes on its inputs. The entry is
keyed by the participant's first input address, so the map holds one entry
per participant. A participant proves it can be trusted with the round
secret by being able to open its entry and, through it, the message
identifier.

Wire format (JSON):

    {"encrypted_message_identifier": "<base64>",
     "encrypted_secret_keys": {"<address>": "<base64>", ...}}
"""

from __future__ import annotations

import json
import secrets
from collections import defaultdict
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError

from muxcore.constants import SECRET_KEY_BYTES
from muxcore.encryption import (
    MessageKeyring,
    NaclError,
    decode_secret_decrypt,
    decode_unseal,
    generate_secret_key,
    init_pubkey,
    seal_encode,
    secret_encrypt_encode,
)
from muxcore.errors import CoinmuxError
from muxcore.models import CoinJoin

MESSAGE_IDENTIFIER_BYTES = 16

ERROR_CANNOT_BE_DECRYPTED = "cannot be decrypted"
ERROR_ADDRESS_NOT_AN_INPUT = "contains address not an input"
ERROR_PARTICIPANT_COUNT = "does not match number of participants"


class MessageError(CoinmuxError):
    pass


class SecretKeyNotFound(MessageError):
    """No usable entry for the requested address."""

    pass


class DecryptionFailed(MessageError):
    """An entry exists but is malformed or decrypts to an invalid key."""

    pass


class MessageFormatError(MessageError):
    """Transport payload is not a valid message verification."""

    pass


class MessageVerificationPayload(BaseModel):
    """The serialized part of a MessageVerification."""

    model_config = ConfigDict(extra="forbid")

    encrypted_message_identifier: str
    encrypted_secret_keys: dict[str, str] = Field(default_factory=dict)


class MessageVerification(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    coin_join: CoinJoin
    encrypted_message_identifier: str
    encrypted_secret_keys: dict[str, str] = Field(default_factory=dict)
    keyring: MessageKeyring = Field(default_factory=MessageKeyring, exclude=True)

    # Only known in memory to the instance that built the message
    message_identifier: bytes | None = Field(default=None, exclude=True)
    secret_key: bytes | None = Field(default=None, exclude=True)

    _errors: dict[str, list[str]] = PrivateAttr(default_factory=lambda: defaultdict(list))
    # Entries as sealed by build(), empty for received messages
    _built_entries: dict[str, str] = PrivateAttr(default_factory=dict)

    @classmethod
    def build(
        cls, coin_join: CoinJoin, keyring: MessageKeyring | None = None
    ) -> MessageVerification:
        """
        Build a fresh message for ``coin_join``.

        A random identifier is encrypted with a new secret key, and the secret
        key is sealed once for each distinct message public key, keyed by the
        first input address that declares it.

        Raises:
            NaclError: If an input carries an invalid message public key
        """
        message_identifier = secrets.token_bytes(MESSAGE_IDENTIFIER_BYTES)
        secret_key = generate_secret_key()

        encrypted_secret_keys: dict[str, str] = {}
        sealed_keys: set[str] = set()
        for coin_join_input in coin_join.inputs:
            public_key = coin_join_input.message_public_key.lower()
            if public_key in sealed_keys:
                continue
            sealed_keys.add(public_key)
            encrypted_secret_keys[coin_join_input.address] = seal_encode(
                secret_key, init_pubkey(public_key)
            )

        logger.debug(
            f"Built message verification for {len(encrypted_secret_keys)} participant(s), "
            f"{len(coin_join.input_addresses)} address(es)"
        )

        message = cls(
            coin_join=coin_join,
            encrypted_message_identifier=secret_encrypt_encode(message_identifier, secret_key),
            encrypted_secret_keys=encrypted_secret_keys,
            keyring=keyring if keyring is not None else MessageKeyring(),
            message_identifier=message_identifier,
            secret_key=secret_key,
        )
        message._built_entries = dict(encrypted_secret_keys)
        return message

    @classmethod
    def from_json(
        cls,
        payload: str | bytes | dict[str, Any],
        keyring: MessageKeyring,
        coin_join: CoinJoin,
    ) -> MessageVerification:
        """
        Reconstruct a message received from the transport.

        Raises:
            MessageFormatError: If the payload is not valid JSON of the
                expected shape
        """
        try:
            if isinstance(payload, dict):
                parsed = MessageVerificationPayload.model_validate(payload)
            else:
                parsed = MessageVerificationPayload.model_validate_json(payload)
        except ValidationError as e:
            raise MessageFormatError(f"Invalid message verification payload: {e}") from e

        return cls(
            coin_join=coin_join,
            encrypted_message_identifier=parsed.encrypted_message_identifier,
            encrypted_secret_keys=dict(parsed.encrypted_secret_keys),
            keyring=keyring,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "encrypted_message_identifier": self.encrypted_message_identifier,
            "encrypted_secret_keys": dict(self.encrypted_secret_keys),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_payload())

    # -------------------------------------------------------------------------
    # Secret key lookup
    # -------------------------------------------------------------------------

    def _entry_address(self, address: str) -> str | None:
        """Map key holding the share of ``address``'s participant, if any."""
        if address in self.encrypted_secret_keys:
            return address
        public_keys = {
            i.message_public_key.lower() for i in self.coin_join.inputs if i.address == address
        }
        for coin_join_input in self.coin_join.inputs:
            if (
                coin_join_input.address in self.encrypted_secret_keys
                and coin_join_input.message_public_key.lower() in public_keys
            ):
                return coin_join_input.address
        return None

    def get_secret_key_for_address(self, address: str) -> bytes:
        """
        Open the secret key sealed for ``address``'s participant.

        The share may be keyed by another input address carrying the same
        message public key. The instance that built the message answers from
        memory for entries it sealed itself.

        Raises:
            SecretKeyNotFound: No entry for the address or its participant
            DecryptionFailed: The entry is malformed, we hold no key that can
                open it, or it does not open to a valid secret key
        """
        entry_address = self._entry_address(address)
        if entry_address is None:
            raise SecretKeyNotFound(f"not found for address {address}")
        encrypted = self.encrypted_secret_keys[entry_address]

        keypair = self.keyring.get(address)
        if keypair is None:
            keypair = self.keyring.get(entry_address)
        if keypair is None:
            if (
                self.secret_key is not None
                and self._built_entries.get(entry_address) == encrypted
            ):
                return self.secret_key
            logger.debug(f"No message key held for address {address}")
            raise DecryptionFailed(ERROR_CANNOT_BE_DECRYPTED)

        try:
            secret_key = decode_unseal(encrypted, keypair)
        except NaclError as e:
            logger.debug(f"Secret key for {address} cannot be decrypted: {e}")
            raise DecryptionFailed(ERROR_CANNOT_BE_DECRYPTED) from e

        if len(secret_key) != SECRET_KEY_BYTES:
            logger.debug(f"Secret key for {address} has invalid length {len(secret_key)}")
            raise DecryptionFailed(ERROR_CANNOT_BE_DECRYPTED)

        return secret_key

    def message_identifier_for_address(self, address: str) -> bytes:
        """
        Decrypt the message identifier through the secret key of ``address``.

        Raises:
            SecretKeyNotFound, DecryptionFailed: As get_secret_key_for_address,
                DecryptionFailed also when the identifier does not open
        """
        secret_key = self.get_secret_key_for_address(address)
        try:
            return decode_secret_decrypt(self.encrypted_message_identifier, secret_key)
        except NaclError as e:
            logger.debug(f"Message identifier cannot be decrypted for {address}: {e}")
            raise DecryptionFailed(ERROR_CANNOT_BE_DECRYPTED) from e

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    @property
    def errors(self) -> dict[str, list[str]]:
        return self._errors

    def valid(self) -> bool:
        """
        Run every validation rule and collect all failures in ``errors``.
        """
        self._errors = defaultdict(list)

        self._ensure_owned_input_can_decrypt_message_identifier()
        self._ensure_has_addresses_for_all_encrypted_secret_keys()
        self._ensure_encrypted_secret_keys_size_is_participant_count()

        if self._errors:
            logger.debug(f"Message verification invalid: {dict(self._errors)}")
        return not self._errors

    def _add_error(self, field: str, message: str) -> None:
        if message not in self._errors[field]:
            self._errors[field].append(message)

    def _ensure_owned_input_can_decrypt_message_identifier(self) -> None:
        owned_entries = [a for a in self.encrypted_secret_keys if self.keyring.owns(a)]
        owns_input = any(self.keyring.owns(a) for a in self.coin_join.input_addresses)
        if owns_input and not owned_entries:
            self._add_error("encrypted_secret_keys", ERROR_CANNOT_BE_DECRYPTED)

        for address in owned_entries:
            try:
                self.message_identifier_for_address(address)
            except MessageError:
                self._add_error("encrypted_secret_keys", ERROR_CANNOT_BE_DECRYPTED)

    def _ensure_has_addresses_for_all_encrypted_secret_keys(self) -> None:
        input_addresses = set(self.coin_join.input_addresses)
        for address in self.encrypted_secret_keys:
            if address not in input_addresses:
                self._add_error("encrypted_secret_keys", ERROR_ADDRESS_NOT_AN_INPUT)

    def _ensure_encrypted_secret_keys_size_is_participant_count(self) -> None:
        if len(self.encrypted_secret_keys) != self.coin_join.participants:
            self._add_error("encrypted_secret_keys", ERROR_PARTICIPANT_COUNT)
