"""
NaCl encryption for CoinJoin round messages.

Two constructions are used:
- sealed boxes (anonymous public-key encryption) to hand the round's shared
  secret key to the owner of each input,
- secret boxes (symmetric authenticated encryption) to protect the message
  identifier with that shared secret key.

All ciphertexts travel base64 encoded.
"""

from __future__ import annotations

import base64
import binascii

from libnacl import CryptError, public
from libnacl.sealed import SealedBox
from libnacl.secret import SecretBox
from loguru import logger

from muxcore.constants import SECRET_KEY_BYTES
from muxcore.errors import CoinmuxError


class NaclError(CoinmuxError):
    """Exception for NaCl encryption errors."""

    pass


def init_keypair() -> public.SecretKey:
    """
    Create a new encryption keypair.

    Returns:
        A NaCl SecretKey object containing the keypair.
    """
    return public.SecretKey()


def get_pubkey(keypair: public.SecretKey, as_hex: bool = False) -> bytes | str:
    """
    Get the public key from a keypair.

    Args:
        keypair: NaCl keypair object.
        as_hex: Return as hex string if True, otherwise raw bytes.
    """
    if not isinstance(keypair, public.SecretKey):
        raise NaclError("Object is not a nacl keypair")
    if as_hex:
        return keypair.hex_pk().decode("ascii")
    return keypair.pk


def init_pubkey(hexpk: str) -> public.PublicKey:
    """
    Create a public key object from a hex-encoded string.

    Args:
        hexpk: Hex-encoded 32-byte public key.
    """
    try:
        bin_pk = binascii.unhexlify(hexpk)
    except (TypeError, binascii.Error) as exc:
        raise NaclError("Invalid hex format") from exc
    if len(bin_pk) != 32:
        raise NaclError("Public key must be 32 bytes")
    return public.PublicKey(bin_pk)


def encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def decode(message: str) -> bytes:
    """
    Strictly decode base64 transport encoding.

    Raises:
        NaclError: If the text is not valid base64
    """
    try:
        return base64.b64decode(message, validate=True)
    except (TypeError, ValueError, binascii.Error) as exc:
        raise NaclError("Invalid base64 encoding") from exc


def generate_secret_key() -> bytes:
    """Fresh random symmetric key for a secret box."""
    return SecretBox().sk


def seal_encode(message: bytes, recipient_pk: public.PublicKey) -> str:
    """Encrypt ``message`` so only the holder of ``recipient_pk`` can read it."""
    if not isinstance(recipient_pk, public.PublicKey):
        raise NaclError("Object is not a public key")
    return encode(SealedBox(recipient_pk).encrypt(message))


def decode_unseal(message: str, keypair: public.SecretKey) -> bytes:
    """
    Decode and open a sealed box addressed to ``keypair``.

    Raises:
        NaclError: On bad encoding or when the box cannot be opened
    """
    if not isinstance(keypair, public.SecretKey):
        raise NaclError("Object is not a nacl keypair")
    ciphertext = decode(message)
    try:
        return SealedBox(keypair).decrypt(ciphertext)
    except (CryptError, ValueError, TypeError) as exc:
        raise NaclError(f"Unable to open sealed box: {exc}") from exc


def secret_encrypt_encode(message: bytes | str, secret_key: bytes) -> str:
    """Encrypt with a symmetric key; the nonce is packed in front."""
    if isinstance(message, str):
        message = message.encode("utf-8")
    if len(secret_key) != SECRET_KEY_BYTES:
        raise NaclError(f"Secret key must be {SECRET_KEY_BYTES} bytes")
    return encode(SecretBox(secret_key).encrypt(message))


def decode_secret_decrypt(message: str, secret_key: bytes) -> bytes:
    """
    Decode and decrypt a secret box message.

    Raises:
        NaclError: On bad encoding, bad key or authentication failure
    """
    if len(secret_key) != SECRET_KEY_BYTES:
        raise NaclError(f"Secret key must be {SECRET_KEY_BYTES} bytes")
    ciphertext = decode(message)
    try:
        return SecretBox(secret_key).decrypt(ciphertext)
    except (CryptError, ValueError, TypeError) as exc:
        raise NaclError(f"Unable to decrypt message: {exc}") from exc


class MessageKeyring:
    """
    Decryption context of the local participant.

    Maps every input address the participant owns to a NaCl keypair,
    usually the same one for all of them. Keys are kept in memory only and
    never serialized.
    """

    def __init__(self) -> None:
        self._keypairs: dict[str, public.SecretKey] = {}

    def generate(self, address: str) -> str:
        """
        Create a keypair for ``address``.

        Returns:
            The public key as hex, to be published as the input's
            message public key.
        """
        keypair = init_keypair()
        self._keypairs[address] = keypair
        logger.debug(f"Generated message keypair for {address}")
        pk = get_pubkey(keypair, as_hex=True)
        assert isinstance(pk, str)
        return pk

    def share(self, address: str, existing_address: str) -> str:
        """
        Reuse the keypair of ``existing_address`` for ``address``.

        A participant publishes one message public key for all of its inputs.
        """
        keypair = self._keypairs.get(existing_address)
        if keypair is None:
            raise NaclError(f"No keypair for address {existing_address}")
        self._keypairs[address] = keypair
        return self.public_key_hex(address)

    def add(self, address: str, keypair: public.SecretKey) -> None:
        if not isinstance(keypair, public.SecretKey):
            raise NaclError("Object is not a nacl keypair")
        self._keypairs[address] = keypair

    def get(self, address: str) -> public.SecretKey | None:
        return self._keypairs.get(address)

    def owns(self, address: str) -> bool:
        return address in self._keypairs

    def public_key_hex(self, address: str) -> str:
        keypair = self._keypairs.get(address)
        if keypair is None:
            raise NaclError(f"No keypair for address {address}")
        pk = get_pubkey(keypair, as_hex=True)
        assert isinstance(pk, str)
        return pk

    @property
    def addresses(self) -> list[str]:
        return list(self._keypairs)

    def __len__(self) -> int:
        return len(self._keypairs)
