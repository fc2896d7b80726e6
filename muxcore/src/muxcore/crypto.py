"""
Cryptographic primitives for coinmux.

secp256k1 keys and ECDSA over pre-computed digests, backed by coincurve.
"""

from __future__ import annotations

import base58
from coincurve import PrivateKey, PublicKey

from muxcore.bitcoin import pubkey_to_p2pkh_address
from muxcore.errors import CoinmuxError
from muxcore.models import NetworkType

WIF_VERSION = {
    NetworkType.MAINNET: 0x80,
    NetworkType.TESTNET: 0xEF,
    NetworkType.SIGNET: 0xEF,
    NetworkType.REGTEST: 0xEF,
}

# secp256k1 group order
CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


class CryptoError(CoinmuxError):
    pass


def parse_private_key(value: str) -> tuple[bytes, bool | None]:
    """
    Parse a private key given as 64 hex chars or WIF.

    Returns:
        (32-byte secret, compressed flag). The flag is None for hex keys,
        which carry no encoding preference.

    Raises:
        CryptoError: If the key is malformed or out of range
    """
    value = value.strip()
    secret: bytes
    compressed: bool | None

    if len(value) == 64:
        try:
            secret = bytes.fromhex(value)
        except ValueError as e:
            raise CryptoError("Invalid private key hex") from e
        compressed = None
    else:
        try:
            decoded = base58.b58decode_check(value)
        except ValueError as e:
            raise CryptoError("Invalid private key encoding") from e
        if decoded[0] not in WIF_VERSION.values():
            raise CryptoError(f"Unknown WIF version byte: {decoded[0]:#x}")
        payload = decoded[1:]
        if len(payload) == 33 and payload[-1] == 0x01:
            secret, compressed = payload[:32], True
        elif len(payload) == 32:
            secret, compressed = payload, False
        else:
            raise CryptoError("Invalid WIF payload length")

    number = int.from_bytes(secret, "big")
    if not 0 < number < CURVE_ORDER:
        raise CryptoError("Private key out of range")
    return secret, compressed


class KeyPair:
    """secp256k1 key pair used to sign transaction inputs."""

    def __init__(self, private_key: PrivateKey | None = None, compressed: bool | None = None):
        if private_key is None:
            private_key = PrivateKey()
        self.private_key = private_key
        self.public_key = private_key.public_key
        self.compressed = compressed

    @classmethod
    def from_string(cls, value: str) -> KeyPair:
        secret, compressed = parse_private_key(value)
        return cls(PrivateKey(secret), compressed=compressed)

    def public_key_bytes(self, compressed: bool | None = None) -> bytes:
        if compressed is None:
            compressed = self.compressed if self.compressed is not None else True
        return self.public_key.format(compressed=compressed)

    def public_key_hex(self, compressed: bool | None = None) -> str:
        return self.public_key_bytes(compressed).hex()

    def candidate_public_keys(self) -> list[bytes]:
        """Public key encodings this key may be known under, preferred first."""
        if self.compressed is not None:
            return [self.public_key_bytes(self.compressed)]
        return [self.public_key_bytes(True), self.public_key_bytes(False)]

    def p2pkh_address(self, network: str | NetworkType = "mainnet") -> str:
        return pubkey_to_p2pkh_address(self.public_key_bytes(), network)

    def sign_digest(self, digest: bytes) -> bytes:
        """
        Sign a 32-byte digest.

        The digest is used as-is (hasher=None); coincurve returns a low-S
        DER signature.
        """
        if len(digest) != 32:
            raise CryptoError(f"Digest must be 32 bytes, got {len(digest)}")
        return self.private_key.sign(digest, hasher=None)

    def to_wif(self, network: str | NetworkType = "mainnet") -> str:
        if isinstance(network, str):
            network = NetworkType(network)
        payload = bytes([WIF_VERSION[network]]) + self.private_key.secret
        if self.compressed is not False:
            payload += b"\x01"
        return base58.b58encode_check(payload).decode("ascii")


def verify_digest(pubkey: bytes, signature: bytes, digest: bytes) -> bool:
    """
    Verify a DER signature over a 32-byte digest.

    Raises:
        ValueError: If the public key or the signature cannot be parsed
    """
    return PublicKey(pubkey).verify(signature, digest, hasher=None)
