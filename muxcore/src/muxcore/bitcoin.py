"""
Bitcoin primitives for coinmux: amounts, hashes, addresses and raw
transactions.

Address checksums are delegated to external libraries:
- base58: Base58Check (P2PKH, P2SH)
- bech32: BIP173/BIP350 segwit addresses (P2WPKH, P2WSH, P2TR)

Raw transactions are parsed into RawTransaction values with bytes scripts;
hex only appears at the edges (txids and provider payloads).
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

import base58
import bech32 as bech32_lib

from muxcore.constants import SATS_PER_BTC, SEQUENCE_FINAL, TX_LOCKTIME, TX_VERSION
from muxcore.models import NetworkType

# network -> (bech32 hrp, P2PKH version byte, P2SH version byte)
NETWORK_PREFIXES: dict[NetworkType, tuple[str, int, int]] = {
    NetworkType.MAINNET: ("bc", 0x00, 0x05),
    NetworkType.TESTNET: ("tb", 0x6F, 0xC4),
    NetworkType.SIGNET: ("tb", 0x6F, 0xC4),
    NetworkType.REGTEST: ("bcrt", 0x6F, 0xC4),
}

_P2PKH_VERSIONS = {prefix[1] for prefix in NETWORK_PREFIXES.values()}
_P2SH_VERSIONS = {prefix[2] for prefix in NETWORK_PREFIXES.values()}


def _network(network: str | NetworkType) -> NetworkType:
    return network if isinstance(network, NetworkType) else NetworkType(network)


# =============================================================================
# Amounts
# =============================================================================


def btc_to_sats(btc: float | str | Decimal) -> int:
    """
    Convert a BTC amount from a provider into satoshis.

    Decimal strings convert exactly; floats are rounded, since for example
    0.0003 * 1e8 evaluates to 29999.999...

    Raises:
        ValueError: If the amount is not a number
    """
    if isinstance(btc, bool):
        raise ValueError(f"Invalid BTC amount: {btc!r}")
    if isinstance(btc, float | int):
        return round(btc * SATS_PER_BTC)
    try:
        return int((Decimal(btc) * SATS_PER_BTC).to_integral_value())
    except InvalidOperation as e:
        raise ValueError(f"Invalid BTC amount: {btc!r}") from e


def format_amount(sats: int, include_unit: bool = True) -> str:
    """'1,000,000 sats (0.01000000 BTC)', or just '1,000,000'."""
    if not include_unit:
        return f"{sats:,}"
    return f"{sats:,} sats ({sats / SATS_PER_BTC:.8f} BTC)"


# =============================================================================
# Hashes
# =============================================================================


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data)), the hash committed to by P2PKH scripts."""
    return hashlib.new("ripemd160", hashlib.sha256(data).digest()).digest()


def hash256(data: bytes) -> bytes:
    """Double SHA256, used for txids and signature hashes."""
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


# =============================================================================
# Addresses
# =============================================================================


def pubkey_to_p2pkh_address(pubkey: bytes | str, network: str | NetworkType = "mainnet") -> str:
    """
    Base58Check P2PKH address of a compressed or uncompressed public key.

    The two encodings of one key hash to different addresses.
    """
    if isinstance(pubkey, str):
        pubkey = bytes.fromhex(pubkey)
    if len(pubkey) not in (33, 65):
        raise ValueError(f"Invalid pubkey length: {len(pubkey)}")

    version = NETWORK_PREFIXES[_network(network)][1]
    return base58.b58encode_check(bytes([version]) + hash160(pubkey)).decode("ascii")


def address_to_scriptpubkey(address: str) -> bytes:
    """
    Locking script paying to ``address``.

    Accepts P2PKH and P2SH (Base58Check) and P2WPKH, P2WSH and P2TR (bech32)
    addresses of any network.

    Raises:
        ValueError: If the address cannot be decoded
    """
    lowered = address.lower()
    for hrp in ("bcrt", "bc", "tb"):
        if lowered.startswith(hrp + "1"):
            return _segwit_scriptpubkey(hrp, address)

    decoded = base58.b58decode_check(address)
    version, payload = decoded[0], decoded[1:]
    if len(payload) != 20:
        raise ValueError(f"Invalid address payload length: {len(payload)}")
    if version in _P2PKH_VERSIONS:
        # OP_DUP OP_HASH160 <pubkeyhash> OP_EQUALVERIFY OP_CHECKSIG
        return b"\x76\xa9\x14" + payload + b"\x88\xac"
    if version in _P2SH_VERSIONS:
        # OP_HASH160 <scripthash> OP_EQUAL
        return b"\xa9\x14" + payload + b"\x87"
    raise ValueError(f"Unknown address version: {version}")


def _segwit_scriptpubkey(hrp: str, address: str) -> bytes:
    witver, witprog = bech32_lib.decode(hrp, address)
    if witver is None or witprog is None:
        raise ValueError(f"Invalid bech32 address: {address}")

    program = bytes(witprog)
    if (witver, len(program)) not in ((0, 20), (0, 32), (1, 32)):
        raise ValueError(f"Unsupported witness program: v{witver}, {len(program)} bytes")
    # OP_0 / OP_1 followed by the program push
    opcode = 0x00 if witver == 0 else 0x50 + witver
    return bytes([opcode, len(program)]) + program


def scriptpubkey_to_address(scriptpubkey: bytes, network: str | NetworkType = "mainnet") -> str:
    """
    Address for a standard locking script on ``network``.

    Raises:
        ValueError: For scripts without an address form (bare multisig,
            OP_RETURN, non-standard)
    """
    hrp, p2pkh_version, p2sh_version = NETWORK_PREFIXES[_network(network)]
    size = len(scriptpubkey)

    if size == 25 and scriptpubkey[:3] == b"\x76\xa9\x14" and scriptpubkey[23:] == b"\x88\xac":
        return _base58_address(p2pkh_version, scriptpubkey[3:23])
    if size == 23 and scriptpubkey[:2] == b"\xa9\x14" and scriptpubkey[22] == 0x87:
        return _base58_address(p2sh_version, scriptpubkey[2:22])

    if size in (22, 34) and scriptpubkey[1] == size - 2 and scriptpubkey[0] in (0x00, 0x51):
        witver = 0 if scriptpubkey[0] == 0x00 else 1
        if witver == 0 or size == 34:
            encoded = bech32_lib.encode(hrp, witver, scriptpubkey[2:])
            if encoded is not None:
                return encoded

    raise ValueError(f"Unsupported scriptPubKey: {scriptpubkey.hex()}")


def _base58_address(version: int, payload: bytes) -> str:
    return base58.b58encode_check(bytes([version]) + payload).decode("ascii")


# =============================================================================
# Raw transactions
# =============================================================================


def encode_varint(n: int) -> bytes:
    """Bitcoin CompactSize encoding."""
    if n < 0xFD:
        return bytes([n])
    if n <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", n)
    if n <= 0xFFFFFFFF:
        return b"\xfe" + struct.pack("<I", n)
    return b"\xff" + struct.pack("<Q", n)


class ByteReader:
    """Cursor over serialized transaction bytes."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def read(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self.data):
            raise ValueError(f"Truncated data: need {size} bytes at offset {self.offset}")
        chunk = self.data[self.offset : end]
        self.offset = end
        return chunk

    def read_uint32(self) -> int:
        return int(struct.unpack("<I", self.read(4))[0])

    def read_uint64(self) -> int:
        return int(struct.unpack("<Q", self.read(8))[0])

    def read_varint(self) -> int:
        first = self.read(1)[0]
        if first < 0xFD:
            return first
        size = {0xFD: 2, 0xFE: 4, 0xFF: 8}[first]
        return int.from_bytes(self.read(size), "little")

    def read_var_bytes(self) -> bytes:
        return self.read(self.read_varint())

    def peek(self, size: int) -> bytes:
        return self.data[self.offset : self.offset + size]

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset


@dataclass
class RawTxInput:
    txid: str
    vout: int
    script_sig: bytes = b""
    sequence: int = SEQUENCE_FINAL


@dataclass
class RawTxOutput:
    value: int
    scriptpubkey: bytes


@dataclass
class RawTransaction:
    """A transaction as serialized on the wire."""

    inputs: list[RawTxInput] = field(default_factory=list)
    outputs: list[RawTxOutput] = field(default_factory=list)
    version: int = TX_VERSION
    locktime: int = TX_LOCKTIME
    # One stack per input when the segwit serialization was used
    witnesses: list[list[bytes]] = field(default_factory=list)

    @property
    def has_witness(self) -> bool:
        return any(self.witnesses)

    def serialize(self, include_witness: bool = True) -> bytes:
        segwit = include_witness and self.has_witness
        parts = [struct.pack("<I", self.version)]
        if segwit:
            parts.append(b"\x00\x01")

        parts.append(encode_varint(len(self.inputs)))
        for txin in self.inputs:
            parts.append(bytes.fromhex(txin.txid)[::-1])
            parts.append(struct.pack("<I", txin.vout))
            parts.append(encode_varint(len(txin.script_sig)) + txin.script_sig)
            parts.append(struct.pack("<I", txin.sequence))

        parts.append(encode_varint(len(self.outputs)))
        for txout in self.outputs:
            parts.append(struct.pack("<Q", txout.value))
            parts.append(encode_varint(len(txout.scriptpubkey)) + txout.scriptpubkey)

        if segwit:
            for stack in self.witnesses:
                parts.append(encode_varint(len(stack)))
                parts.extend(encode_varint(len(item)) + item for item in stack)

        parts.append(struct.pack("<I", self.locktime))
        return b"".join(parts)

    @property
    def txid(self) -> str:
        """Hash of the serialization without witness data, byte-reversed hex."""
        return hash256(self.serialize(include_witness=False))[::-1].hex()


def parse_transaction(tx: bytes | str) -> RawTransaction:
    """
    Parse a raw transaction given as bytes or hex, segwit or legacy.

    Raises:
        ValueError: If the data is not exactly one well-formed transaction
    """
    try:
        reader = ByteReader(bytes.fromhex(tx) if isinstance(tx, str) else bytes(tx))
        parsed = _read_transaction(reader)
    except ValueError as e:
        raise ValueError(f"Failed to parse transaction: {e}") from e
    if reader.remaining:
        raise ValueError(f"Failed to parse transaction: {reader.remaining} trailing bytes")
    return parsed


def _read_transaction(reader: ByteReader) -> RawTransaction:
    tx = RawTransaction(version=reader.read_uint32())
    segwit = reader.peek(2) == b"\x00\x01"
    if segwit:
        reader.read(2)

    for _ in range(reader.read_varint()):
        txid = reader.read(32)[::-1].hex()
        vout = reader.read_uint32()
        script_sig = reader.read_var_bytes()
        tx.inputs.append(RawTxInput(txid, vout, script_sig, reader.read_uint32()))

    for _ in range(reader.read_varint()):
        value = reader.read_uint64()
        tx.outputs.append(RawTxOutput(value, reader.read_var_bytes()))

    if segwit:
        tx.witnesses = [
            [reader.read_var_bytes() for _ in range(reader.read_varint())] for _ in tx.inputs
        ]

    tx.locktime = reader.read_uint32()
    return tx


def get_txid(tx: bytes | str) -> str:
    return parse_transaction(tx).txid


@dataclass
class TxOutput:
    """Destination output: ``value`` satoshis paid to ``address``."""

    address: str
    value: int
    scriptpubkey: bytes = b""

    def script_bytes(self) -> bytes:
        return self.scriptpubkey or address_to_scriptpubkey(self.address)
