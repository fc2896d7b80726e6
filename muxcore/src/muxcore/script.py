"""
Bitcoin script helpers.

Only what CoinJoin inputs need: parsing push-only scripts and building and
recognising pay-to-pubkey-hash locking and unlocking scripts.
"""

from __future__ import annotations

import struct

from muxcore.bitcoin import hash160
from muxcore.errors import CoinmuxError

OP_0 = 0x00
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_PUSHDATA4 = 0x4E
OP_DUP = 0x76
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xA9
OP_CHECKSIG = 0xAC


class ScriptError(CoinmuxError):
    """Raised when a script is malformed or does not satisfy its locking script."""

    pass


def push_data(data: bytes) -> bytes:
    """Encode ``data`` with the smallest push opcode."""
    length = len(data)
    if length == 0:
        return bytes([OP_0])
    if length < OP_PUSHDATA1:
        return bytes([length]) + data
    if length <= 0xFF:
        return bytes([OP_PUSHDATA1, length]) + data
    if length <= 0xFFFF:
        return bytes([OP_PUSHDATA2]) + struct.pack("<H", length) + data
    return bytes([OP_PUSHDATA4]) + struct.pack("<I", length) + data


def parse_pushes(script: bytes) -> list[bytes]:
    """
    Split a push-only script into its data items.

    Raises:
        ScriptError: On a non-push opcode or a truncated push
    """
    items: list[bytes] = []
    offset = 0
    while offset < len(script):
        opcode = script[offset]
        offset += 1
        if opcode == OP_0:
            items.append(b"")
            continue
        if opcode < OP_PUSHDATA1:
            length = opcode
        elif opcode == OP_PUSHDATA1:
            if offset + 1 > len(script):
                raise ScriptError("Truncated OP_PUSHDATA1")
            length = script[offset]
            offset += 1
        elif opcode == OP_PUSHDATA2:
            if offset + 2 > len(script):
                raise ScriptError("Truncated OP_PUSHDATA2")
            length = struct.unpack("<H", script[offset : offset + 2])[0]
            offset += 2
        elif opcode == OP_PUSHDATA4:
            if offset + 4 > len(script):
                raise ScriptError("Truncated OP_PUSHDATA4")
            length = struct.unpack("<I", script[offset : offset + 4])[0]
            offset += 4
        else:
            raise ScriptError(f"Non-push opcode 0x{opcode:02x} in signing script")

        if offset + length > len(script):
            raise ScriptError("Push exceeds script length")
        items.append(script[offset : offset + length])
        offset += length
    return items


def p2pkh_script(pubkey_hash: bytes) -> bytes:
    """OP_DUP OP_HASH160 <20-byte-pubkeyhash> OP_EQUALVERIFY OP_CHECKSIG"""
    if len(pubkey_hash) != 20:
        raise ValueError(f"Invalid pubkey hash length: {len(pubkey_hash)}")
    return bytes([OP_DUP, OP_HASH160, 0x14]) + pubkey_hash + bytes([OP_EQUALVERIFY, OP_CHECKSIG])


def is_p2pkh(scriptpubkey: bytes) -> bool:
    return (
        len(scriptpubkey) == 25
        and scriptpubkey[0] == OP_DUP
        and scriptpubkey[1] == OP_HASH160
        and scriptpubkey[2] == 0x14
        and scriptpubkey[23] == OP_EQUALVERIFY
        and scriptpubkey[24] == OP_CHECKSIG
    )


def p2pkh_pubkey_hash(scriptpubkey: bytes) -> bytes:
    if not is_p2pkh(scriptpubkey):
        raise ScriptError(f"Unsupported locking script: {scriptpubkey.hex()}")
    return scriptpubkey[3:23]


def build_p2pkh_script_sig(signature: bytes, pubkey: bytes) -> bytes:
    """
    Build a P2PKH signing script: <signature+hashtype> <pubkey>.

    Args:
        signature: DER signature with the sighash type byte appended
        pubkey: Serialized public key (33 or 65 bytes)
    """
    return push_data(signature) + push_data(pubkey)


def parse_p2pkh_script_sig(script_sig: bytes, scriptpubkey: bytes) -> tuple[bytes, bytes]:
    """
    Split a P2PKH signing script and check it against the locking script.

    Returns:
        (signature with hashtype, pubkey)

    Raises:
        ScriptError: If the script is malformed or the key does not match
    """
    pubkey_hash = p2pkh_pubkey_hash(scriptpubkey)
    if not script_sig:
        raise ScriptError("Empty signing script")

    items = parse_pushes(script_sig)
    if len(items) != 2:
        raise ScriptError(f"Expected 2 pushes in signing script, got {len(items)}")

    signature, pubkey = items
    if len(signature) < 9:
        raise ScriptError("Signature too short")
    if len(pubkey) not in (33, 65):
        raise ScriptError(f"Invalid public key length: {len(pubkey)}")
    if hash160(pubkey) != pubkey_hash:
        raise ScriptError("Public key does not match locking script")

    return signature, pubkey
