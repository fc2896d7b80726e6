"""
Tests for muxcore.script.
"""

from __future__ import annotations

import pytest

from muxcore.bitcoin import hash160
from muxcore.script import (
    OP_PUSHDATA1,
    OP_PUSHDATA2,
    ScriptError,
    build_p2pkh_script_sig,
    is_p2pkh,
    p2pkh_pubkey_hash,
    p2pkh_script,
    parse_p2pkh_script_sig,
    parse_pushes,
    push_data,
)

PUBKEY = bytes.fromhex("0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798")
SIGNATURE = bytes.fromhex("3006020101020101") + b"\x01" + b"\x00"  # shape only


class TestPushData:
    def test_small_push(self) -> None:
        assert push_data(b"\xab\xcd") == b"\x02\xab\xcd"

    def test_empty_push(self) -> None:
        assert push_data(b"") == b"\x00"

    def test_pushdata1(self) -> None:
        data = b"\x01" * 80
        assert push_data(data)[:2] == bytes([OP_PUSHDATA1, 80])

    def test_pushdata2(self) -> None:
        data = b"\x01" * 300
        assert push_data(data)[:3] == bytes([OP_PUSHDATA2]) + (300).to_bytes(2, "little")

    @pytest.mark.parametrize("size", [0, 1, 75, 76, 255, 256, 520])
    def test_parse_roundtrip(self, size: int) -> None:
        items = [b"\x07" * size, b"\x08" * 3]
        script = b"".join(push_data(item) for item in items)
        assert parse_pushes(script) == items

    def test_parse_rejects_opcode(self) -> None:
        with pytest.raises(ScriptError, match="Non-push opcode"):
            parse_pushes(b"\x76")

    def test_parse_rejects_truncated(self) -> None:
        with pytest.raises(ScriptError, match="exceeds script length"):
            parse_pushes(b"\x05\x01\x02")
        with pytest.raises(ScriptError, match="Truncated"):
            parse_pushes(bytes([OP_PUSHDATA2, 0x01]))


class TestP2PKH:
    def test_locking_script(self) -> None:
        script = p2pkh_script(hash160(PUBKEY))
        assert is_p2pkh(script)
        assert p2pkh_pubkey_hash(script) == hash160(PUBKEY)

    def test_locking_script_bad_hash(self) -> None:
        with pytest.raises(ValueError):
            p2pkh_script(b"\x00" * 19)

    def test_not_p2pkh(self) -> None:
        witness_script = b"\x00\x14" + hash160(PUBKEY)
        assert not is_p2pkh(witness_script)
        with pytest.raises(ScriptError, match="Unsupported locking script"):
            p2pkh_pubkey_hash(witness_script)

    def test_script_sig_roundtrip(self) -> None:
        locking = p2pkh_script(hash160(PUBKEY))
        script_sig = build_p2pkh_script_sig(SIGNATURE, PUBKEY)

        assert parse_p2pkh_script_sig(script_sig, locking) == (SIGNATURE, PUBKEY)

    def test_script_sig_empty(self) -> None:
        locking = p2pkh_script(hash160(PUBKEY))
        with pytest.raises(ScriptError, match="Empty"):
            parse_p2pkh_script_sig(b"", locking)

    def test_script_sig_wrong_key(self) -> None:
        locking = p2pkh_script(b"\x11" * 20)
        script_sig = build_p2pkh_script_sig(SIGNATURE, PUBKEY)
        with pytest.raises(ScriptError, match="does not match"):
            parse_p2pkh_script_sig(script_sig, locking)

    def test_script_sig_item_count(self) -> None:
        locking = p2pkh_script(hash160(PUBKEY))
        with pytest.raises(ScriptError, match="Expected 2 pushes"):
            parse_p2pkh_script_sig(push_data(SIGNATURE), locking)

    def test_script_sig_bad_pubkey_length(self) -> None:
        locking = p2pkh_script(hash160(PUBKEY))
        script_sig = build_p2pkh_script_sig(SIGNATURE, PUBKEY[:20])
        with pytest.raises(ScriptError, match="Invalid public key length"):
            parse_p2pkh_script_sig(script_sig, locking)
