"""Tests for authreport/formats/bytecode.py."""

import struct

import pytest

from authreport.formats.bytecode import (
    INVOKEVIRTUAL,
    LDC,
    BytecodeError,
    Instruction,
    iter_instructions,
)


def _offsets(code: bytes) -> list[tuple[int, int]]:
    return [(i.offset, i.opcode) for i in iter_instructions(code)]


class TestIterInstructions:
    def test_fixed_length_stream(self):
        code = bytes([0x2A, LDC, 5, INVOKEVIRTUAL, 0, 7, 0xB1])
        assert _offsets(code) == [(0, 0x2A), (1, LDC), (3, INVOKEVIRTUAL), (6, 0xB1)]

    def test_operands_exclude_opcode(self):
        (insn,) = list(iter_instructions(bytes([INVOKEVIRTUAL, 0x01, 0x02])))
        assert insn.operands == b"\x01\x02"
        assert insn.u2() == 258

    def test_invokeinterface_and_invokedynamic_are_five_bytes(self):
        code = bytes([0xB9, 0, 1, 1, 0, 0xBA, 0, 2, 0, 0, 0xB1])
        assert _offsets(code) == [(0, 0xB9), (5, 0xBA), (10, 0xB1)]

    def test_tableswitch_is_padded_and_sized(self):
        code = (
            bytes([0xAA, 0, 0, 0])
            + struct.pack(">iii", 0, 0, 1)
            + struct.pack(">ii", 0, 0)
            + bytes([0xB1])
        )
        assert _offsets(code) == [(0, 0xAA), (24, 0xB1)]

    def test_lookupswitch_after_nop(self):
        code = (
            bytes([0x00, 0xAB, 0, 0])
            + struct.pack(">ii", 0, 1)
            + struct.pack(">ii", 42, 0)
            + bytes([0xB1])
        )
        assert _offsets(code) == [(0, 0x00), (1, 0xAB), (20, 0xB1)]

    def test_wide_forms(self):
        code = bytes([0xC4, 0x84, 0, 1, 0, 1, 0xC4, 0x15, 0, 1, 0xB1])
        assert _offsets(code) == [(0, 0xC4), (6, 0xC4), (10, 0xB1)]

    def test_unknown_opcode(self):
        with pytest.raises(BytecodeError, match="0xcb"):
            list(iter_instructions(bytes([0xCB])))

    def test_truncated_instruction(self):
        with pytest.raises(BytecodeError, match="past end"):
            list(iter_instructions(bytes([INVOKEVIRTUAL, 0])))

    def test_empty_code(self):
        assert list(iter_instructions(b"")) == []


class TestInstruction:
    def test_u1(self):
        assert Instruction(0, LDC, b"\x09").u1() == 9
