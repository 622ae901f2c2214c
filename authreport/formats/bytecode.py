"""JVM instruction decoding.

Only the opcodes the interpreter looks at get names; everything else is
decoded for its length alone so the stream can be walked linearly.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
import struct

LDC = 0x12
LDC_W = 0x13
IFEQ = 0x99
IFNE = 0x9A
TABLESWITCH = 0xAA
LOOKUPSWITCH = 0xAB
GETSTATIC = 0xB2
PUTSTATIC = 0xB3
GETFIELD = 0xB4
PUTFIELD = 0xB5
INVOKEVIRTUAL = 0xB6
INVOKESPECIAL = 0xB7
INVOKESTATIC = 0xB8
INVOKEINTERFACE = 0xB9
INVOKEDYNAMIC = 0xBA
NEW = 0xBB
WIDE = 0xC4

INVOKE_OPCODES = frozenset(
    {INVOKEVIRTUAL, INVOKESPECIAL, INVOKESTATIC, INVOKEINTERFACE}
)


def _build_lengths() -> dict[int, int]:
    """Total instruction length (opcode included) for fixed-size opcodes."""
    lengths: dict[int, int] = {op: 1 for op in range(0x00, 0xCA)}
    for op in (0x10, 0x12, 0xBC, 0xA9):  # bipush, ldc, newarray, ret
        lengths[op] = 2
    for op in range(0x15, 0x1A):  # iload..aload
        lengths[op] = 2
    for op in range(0x36, 0x3B):  # istore..astore
        lengths[op] = 2
    for op in (0x11, 0x13, 0x14, 0x84):  # sipush, ldc_w, ldc2_w, iinc
        lengths[op] = 3
    for op in range(0x99, 0xA9):  # if*, goto, jsr
        lengths[op] = 3
    for op in range(0xB2, 0xB9):  # field access, invokevirtual/special/static
        lengths[op] = 3
    for op in (0xBB, 0xBD, 0xC0, 0xC1, 0xC6, 0xC7):
        lengths[op] = 3
    lengths[INVOKEINTERFACE] = 5
    lengths[INVOKEDYNAMIC] = 5
    lengths[0xC5] = 4  # multianewarray
    lengths[0xC8] = 5  # goto_w
    lengths[0xC9] = 5  # jsr_w
    lengths[0xCA] = 1  # breakpoint
    lengths[0xFE] = 1
    lengths[0xFF] = 1
    return lengths


_LENGTHS = _build_lengths()


class BytecodeError(ValueError):
    """Raised when an instruction stream cannot be decoded."""


@dataclass(frozen=True)
class Instruction:
    """One decoded instruction: its offset, opcode and raw operand bytes."""

    offset: int
    opcode: int
    operands: bytes

    def u1(self) -> int:
        return self.operands[0]

    def u2(self) -> int:
        """First two operand bytes as an unsigned constant-pool index."""
        return struct.unpack_from(">H", self.operands, 0)[0]


def _switch_length(code: bytes, pc: int) -> int:
    pad = (4 - (pc + 1) % 4) % 4
    base = pc + 1 + pad
    if code[pc] == TABLESWITCH:
        _default, low, high = struct.unpack_from(">iii", code, base)
        if high < low:
            raise BytecodeError(f"tableswitch at {pc} has high < low")
        return 1 + pad + 12 + (high - low + 1) * 4
    _default, npairs = struct.unpack_from(">ii", code, base)
    if npairs < 0:
        raise BytecodeError(f"lookupswitch at {pc} has negative pair count")
    return 1 + pad + 8 + npairs * 8


def iter_instructions(code: bytes) -> Iterator[Instruction]:
    """Walk *code* linearly, yielding each instruction in program order.

    Raises BytecodeError on an unknown opcode or a truncated stream.
    """
    pc = 0
    end = len(code)
    while pc < end:
        opcode = code[pc]
        try:
            if opcode in (TABLESWITCH, LOOKUPSWITCH):
                length = _switch_length(code, pc)
            elif opcode == WIDE:
                length = 6 if code[pc + 1] == 0x84 else 4
            else:
                length = _LENGTHS[opcode]
        except (KeyError, IndexError, struct.error) as e:
            raise BytecodeError(f"cannot decode opcode 0x{opcode:02x} at {pc}") from e
        if pc + length > end:
            raise BytecodeError(f"instruction at {pc} runs past end of code")
        yield Instruction(pc, opcode, code[pc + 1 : pc + length])
        pc += length
