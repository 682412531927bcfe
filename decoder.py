"""
UM-32 Instruction Decoder
=========================
Every instruction is one 32-bit platter.  The opcode lives in the top
nibble; the remaining bits use one of two layouts:

  Standard  (opcodes 0-12) : op 31-28 | A 8-6   | B 5-3 | C 2-0
  Immediate (opcode 13)    : op 31-28 | A 27-25 | value 24-0

``decode`` turns a platter into one of two tuple shapes, ``Standard`` or
``Immediate``, so the engine never repeats bit arithmetic per opcode.
"""

from __future__ import annotations
from typing import NamedTuple, Union

from faults import UnknownOpcode

# ---------------------------------------------------------------------------
#  Opcodes
# ---------------------------------------------------------------------------

OP_CMOV   = 0   # conditional move
OP_INDEX  = 1   # array index
OP_AMEND  = 2   # array amendment
OP_ADD    = 3
OP_MUL    = 4
OP_DIV    = 5
OP_NAND   = 6
OP_HALT   = 7
OP_ALLOC  = 8
OP_FREE   = 9   # abandonment
OP_OUT    = 10
OP_IN     = 11
OP_LOAD   = 12  # load program
OP_ORTHO  = 13  # orthography (load immediate)

NUM_OPCODES = 14

MNEMONICS = {
    OP_CMOV: "cmov", OP_INDEX: "index", OP_AMEND: "amend", OP_ADD: "add",
    OP_MUL: "mul", OP_DIV: "div", OP_NAND: "nand", OP_HALT: "halt",
    OP_ALLOC: "alloc", OP_FREE: "free", OP_OUT: "out", OP_IN: "in",
    OP_LOAD: "load", OP_ORTHO: "ortho",
}
OPCODES = {name: op for op, name in MNEMONICS.items()}

# Field geometry
OP_SHIFT   = 28
IMM_REG_SHIFT = 25
IMM_BITS   = 25
IMM_MASK   = (1 << IMM_BITS) - 1
REG_MASK   = 0x7
NUM_REGS   = 8


class Standard(NamedTuple):
    """Three-register layout: opcodes 0-12."""
    op: int
    a: int
    b: int
    c: int


class Immediate(NamedTuple):
    """Register plus 25-bit immediate: opcode 13."""
    op: int
    a: int
    value: int


Instruction = Union[Standard, Immediate]


def decode(word: int) -> Instruction:
    """Decode one platter.  Raises UnknownOpcode for opcodes 14 and 15."""
    op = (word >> OP_SHIFT) & 0xF
    if op == OP_ORTHO:
        return Immediate(op, (word >> IMM_REG_SHIFT) & REG_MASK, word & IMM_MASK)
    if op >= NUM_OPCODES:
        raise UnknownOpcode(op)
    return Standard(op, (word >> 6) & REG_MASK, (word >> 3) & REG_MASK,
                    word & REG_MASK)


def _check_reg(r: int) -> int:
    if not 0 <= r < NUM_REGS:
        raise ValueError(f"Invalid register index: {r}")
    return r


def encode_standard(op: int, a: int = 0, b: int = 0, c: int = 0) -> int:
    if not 0 <= op < NUM_OPCODES or op == OP_ORTHO:
        raise ValueError(f"Opcode {op} has no standard layout")
    return (op << OP_SHIFT) | (_check_reg(a) << 6) | (_check_reg(b) << 3) | _check_reg(c)


def encode_immediate(a: int, value: int) -> int:
    if not 0 <= value <= IMM_MASK:
        raise ValueError(f"Immediate {value} does not fit in {IMM_BITS} bits")
    return (OP_ORTHO << OP_SHIFT) | (_check_reg(a) << IMM_REG_SHIFT) | value


def encode(inst: Instruction) -> int:
    if isinstance(inst, Immediate):
        return encode_immediate(inst.a, inst.value)
    return encode_standard(inst.op, inst.a, inst.b, inst.c)


def format_instruction(inst: Instruction) -> str:
    """Render a decoded instruction in assembler syntax."""
    name = MNEMONICS[inst.op]
    if isinstance(inst, Immediate):
        return f"{name} r{inst.a}, {inst.value:#x}"
    op = inst.op
    if op == OP_HALT:
        return name
    if op in (OP_OUT, OP_IN, OP_FREE):
        return f"{name} r{inst.c}"
    if op in (OP_ALLOC, OP_LOAD):
        return f"{name} r{inst.b}, r{inst.c}"
    return f"{name} r{inst.a}, r{inst.b}, r{inst.c}"
