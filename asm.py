"""
UM-32 Assembler
===============
Translates assembly text into a big-endian platter image.

Supports:
  - Labels (terminated with ':'), resolved to platter offsets
  - All 14 operations, registers r0-r7
  - Immediate literals (decimal, hex with 0x prefix, 'c' characters)
  - Comments (';' to end of line)
  - .word, .ascii, .asciiz directives

Operand forms:
  cmov/index/amend/add/mul/div/nand  rA, rB, rC
  alloc rB, rC        load rB, rC
  free rC   out rC    in rC    halt
  ortho rA, value|label|'c'

Usage:
  from asm import assemble
  image = assemble(source_text)
"""

from __future__ import annotations
from typing import Optional

from decoder import (
    OPCODES, OP_ALLOC, OP_FREE, OP_HALT, OP_IN, OP_LOAD, OP_ORTHO, OP_OUT,
    IMM_MASK, NUM_REGS, encode_immediate, encode_standard,
)
from system import words_to_bytes

MASK32 = 0xFFFF_FFFF

# Operand shapes per opcode: which of A, B, C the source names, in order
_OPERANDS = {
    OP_HALT:  (),
    OP_ALLOC: ("b", "c"),
    OP_LOAD:  ("b", "c"),
    OP_FREE:  ("c",),
    OP_OUT:   ("c",),
    OP_IN:    ("c",),
}
_THREE_REG = ("a", "b", "c")

_ESCAPES = {"n": 0x0A, "r": 0x0D, "t": 0x09, "0": 0x00, "\\": 0x5C,
            '"': 0x22, "'": 0x27}

# ---------------------------------------------------------------------------
#  Parser helpers
# ---------------------------------------------------------------------------

def _parse_reg(tok: str) -> int:
    """Parse 'r0'-'r7'.  Returns register index."""
    tok = tok.strip().lower()
    if tok.startswith("r") and tok[1:].isdigit():
        n = int(tok[1:])
        if 0 <= n < NUM_REGS:
            return n
    raise ValueError(f"Invalid register: {tok!r}")


def _parse_imm(tok: str) -> int:
    """Parse an immediate value (decimal, 0x hex, or 'c')."""
    tok = tok.strip()
    if len(tok) >= 3 and tok[0] == "'" and tok[-1] == "'":
        body = _unescape(tok[1:-1])
        if len(body) != 1:
            raise ValueError(f"Bad character literal: {tok}")
        return body[0]
    return int(tok, 0)


def _split_ops(rest: str) -> list[str]:
    """Split operand string by comma, trimming whitespace."""
    return [s.strip() for s in rest.split(",") if s.strip()]


def _unescape(s: str) -> bytes:
    result = bytearray()
    i = 0
    while i < len(s):
        if s[i] == "\\" and i + 1 < len(s):
            c = s[i + 1]
            if c == "x" and i + 3 < len(s):
                result.append(int(s[i + 2:i + 4], 16))
                i += 4
                continue
            result.append(_ESCAPES.get(c, ord(c) & 0xFF))
            i += 2
        else:
            result.extend(s[i].encode("utf-8"))
            i += 1
    return bytes(result)


def _parse_string(lineno: int, text: str) -> bytes:
    """Parse a double-quoted string literal with escape sequences."""
    text = text.strip()
    if not (len(text) >= 2 and text.startswith('"') and text.endswith('"')):
        raise AsmError(lineno, f"Expected quoted string, got: {text}")
    try:
        return _unescape(text[1:-1])
    except ValueError as e:
        raise AsmError(lineno, str(e)) from e


def _strip_comment(raw: str) -> str:
    result = []
    quote = None
    for ch in raw:
        if ch in "\"'":
            if quote is None:
                quote = ch
            elif quote == ch:
                quote = None
        if ch == ";" and quote is None:
            break
        result.append(ch)
    return "".join(result).strip()


def _split_mnemonic(text: str) -> tuple[str, str]:
    """Split 'MNEM operands' → (mnem, operands_str)."""
    parts = text.split(None, 1)
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], parts[1]

# ---------------------------------------------------------------------------
#  Assembler
# ---------------------------------------------------------------------------

class AsmError(Exception):
    def __init__(self, line: int, msg: str):
        self.line = line
        super().__init__(f"Line {line}: {msg}")


def _directive_size(lineno: int, text: str) -> Optional[int]:
    lower = text.lower()
    if lower.startswith(".word"):
        return len(_split_ops(text[5:]))
    if lower.startswith(".asciiz"):
        return len(_parse_string(lineno, text[7:])) + 1
    if lower.startswith(".ascii"):
        return len(_parse_string(lineno, text[6:]))
    if lower.startswith("."):
        raise AsmError(lineno, f"Unknown directive: {text.split()[0]}")
    return None


def assemble_words(source: str, listing: bool = False) -> list[int]:
    """
    Two-pass assembler.
    Pass 1: collect labels (every instruction is one platter).
    Pass 2: emit platters with resolved labels.
    If listing=True, print an offset/hex/source listing to stdout.
    """
    cleaned: list[tuple[int, str]] = []
    for i, raw in enumerate(source.split("\n"), 1):
        stripped = _strip_comment(raw)
        if stripped:
            cleaned.append((i, stripped))

    # ---- Pass 1: label collection ----
    labels: dict[str, int] = {}
    body: list[tuple[int, str]] = []
    pc = 0
    for lineno, text in cleaned:
        if text.endswith(":"):
            lbl = text[:-1].strip()
            if lbl in labels:
                raise AsmError(lineno, f"Duplicate label: {lbl}")
            labels[lbl] = pc
            continue
        size = _directive_size(lineno, text)
        pc += 1 if size is None else size
        body.append((lineno, text))

    # ---- Pass 2: emit platters ----
    words: list[int] = []
    listing_lines = []  # (offset, words, source_text)
    for lineno, text in body:
        start = len(words)
        lower = text.lower()
        if lower.startswith(".word"):
            for tok in _split_ops(text[5:]):
                words.append(_resolve(lineno, tok, labels) & MASK32)
        elif lower.startswith(".asciiz"):
            words.extend(_parse_string(lineno, text[7:]))
            words.append(0)
        elif lower.startswith(".ascii"):
            words.extend(_parse_string(lineno, text[6:]))
        else:
            words.append(_emit_instruction(lineno, text, labels))
        if listing:
            listing_lines.append((start, words[start:], text))

    if listing:
        addr_labels: dict[int, list[str]] = {}
        for lbl, addr in labels.items():
            addr_labels.setdefault(addr, []).append(lbl)
        for addr, emitted, src in listing_lines:
            for lbl in addr_labels.pop(addr, []):
                print(f"                      {lbl}:")
            hexstr = " ".join(f"{w:08X}" for w in emitted[:2])
            if len(emitted) > 2:
                hexstr += " ..."
            print(f"  {addr:06X}  {hexstr:<20s}  {src}")
        for addr in sorted(addr_labels):
            for lbl in addr_labels[addr]:
                print(f"                      {lbl}:")

    return words


def assemble(source: str, listing: bool = False) -> bytearray:
    """Assemble *source* into a loadable big-endian program image."""
    return bytearray(words_to_bytes(assemble_words(source, listing)))


# ---------------------------------------------------------------------------
#  Instruction emission (pass 2)
# ---------------------------------------------------------------------------

def _resolve(lineno: int, tok: str, labels: dict[str, int]) -> int:
    """Resolve a token that is either an immediate or a label reference."""
    tok = tok.strip()
    if tok in labels:
        return labels[tok]
    try:
        return _parse_imm(tok)
    except ValueError:
        raise AsmError(lineno, f"Undefined label or bad value: {tok!r}") from None


def _emit_instruction(lineno: int, text: str, labels: dict[str, int]) -> int:
    mnem, rest = _split_mnemonic(text)
    op = OPCODES.get(mnem.lower())
    if op is None:
        raise AsmError(lineno, f"Unknown mnemonic: {mnem!r}")
    ops = _split_ops(rest)

    try:
        if op == OP_ORTHO:
            if len(ops) != 2:
                raise AsmError(lineno, "ortho takes a register and a value")
            value = _resolve(lineno, ops[1], labels)
            if not 0 <= value <= IMM_MASK:
                raise AsmError(lineno, f"Immediate {value} does not fit in 25 bits")
            return encode_immediate(_parse_reg(ops[0]), value)

        fields = _OPERANDS.get(op, _THREE_REG)
        if len(ops) != len(fields):
            raise AsmError(lineno, f"{mnem} takes {len(fields)} register operand(s), "
                                   f"got {len(ops)}")
        regs = {name: _parse_reg(tok) for name, tok in zip(fields, ops)}
        return encode_standard(op, **regs)
    except ValueError as e:
        raise AsmError(lineno, str(e)) from e
