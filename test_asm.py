#!/usr/bin/env python3
"""Tests for the UM-32 assembler."""
import contextlib
import io
import unittest

from asm import AsmError, assemble, assemble_words
from decoder import (
    OP_ADD, OP_ALLOC, OP_HALT, OP_INDEX, OP_LOAD, OP_OUT, encode_immediate,
    encode_standard,
)
from system import UMSystem

HELLO = r"""
; print a zero-terminated string stored after the code
        ortho r1, msg       ; cursor
        ortho r2, 1
        ortho r4, loop
loop:
        index r0, r7, r1    ; r7 stays 0: read from the program array
        ortho r6, done
        ortho r5, body
        cmov  r6, r5, r0    ; keep going while the platter is non-zero
        load  r7, r6
body:
        out   r0
        add   r1, r1, r2
        load  r7, r4
done:
        halt
msg:
        .asciiz "Hi;\n"
"""


class TestAssembler(unittest.TestCase):
    def test_single_halt(self):
        self.assertEqual(bytes(assemble("halt")), b"\x70\x00\x00\x00")

    def test_operand_shapes(self):
        words = assemble_words(
            "add r1, r2, r3\nalloc r4, r5\nload r0, r6\nout r7\nhalt")
        self.assertEqual(words, [
            encode_standard(OP_ADD, 1, 2, 3),
            encode_standard(OP_ALLOC, b=4, c=5),
            encode_standard(OP_LOAD, b=0, c=6),
            encode_standard(OP_OUT, c=7),
            encode_standard(OP_HALT),
        ])

    def test_case_insensitive_mnemonics(self):
        self.assertEqual(assemble_words("HALT\nIndex R1, R2, R3"),
                         [encode_standard(OP_HALT),
                          encode_standard(OP_INDEX, 1, 2, 3)])

    def test_ortho_literals(self):
        words = assemble_words("ortho r1, 0x2A\northo r2, 'A'\northo r3, '\\n'\n"
                               "ortho r4, ';'")
        self.assertEqual(words, [encode_immediate(1, 42),
                                 encode_immediate(2, 65),
                                 encode_immediate(3, 10),
                                 encode_immediate(4, ord(";"))])

    def test_labels_resolve_to_offsets(self):
        words = assemble_words("start:\n ortho r0, end\n .word 1, 2, start\nend:\n halt")
        self.assertEqual(words, [encode_immediate(0, 4), 1, 2, 0,
                                 encode_standard(OP_HALT)])

    def test_string_directives(self):
        self.assertEqual(assemble_words('.ascii "ab"\n.asciiz "c"'),
                         [ord("a"), ord("b"), ord("c"), 0])

    def test_listing(self):
        buf = io.StringIO()
        with contextlib.redirect_stdout(buf):
            assemble("top:\n halt", listing=True)
        self.assertIn("top:", buf.getvalue())
        self.assertIn("70000000", buf.getvalue())

    def test_hello_runs(self):
        s = UMSystem(assemble(HELLO))
        self.assertEqual(s.run_until_halt(), 0)
        self.assertEqual(s.get_tx_output(), "Hi;\n")


class TestAssemblerErrors(unittest.TestCase):
    def assertAsmError(self, source: str, line: int, fragment: str):
        with self.assertRaises(AsmError) as cm:
            assemble(source)
        self.assertEqual(cm.exception.line, line)
        self.assertIn(fragment, str(cm.exception))

    def test_unknown_mnemonic(self):
        self.assertAsmError("halt\njump r1", 2, "Unknown mnemonic")

    def test_bad_register(self):
        self.assertAsmError("add r1, r2, r8", 1, "Invalid register")

    def test_operand_count(self):
        self.assertAsmError("out r1, r2", 1, "takes 1 register")

    def test_duplicate_label(self):
        self.assertAsmError("a:\nhalt\na:\nhalt", 3, "Duplicate label")

    def test_undefined_label(self):
        self.assertAsmError("ortho r0, nowhere", 1, "Undefined label")

    def test_immediate_too_large(self):
        self.assertAsmError("ortho r0, 0x2000000", 1, "25 bits")

    def test_unknown_directive(self):
        self.assertAsmError(".byte 1", 1, "Unknown directive")

    def test_unquoted_string(self):
        self.assertAsmError(".ascii hello", 1, "Expected quoted string")


if __name__ == "__main__":
    unittest.main()
