"""
UM-32 Universal Machine Emulator
================================
A step emulator for the 14-instruction, 8-register universal machine.
Programs are sequences of 32-bit platters held in array 0; further arrays
are created and abandoned at run time through surrogate handles.

The fetch/decode/execute loop: read the platter at the execution pointer
in array 0, decode it, advance the pointer, then apply the operation.
Advancing first lets Load Program (op 12) overwrite the pointer.

A machine is running until it executes Halt or hits a fault.  Both are
terminal: a finished machine is never resumed.
"""

from __future__ import annotations
import logging
from typing import Callable, Iterable, Optional

from console import Console
from decoder import (
    NUM_OPCODES, NUM_REGS, Immediate, Instruction, Standard, decode,
    format_instruction,
)
from faults import DivisionByZero, Fault, HaltError, OutOfBoundsIndex
from segments import SegmentTable

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

MASK32 = 0xFFFF_FFFF

# Machine states
RUNNING = "running"
HALTED  = "halted"
FAULTED = "faulted"


def u32(v: int) -> int:
    """Mask to unsigned 32 bits."""
    return v & MASK32


# ---------------------------------------------------------------------------
#  Machine
# ---------------------------------------------------------------------------

class UM32:
    """Universal machine: eight registers, an execution pointer, arrays."""

    def __init__(self, program: Iterable[int] = (),
                 console: Optional[Console] = None):
        self.regs: list[int] = [0] * NUM_REGS
        self.pc: int = 0
        self.segments = SegmentTable(program)
        self.console = console if console is not None else Console()

        # State
        self.halted: bool = False
        self.fault: Optional[Fault] = None
        self.steps: int = 0

        # Callbacks
        self.on_halt: Optional[Callable[[], None]] = None

        # One handler per opcode, indexed by opcode number
        self._dispatch: tuple[Callable[[Instruction], None], ...] = (
            self._exec_cmov,
            self._exec_index,
            self._exec_amend,
            self._exec_add,
            self._exec_mul,
            self._exec_div,
            self._exec_nand,
            self._exec_halt,
            self._exec_alloc,
            self._exec_free,
            self._exec_out,
            self._exec_in,
            self._exec_load,
            self._exec_ortho,
        )
        assert len(self._dispatch) == NUM_OPCODES

    @property
    def state(self) -> str:
        if self.fault is not None:
            return FAULTED
        if self.halted:
            return HALTED
        return RUNNING

    @property
    def finished(self) -> bool:
        return self.halted or self.fault is not None

    # -- Fetch --

    def fetch(self) -> int:
        program = self.segments.program
        if self.pc >= len(program):
            raise OutOfBoundsIndex(
                0, self.pc, len(program),
                f"Execution pointer {self.pc:#x} past end of program "
                f"({len(program)} platters)")
        return program[self.pc]

    # -- Step / run --

    def step(self):
        """Execute one instruction."""
        if self.fault is not None:
            raise self.fault
        if self.halted:
            raise HaltError("Machine is halted")

        pc = self.pc
        try:
            word = self.fetch()
            inst = decode(word)
            if log.isEnabledFor(logging.DEBUG):
                log.debug("%08x: %08x  %s", pc, word, format_instruction(inst))
            self.pc = pc + 1
            self._dispatch[inst.op](inst)
        except Fault as e:
            if e.pc is None:
                e.pc = pc
            self.fault = e
            log.info("fault: %s", e)
            raise
        self.steps += 1

    def run(self, max_steps: Optional[int] = None) -> int:
        """Run until Halt, a fault, or *max_steps*.  Returns steps executed.

        Faults are recorded on the machine and re-raised.
        """
        executed = 0
        while not self.halted:
            if max_steps is not None and executed >= max_steps:
                break
            self.step()
            executed += 1
        return executed

    # =====================================================================
    #  Operations
    # =====================================================================

    # -- 0: Conditional Move --
    def _exec_cmov(self, inst: Standard):
        if self.regs[inst.c] != 0:
            self.regs[inst.a] = self.regs[inst.b]

    # -- 1: Array Index --
    def _exec_index(self, inst: Standard):
        self.regs[inst.a] = self.segments.read(self.regs[inst.b],
                                               self.regs[inst.c])

    # -- 2: Array Amendment --
    def _exec_amend(self, inst: Standard):
        self.segments.write(self.regs[inst.a], self.regs[inst.b],
                            self.regs[inst.c])

    # -- 3: Addition --
    def _exec_add(self, inst: Standard):
        self.regs[inst.a] = u32(self.regs[inst.b] + self.regs[inst.c])

    # -- 4: Multiplication --
    def _exec_mul(self, inst: Standard):
        self.regs[inst.a] = u32(self.regs[inst.b] * self.regs[inst.c])

    # -- 5: Division --
    def _exec_div(self, inst: Standard):
        divisor = self.regs[inst.c]
        if divisor == 0:
            raise DivisionByZero("Division by zero")
        self.regs[inst.a] = self.regs[inst.b] // divisor

    # -- 6: Not-And --
    def _exec_nand(self, inst: Standard):
        self.regs[inst.a] = u32(~(self.regs[inst.b] & self.regs[inst.c]))

    # -- 7: Halt --
    def _exec_halt(self, inst: Standard):
        self.halted = True
        log.info("halted after %d steps", self.steps + 1)
        if self.on_halt:
            self.on_halt()

    # -- 8: Allocation --
    def _exec_alloc(self, inst: Standard):
        self.regs[inst.b] = self.segments.allocate(self.regs[inst.c])

    # -- 9: Abandonment --
    def _exec_free(self, inst: Standard):
        self.segments.free(self.regs[inst.c])

    # -- 10: Output --
    def _exec_out(self, inst: Standard):
        self.console.write_byte(self.regs[inst.c])

    # -- 11: Input --
    def _exec_in(self, inst: Standard):
        self.regs[inst.c] = self.console.read_byte()

    # -- 12: Load Program --
    def _exec_load(self, inst: Standard):
        handle = self.regs[inst.b]
        if handle != 0:
            self.segments.replace_segment(0, self.segments.duplicate(handle))
            log.debug("loaded array %d as program (%d platters)",
                      handle, len(self.segments.program))
        self.pc = self.regs[inst.c]

    # -- 13: Orthography --
    def _exec_ortho(self, inst: Immediate):
        self.regs[inst.a] = inst.value

    # -- Debug / introspection --

    def dump_regs(self) -> str:
        lines = []
        for i in range(0, NUM_REGS, 4):
            lines.append("  " + "  ".join(
                f"R{j} = {self.regs[j]:#010x}" for j in range(i, i + 4)))
        lines.append(f"  PC = {self.pc:#010x}  state={self.state}  "
                     f"steps={self.steps}")
        return "\n".join(lines)

    def __str__(self) -> str:
        regs = " ".join(f"reg{i}:{v}" for i, v in enumerate(self.regs))
        return f"pc {self.pc} {regs}"
