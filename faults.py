"""
UM-32 Error Taxonomy
====================
Every condition that ends a run abnormally is a ``Fault``.  Faults are
terminal: the engine records the fault, stops, and hands it to the caller.
The CLI is the only place that turns a fault into a message and an exit
status.

  UM32Error
  ├─ HaltError            - stepping a machine that already halted
  └─ Fault
     ├─ LoadError         - malformed or unreadable program image
     ├─ UnknownOpcode     - opcode 14 or 15
     ├─ DivisionByZero    - op 5 with a zero divisor
     ├─ InvalidHandle     - dead, unknown or reserved segment handle
     ├─ OutOfBoundsIndex  - index past the end of a segment
     └─ InvalidOutputByte - op 10 with a value above 255
"""

from __future__ import annotations
from typing import Optional

# Process exit statuses.  0 is a clean halt.
EXIT_HALTED        = 0
EXIT_STOPPED       = 1   # step budget ran out, machine still running
EXIT_LOAD          = 3
EXIT_UNKNOWN_OP    = 4
EXIT_DIV_ZERO      = 5
EXIT_BAD_HANDLE    = 6
EXIT_OUT_OF_BOUNDS = 7
EXIT_BAD_OUTPUT    = 8
EXIT_INTERRUPTED   = 130


class UM32Error(Exception):
    """Base for everything the emulator raises."""
    pass


class HaltError(UM32Error):
    pass


class Fault(UM32Error):
    """A terminal, unrecoverable condition with a specific reason."""

    kind = "fault"
    exit_code = 2

    def __init__(self, message: str = "", pc: Optional[int] = None):
        self.pc = pc
        super().__init__(message or self.kind)

    def __str__(self) -> str:
        msg = super().__str__()
        if self.pc is not None:
            return f"{msg} (at offset {self.pc:#x})"
        return msg


class LoadError(Fault):
    kind = "load-error"
    exit_code = EXIT_LOAD


class UnknownOpcode(Fault):
    kind = "unknown-opcode"
    exit_code = EXIT_UNKNOWN_OP

    def __init__(self, opcode: int, message: str = "", pc: Optional[int] = None):
        self.opcode = opcode
        super().__init__(message or f"Unknown opcode {opcode}", pc)


class DivisionByZero(Fault):
    kind = "division-by-zero"
    exit_code = EXIT_DIV_ZERO


class InvalidHandle(Fault):
    kind = "invalid-handle"
    exit_code = EXIT_BAD_HANDLE

    def __init__(self, handle: int, message: str = "", pc: Optional[int] = None):
        self.handle = handle
        super().__init__(message or f"Invalid array handle {handle:#x}", pc)


class OutOfBoundsIndex(Fault):
    kind = "out-of-bounds"
    exit_code = EXIT_OUT_OF_BOUNDS

    def __init__(self, handle: int, index: int, size: int,
                 message: str = "", pc: Optional[int] = None):
        self.handle = handle
        self.index = index
        self.size = size
        super().__init__(
            message or f"Index {index:#x} out of range for array {handle:#x} "
                       f"(size {size})", pc)


class InvalidOutputByte(Fault):
    kind = "invalid-output"
    exit_code = EXIT_BAD_OUTPUT

    def __init__(self, value: int, message: str = "", pc: Optional[int] = None):
        self.value = value
        super().__init__(message or f"Output value {value:#x} is not a byte", pc)


def exit_code_for(fault: Optional[Fault]) -> int:
    """Process exit status for a finished run (``None`` means halted)."""
    if fault is None:
        return EXIT_HALTED
    return fault.exit_code
