"""
UM-32 System
============
Wires together:
  - the program loader (big-endian platter images)
  - the UM32 engine (um32.py)
  - the console device (console.py) and its line source

A UMSystem is single-use.  Once its machine halts or faults, build a new
one for the next run.
"""

from __future__ import annotations
import logging
import os
import struct
from typing import BinaryIO, Iterable, Optional, Union

from console import Console
from faults import Fault, LoadError, exit_code_for, EXIT_STOPPED
from line_sources import LineSource
from um32 import UM32, RUNNING

log = logging.getLogger(__name__)

PLATTER_BYTES = 4

ProgramImage = Union[bytes, bytearray, str, os.PathLike, Iterable[int]]


# ---------------------------------------------------------------------------
#  Loader
# ---------------------------------------------------------------------------

def words_from_bytes(data: bytes | bytearray) -> list[int]:
    """Split a program image into big-endian 32-bit platters."""
    if len(data) % PLATTER_BYTES:
        raise LoadError(
            f"Program length {len(data)} is not a multiple of {PLATTER_BYTES} "
            f"({len(data) % PLATTER_BYTES} trailing bytes)")
    return list(struct.unpack(f">{len(data) // PLATTER_BYTES}I", data))


def words_to_bytes(words: Iterable[int]) -> bytes:
    words = list(words)
    return struct.pack(f">{len(words)}I", *words)


def load_program_file(path: str | os.PathLike[str]) -> list[int]:
    """Read a program image from disk."""
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise LoadError(f"Cannot read program '{path}': {e.strerror or e}") from e
    words = words_from_bytes(data)
    log.info("loaded %d platters from '%s'", len(words), path)
    return words


def _program_words(program: Optional[ProgramImage]) -> list[int]:
    if program is None:
        return []
    if isinstance(program, (bytes, bytearray)):
        return words_from_bytes(program)
    if isinstance(program, (str, os.PathLike)):
        return load_program_file(program)
    return list(program)


# ---------------------------------------------------------------------------
#  System
# ---------------------------------------------------------------------------

class UMSystem:
    """One machine, its console, and the program it was booted with."""

    def __init__(self, program: Optional[ProgramImage] = None,
                 line_source: Optional[LineSource] = None,
                 sink: Optional[BinaryIO] = None,
                 encoding: str = "utf-8"):
        self.console = Console(line_source, sink=sink, encoding=encoding)
        self.cpu = UM32(_program_words(program), self.console)

    # -- State --

    @property
    def state(self) -> str:
        return self.cpu.state

    @property
    def halted(self) -> bool:
        return self.cpu.halted

    @property
    def fault(self) -> Optional[Fault]:
        return self.cpu.fault

    # -- Execution --

    def step(self):
        self.cpu.step()

    def run(self, max_steps: Optional[int] = None) -> int:
        """Run the machine; faults propagate after being recorded."""
        return self.cpu.run(max_steps)

    def run_until_halt(self, max_steps: Optional[int] = None) -> int:
        """Run to completion and return the process exit status.

        The fault, if any, stays available as ``self.fault``.
        """
        try:
            self.cpu.run(max_steps)
        except Fault:
            return exit_code_for(self.cpu.fault)
        if self.cpu.state == RUNNING:
            return EXIT_STOPPED
        return exit_code_for(None)

    # -- Output / teardown --

    def get_tx_output(self) -> str:
        """Get any console output that has been produced."""
        return self.console.drain_tx()

    def close(self):
        self.console.close()

    def dump_state(self) -> str:
        seg = self.cpu.segments
        lines = ["=== Registers ===", self.cpu.dump_regs()]
        lines.append(f"  Arrays: {len(seg)} live, freelist={list(seg.freelist)}")
        lines.append(f"  Program: {len(seg.program)} platters")
        lines.append(f"  Console: in={self.console.bytes_in} "
                     f"out={self.console.bytes_out} eof={self.console.eof}")
        if self.cpu.fault is not None:
            lines.append(f"  Fault: {self.cpu.fault.kind}: {self.cpu.fault}")
        return "\n".join(lines)
