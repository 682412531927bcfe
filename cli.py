#!/usr/bin/env python3
"""
UM-32 Runner / Monitor
======================
Command-line front end for the UM-32 emulator.

Provides:
  - Running a program image with the terminal wired to the console
  - Interactive line input with persistent history
  - A debug monitor: step / run / breakpoint execution, register and
    array inspection, disassembly
  - Assembling source files into program images

Usage:
  python cli.py PROGRAM [-v] [--history FILE] [--input FILE] [--monitor]
  python cli.py --assemble SRC OUT [--listing]

Environment:
  UM32_HISTORY   default history file (default: history.txt)
  UM32_LOG       default log level name (default: WARNING)
"""

from __future__ import annotations
import argparse
import cmd
import logging
import os
import shlex
import sys
from pathlib import Path
from typing import Optional

from asm import assemble, AsmError
from decoder import OP_IN, decode, format_instruction
from faults import (
    Fault, HaltError, LoadError, UnknownOpcode,
    EXIT_INTERRUPTED, EXIT_STOPPED, EXIT_LOAD,
)
from line_sources import (
    DEFAULT_HISTORY, LineSource, ReadlineSource, ScriptedLineSource,
    StreamLineSource,
)
from system import UMSystem, load_program_file

log = logging.getLogger("um32")

# ---------------------------------------------------------------------------
#  Disassembler
# ---------------------------------------------------------------------------

def disasm_one(word: int) -> str:
    """Disassemble one platter."""
    try:
        return format_instruction(decode(word))
    except UnknownOpcode:
        return f".word {word:#010x}"


# ---------------------------------------------------------------------------
#  Monitor
# ---------------------------------------------------------------------------

class UMMonitor(cmd.Cmd):
    """Interactive debug monitor for one UM-32 machine."""

    intro = (
        "\n"
        "UM-32 Monitor.  Type 'help' for commands, 'quit' to exit.\n"
    )
    prompt = "UM32> "

    def __init__(self, system: UMSystem, source: Optional[ScriptedLineSource] = None,
                 stdout=None):
        super().__init__(stdout=stdout)
        self.sys = system
        self.source = source
        self.breakpoints: set[int] = set()

        # Show console output in real time
        self.sys.console.on_tx = self._tx_handler

    def _print(self, text: str = ""):
        self.stdout.write(text + "\n")

    def _tx_handler(self, byte_val: int):
        ch = chr(byte_val) if 0x20 <= byte_val < 0x7F or byte_val in (10, 13, 9) else '.'
        self.stdout.write(ch)
        self.stdout.flush()

    # -- Parsing helpers --

    def _parse_int(self, s: str) -> int:
        s = s.strip().lower()
        if s == "pc":
            return self.sys.cpu.pc
        if s.startswith("r") and s[1:].isdigit():
            return self.sys.cpu.regs[int(s[1:]) & 7]
        return int(s, 0)

    def _args(self, arg: str) -> Optional[list[int]]:
        try:
            return [self._parse_int(p) for p in shlex.split(arg)]
        except ValueError as e:
            self._print(f"Error: {e}")
            return None

    def _waiting_for_input(self) -> bool:
        """True if the next instruction would block on an empty queue."""
        cpu = self.sys.cpu
        console = self.sys.console
        if cpu.finished or console.has_rx_data or console.eof:
            return False
        if self.source is None or self.source.remaining or self.source.interrupted:
            return False
        try:
            return decode(cpu.fetch()).op == OP_IN
        except Fault:
            return False

    def _step_one(self) -> bool:
        """Step once, reporting terminal states.  False stops the caller."""
        try:
            self.sys.step()
        except HaltError:
            self._print("Machine is halted.")
            return False
        except Fault as e:
            self._print(f"\nFault: {e.kind}: {e}")
            return False
        if self.sys.halted:
            self._print(f"\nMachine halted after {self.sys.cpu.steps} steps.")
            return False
        return True

    # ================================================================
    #  Commands
    # ================================================================

    # -- Execution --

    def do_step(self, arg):
        """Step N instructions: step [count]"""
        args = self._args(arg)
        if args is None:
            return
        count = args[0] if args else 1
        for _ in range(count):
            if self._waiting_for_input():
                self._print("Waiting for input.  Use 'send <text>' or 'eof'.")
                break
            pc = self.sys.cpu.pc
            program = self.sys.cpu.segments.program
            if pc < len(program) and not self.sys.cpu.finished:
                word = program[pc]
                self._print(f"  {pc:#010x}: {word:08x}  {disasm_one(word)}")
            if not self._step_one():
                break

    def do_run(self, arg):
        """Run until halt/fault/breakpoint/input wait: run [max_steps]"""
        args = self._args(arg)
        if args is None:
            return
        max_steps = args[0] if args else 10_000_000
        total = 0
        while total < max_steps:
            if self.sys.cpu.finished:
                self._print(f"Machine is {self.sys.state}.")
                break
            if total and self.sys.cpu.pc in self.breakpoints:
                self._print(f"\nBreakpoint hit at {self.sys.cpu.pc:#010x}")
                break
            if self._waiting_for_input():
                self._print(f"\nWaiting for input after {total} steps.")
                self._print("  Use 'send <text>' to provide input, then 'run' to continue.")
                break
            if not self._step_one():
                break
            total += 1
        else:
            self._print(f"\nStopped after {total} steps.")

    def do_continue(self, arg):
        """Alias for 'run'."""
        self.do_run(arg)
    do_c = do_continue

    # -- Breakpoints --

    def do_bp(self, arg):
        """Set breakpoint: bp <offset>"""
        if not arg.strip():
            if self.breakpoints:
                self._print("Breakpoints:")
                for a in sorted(self.breakpoints):
                    self._print(f"  {a:#010x}")
            else:
                self._print("No breakpoints set.")
            return
        args = self._args(arg)
        if not args:
            return
        self.breakpoints.add(args[0])
        self._print(f"Breakpoint set at {args[0]:#010x}")

    def do_bpd(self, arg):
        """Delete breakpoint: bpd <offset|all>"""
        if arg.strip().lower() == "all":
            self.breakpoints.clear()
            self._print("All breakpoints cleared.")
            return
        args = self._args(arg)
        if not args:
            return
        self.breakpoints.discard(args[0])
        self._print(f"Breakpoint at {args[0]:#010x} removed.")

    # -- Inspection --

    def do_regs(self, arg):
        """Show registers and execution pointer."""
        self._print(self.sys.cpu.dump_regs())

    def do_arrays(self, arg):
        """List live arrays and the freelist."""
        seg = self.sys.cpu.segments
        for h in seg.live_handles():
            self._print(f"  [{h:#x}] {seg.size(h)} platters")
        self._print(f"  freelist: {list(seg.freelist)}")

    def do_dump(self, arg):
        """Dump array contents: dump <handle> [start] [count]"""
        args = self._args(arg)
        if not args:
            self._print("Usage: dump <handle> [start] [count]")
            return
        handle = args[0]
        start = args[1] if len(args) > 1 else 0
        count = args[2] if len(args) > 2 else 32
        try:
            words = self.sys.cpu.segments.dump(handle, start, count)
        except Fault as e:
            self._print(f"Error: {e}")
            return
        for row in range(0, len(words), 4):
            chunk = " ".join(f"{w:08x}" for w in words[row:row + 4])
            self._print(f"  {start + row:#010x}: {chunk}")

    def do_disasm(self, arg):
        """Disassemble array 0: disasm [offset] [count]
        Defaults to the execution pointer, 16 instructions."""
        args = self._args(arg)
        if args is None:
            return
        cpu = self.sys.cpu
        addr = args[0] if args else cpu.pc
        count = args[1] if len(args) > 1 else 16
        program = cpu.segments.program
        for off in range(addr, min(addr + count, len(program))):
            marker = ">>>" if off == cpu.pc else "   "
            self._print(f"  {marker} {off:#010x}: {program[off]:08x}  "
                        f"{disasm_one(program[off])}")

    def do_status(self, arg):
        """Show full machine status."""
        self._print(self.sys.dump_state())

    # -- Input --

    def do_send(self, arg):
        """Queue one input line for the machine: send <text>"""
        if self.source is None:
            self._print("Input comes from the terminal in this session.")
            return
        self.source.push(arg)
        self._print(f"  Queued {len(arg.encode()) + 1} bytes of input.")

    def do_eof(self, arg):
        """Signal end-of-input to the machine."""
        if self.source is None:
            self._print("Input comes from the terminal in this session.")
            return
        self.source.notify_interrupt()
        self._print("  End of input signalled.")

    # -- Misc --

    def do_quit(self, arg):
        """Exit the monitor."""
        self._print("Goodbye.")
        return True
    do_exit = do_quit
    do_q = do_quit

    def do_EOF(self, arg):
        self._print()
        return self.do_quit(arg)

    def default(self, line):
        self._print(f"Unknown command: {line.split()[0]!r}. Type 'help' for available commands.")

    def emptyline(self):
        pass


# ---------------------------------------------------------------------------
#  Logging
# ---------------------------------------------------------------------------

def setup_logging(verbose: int = 0, quiet: bool = False,
                  log_file: Optional[str] = None):
    """Configure logging from -v / -q / --log-file and UM32_LOG."""
    if quiet:
        level = logging.ERROR
    elif verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG
    else:
        name = os.environ.get("UM32_LOG", "WARNING").upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            level = logging.WARNING

    handlers: list[logging.Handler] = []
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    handlers.append(console)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        handlers.append(file_handler)
        level = logging.DEBUG if verbose >= 2 else min(level, logging.INFO)

    logging.basicConfig(level=level, handlers=handlers, force=True)


# ---------------------------------------------------------------------------
#  Main
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="um32",
        description="UM-32 universal machine emulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  um32 sandmark.umz\n"
               "  um32 codex.umz --history ~/.um32_history\n"
               "  um32 program.um --input answers.txt\n"
               "  um32 program.um --monitor\n"
               "  um32 --assemble hello.uma hello.um --listing\n"
               "\n"
               "Exit status: 0 on halt, 3-8 identify the fault kind.\n"
    )
    parser.add_argument("program", nargs="?", default=None,
                        help="Program image (big-endian 32-bit platters)")
    parser.add_argument("--verbose", "-v", action="count", default=0,
                        help="Increase verbosity (-v info, -vv per-instruction trace)")
    parser.add_argument("--quiet", "-q", action="store_true",
                        help="Log errors only")
    parser.add_argument("--log-file", type=str, default=None,
                        help="Also write the log to FILE")
    parser.add_argument("--history", type=str,
                        default=os.environ.get("UM32_HISTORY", DEFAULT_HISTORY),
                        help="Input history file (default: $UM32_HISTORY or history.txt)")
    parser.add_argument("--no-history", action="store_true",
                        help="Neither read nor write the history file")
    parser.add_argument("--input", type=str, default=None, metavar="FILE",
                        help="Read input lines from FILE instead of the terminal")
    parser.add_argument("--max-steps", type=int, default=None, metavar="N",
                        help="Stop after N instructions")
    parser.add_argument("--monitor", action="store_true",
                        help="Load the program into the debug monitor")
    parser.add_argument("--assemble", nargs=2, metavar=("SRC", "OUT"),
                        help="Assemble SRC to program image OUT and exit")
    parser.add_argument("--listing", "-l", action="store_true",
                        help="Print assembly listing (with --assemble)")
    return parser


def make_line_source(args: argparse.Namespace) -> LineSource:
    if args.input:
        return StreamLineSource.from_path(args.input)
    if sys.stdin.isatty():
        return ReadlineSource(None if args.no_history else args.history)
    return StreamLineSource(sys.stdin)


def _assemble_file(src_path: str, out_path: str, listing: bool) -> int:
    try:
        with open(src_path, "r", encoding="utf-8") as f:
            source = f.read()
    except OSError as e:
        print(f"um32: cannot read source '{src_path}': {e.strerror or e}", file=sys.stderr)
        return 1
    try:
        code = assemble(source, listing=listing)
    except AsmError as e:
        print(f"Assembly error: {e}", file=sys.stderr)
        return 1
    try:
        with open(out_path, "wb") as f:
            f.write(code)
    except OSError as e:
        print(f"um32: cannot write '{out_path}': {e.strerror or e}", file=sys.stderr)
        return 1
    print(f"Assembled {src_path} → {out_path} ({len(code) // 4} platters)")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args, extra = parser.parse_known_args(argv)
    stray = [a for a in extra if not a.startswith("-")]
    if stray:
        parser.error(f"expected exactly one program file, got extra {stray[0]!r}")

    setup_logging(args.verbose, args.quiet, args.log_file)

    # Dash options nobody defined are accepted and ignored.
    for opt in extra:
        log.debug("ignoring option %s", opt)

    # ---- Assemble-only mode -------------------------------------------
    if args.assemble:
        return _assemble_file(args.assemble[0], args.assemble[1], args.listing)

    if args.program is None:
        parser.error("a program file is required")

    try:
        program = load_program_file(args.program)
    except LoadError as e:
        print(f"um32: {e}", file=sys.stderr)
        return EXIT_LOAD

    # ---- Monitor mode -------------------------------------------------
    if args.monitor:
        source = ScriptedLineSource()
        system = UMSystem(program, line_source=source)
        monitor = UMMonitor(system, source)
        try:
            monitor.cmdloop()
        except KeyboardInterrupt:
            print("\nInterrupted. Goodbye.")
        return 0

    # ---- Run mode -----------------------------------------------------
    try:
        source = make_line_source(args)
    except OSError as e:
        print(f"um32: cannot read input '{args.input}': {e.strerror or e}", file=sys.stderr)
        return EXIT_LOAD
    system = UMSystem(program, line_source=source, sink=sys.stdout.buffer)
    try:
        status = system.run_until_halt(args.max_steps)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        status = EXIT_INTERRUPTED
    finally:
        system.close()

    if system.fault is not None:
        print(f"um32: {system.fault.kind}: {system.fault}", file=sys.stderr)
    elif status == EXIT_STOPPED:
        log.warning("stopped after %d steps; machine still running",
                    system.cpu.steps)
    log.info("exit %d", status)
    return status


if __name__ == "__main__":
    sys.exit(main())
