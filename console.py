"""
UM-32 Console - the machine's only I/O device
==============================================
Bridges the Input and Output instructions to the host:

  Output (op 10)  - one byte, written to the sink and flushed at once
  Input  (op 11)  - one byte from the pending queue; an empty queue pulls
                    one more line from the line source, terminator added

End-of-input is sticky: once the line source reports it, every further
read returns EOF_WORD without asking the source again.
"""

from __future__ import annotations
import logging
from collections import deque
from typing import BinaryIO, Callable, Optional

from faults import InvalidOutputByte
from line_sources import LineSource, ScriptedLineSource

log = logging.getLogger(__name__)

EOF_WORD = 0xFFFF_FFFF
NEWLINE = 0x0A
TX_HISTORY = 1 << 16   # bytes kept for drain_tx()


class Console:
    """Line-buffered input, unbuffered byte output."""

    def __init__(self, line_source: Optional[LineSource] = None,
                 sink: Optional[BinaryIO] = None,
                 encoding: str = "utf-8"):
        self.line_source = line_source if line_source is not None else ScriptedLineSource()
        self.sink = sink
        self.encoding = encoding
        self.pending_input: deque[int] = deque()
        self.tx_buffer: deque[int] = deque(maxlen=TX_HISTORY)
        self.eof = False
        self.bytes_in = 0
        self.bytes_out = 0

        # Callbacks
        self.on_tx: Optional[Callable[[int], None]] = None  # called with each output byte

    # -- Output --

    def write_byte(self, value: int):
        if not 0 <= value <= 0xFF:
            raise InvalidOutputByte(value)
        self.tx_buffer.append(value)
        self.bytes_out += 1
        if self.sink is not None:
            self.sink.write(bytes((value,)))
            self.sink.flush()
        if self.on_tx:
            self.on_tx(value)

    def drain_tx(self) -> str:
        """Return recorded output as text and clear the record."""
        out = bytes(self.tx_buffer).decode(self.encoding, errors="replace")
        self.tx_buffer.clear()
        return out

    # -- Input --

    def inject_input(self, data: bytes | str):
        """Queue bytes ahead of anything the line source would supply."""
        if isinstance(data, str):
            data = data.encode(self.encoding, errors="replace")
        self.pending_input.extend(data)

    @property
    def has_rx_data(self) -> bool:
        return len(self.pending_input) > 0

    def _fill(self) -> bool:
        line = self.line_source.next_line()
        if line is None:
            self.eof = True
            log.info("end of input from %s", self.line_source.name)
            return False
        self.inject_input(line)
        self.pending_input.append(NEWLINE)
        return True

    def read_byte(self) -> int:
        """Next input byte, or EOF_WORD once input is exhausted."""
        if not self.pending_input:
            if self.eof or not self._fill():
                return EOF_WORD
        self.bytes_in += 1
        return self.pending_input.popleft()

    def close(self):
        self.line_source.close()
