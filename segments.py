"""
UM-32 Segment Table
===================
Owns every array the running program can reach.  Arrays are named by
surrogate handles, never by address:

  - the arena is a list indexed by handle; slot 0 is the running program
  - a retired slot holds ``None`` until its handle is recycled
  - retired handles queue in a FIFO freelist, so reuse order is fixed

A handle is live (slot holds a list) or retired (slot is None and the
handle is in the freelist), never both.  Handle 0 is never retired.
"""

from __future__ import annotations
import logging
from collections import deque
from typing import Iterable, Optional

from faults import InvalidHandle, OutOfBoundsIndex

log = logging.getLogger(__name__)

MASK32 = 0xFFFF_FFFF


class SegmentTable:
    """Handle-indexed arena of platter arrays with FIFO handle reuse."""

    def __init__(self, program: Optional[Iterable[int]] = None):
        self._arena: list[Optional[list[int]]] = [
            list(program) if program is not None else []]
        self._freelist: deque[int] = deque()

    # -- Lookup --

    def _segment(self, handle: int) -> list[int]:
        if 0 <= handle < len(self._arena):
            seg = self._arena[handle]
            if seg is not None:
                return seg
        raise InvalidHandle(handle)

    def is_live(self, handle: int) -> bool:
        return 0 <= handle < len(self._arena) and self._arena[handle] is not None

    def size(self, handle: int) -> int:
        return len(self._segment(handle))

    @property
    def program(self) -> list[int]:
        """Segment 0, the array instructions are fetched from."""
        return self._arena[0]

    @property
    def freelist(self) -> tuple[int, ...]:
        return tuple(self._freelist)

    def live_handles(self) -> list[int]:
        return [h for h, seg in enumerate(self._arena) if seg is not None]

    def __len__(self) -> int:
        return len(self._arena) - len(self._freelist)

    # -- Allocation --

    def allocate(self, size: int) -> int:
        """Create a zero-filled array of *size* platters and return its handle.

        Sizes are not capped; a size the host cannot hold raises MemoryError.
        """
        if self._freelist:
            handle = self._freelist.popleft()
            self._arena[handle] = [0] * size
            log.debug("alloc reuse handle=%d size=%d", handle, size)
        else:
            handle = len(self._arena)
            self._arena.append([0] * size)
            log.debug("alloc new handle=%d size=%d", handle, size)
        return handle

    def free(self, handle: int):
        """Abandon a live, non-zero handle.  Its contents are discarded."""
        if handle == 0:
            raise InvalidHandle(handle, "Array 0 cannot be abandoned")
        self._segment(handle)
        self._arena[handle] = None
        self._freelist.append(handle)
        log.debug("free handle=%d freelist=%s", handle, list(self._freelist))

    # -- Access --

    def read(self, handle: int, index: int) -> int:
        seg = self._segment(handle)
        if index >= len(seg):
            raise OutOfBoundsIndex(handle, index, len(seg))
        return seg[index]

    def write(self, handle: int, index: int, value: int):
        seg = self._segment(handle)
        if index >= len(seg):
            raise OutOfBoundsIndex(handle, index, len(seg))
        seg[index] = value & MASK32

    def duplicate(self, handle: int) -> list[int]:
        return list(self._segment(handle))

    def replace_segment(self, handle: int, content: Iterable[int]):
        """Replace an array's entire contents with a copy of *content*."""
        self._segment(handle)
        self._arena[handle] = list(content)

    def dump(self, handle: int, start: int = 0, count: int = 8) -> list[int]:
        seg = self._segment(handle)
        return seg[start:start + count]
