"""Tracks byte positions inside the segment currently being read."""

from dataclasses import dataclass


@dataclass
class Position:
    pos: int = 0    # next byte to read from the file
    last: int = 0   # start of the most recently split line
    next: int = 0   # start of the line after it
    skip: int = 0   # lines starting before this offset are not emitted

    def reset(self, byte_pos: int = 0) -> None:
        """Read from *byte_pos* and emit everything from there on."""
        self.pos = byte_pos
        self.last = byte_pos
        self.next = byte_pos
        self.skip = 0

    def resume(self, offset: int, seekable: bool = True) -> None:
        """Resume emitting at line offset *offset*.

        Seekable segments start reading right there. Compressed segments
        have to be decoded from the beginning, so reading starts at 0 and
        the lines before *offset* are suppressed instead.
        """
        start = offset if seekable else 0
        self.pos = start
        self.last = start
        self.next = start
        self.skip = offset

    def advance(self, consumed: int) -> int:
        """Account for one split line of *consumed* bytes. Returns its start."""
        self.last = self.next
        self.next += consumed
        return self.last

    def should_emit(self) -> bool:
        return self.last >= self.skip

    def clear(self) -> None:
        self.reset(0)
