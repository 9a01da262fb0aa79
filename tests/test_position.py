"""Tests for position tracking."""

from logfollow.position import Position


class TestPosition:
    def test_reset_starts_emitting_at_byte(self):
        pos = Position()
        pos.reset(100)
        assert (pos.pos, pos.last, pos.next, pos.skip) == (100, 100, 100, 0)
        assert pos.advance(10) == 100
        assert pos.next == 110
        assert pos.should_emit()

    def test_resume_seekable_reads_from_offset(self):
        pos = Position()
        pos.resume(42)
        assert (pos.pos, pos.next, pos.skip) == (42, 42, 42)
        pos.advance(5)
        assert pos.should_emit()

    def test_resume_unseekable_suppresses_earlier_lines(self):
        pos = Position()
        pos.resume(12, seekable=False)
        assert (pos.pos, pos.skip) == (0, 12)
        pos.advance(6)
        assert not pos.should_emit()
        pos.advance(6)
        assert not pos.should_emit()
        pos.advance(6)
        assert pos.last == 12
        assert pos.should_emit()

    def test_clear(self):
        pos = Position(pos=5, last=3, next=5, skip=9)
        pos.clear()
        assert pos == Position()
