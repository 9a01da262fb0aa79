"""Tests for the start-position resolver."""

import gzip

import pytest
from logfollow.errors import ComparatorError, NotFoundError, StartInterrupted, TargetOlderError
from logfollow.finder import find_start_in_file, resolve_start

ROW = r"^Row (\d+)$"


def _target(n):
    return lambda token: n - int(token)


def _rows(path, numbers, extra=""):
    path.write_text("".join(f"Row {n}\n{extra}" for n in numbers))
    return str(path)


class TestFindStartInFile:
    def test_exact_match(self, tmp_path):
        path = _rows(tmp_path / "app.log", [1, 2, 3, 4])
        assert find_start_in_file(path, ROW, _target(3)) == 12

    def test_first_line_match(self, tmp_path):
        path = _rows(tmp_path / "app.log", [1, 2])
        assert find_start_in_file(path, ROW, _target(1)) == 0

    def test_crossing_resumes_at_first_line_after_target(self, tmp_path):
        path = _rows(tmp_path / "app.log", [2, 4, 6, 8])
        # 5 falls between Row 4 and Row 6: resume at Row 6
        assert find_start_in_file(path, ROW, _target(5)) == 12

    def test_target_older_than_file(self, tmp_path):
        path = _rows(tmp_path / "app.log", [5, 6])
        with pytest.raises(TargetOlderError) as info:
            find_start_in_file(path, ROW, _target(3))
        assert info.value.value == "5"

    def test_target_after_end_of_file(self, tmp_path):
        path = _rows(tmp_path / "app.log", [1, 2])
        with pytest.raises(NotFoundError) as info:
            find_start_in_file(path, ROW, _target(9))
        assert info.value.value == "2"
        assert info.value.end_offset == 12

    def test_no_matching_lines_means_older(self, tmp_path):
        f = tmp_path / "app.log"
        f.write_text("starting up\nready\n")
        with pytest.raises(TargetOlderError):
            find_start_in_file(str(f), ROW, _target(1))

    def test_non_matching_lines_are_skipped(self, tmp_path):
        path = _rows(tmp_path / "app.log", [1, 2, 3], extra="  at frame()\n")
        # "Row 1\n  at frame()\n" is 19 bytes per row
        assert find_start_in_file(path, ROW, _target(3)) == 38

    def test_whole_match_used_without_groups(self, tmp_path):
        f = tmp_path / "app.log"
        f.write_text("a 10\nb 20\nc 30\n")
        assert find_start_in_file(str(f), r"\d+", lambda t: 20 - int(t)) == 5

    def test_comparator_must_return_number(self, tmp_path):
        path = _rows(tmp_path / "app.log", [1])
        with pytest.raises(ComparatorError):
            find_start_in_file(path, ROW, lambda token: None)
        with pytest.raises(ComparatorError):
            find_start_in_file(path, ROW, lambda token: True)
        with pytest.raises(ComparatorError):
            find_start_in_file(path, ROW, lambda token: float("nan"))

    def test_small_buffer(self, tmp_path):
        path = _rows(tmp_path / "app.log", range(1, 50))
        expected = sum(len(f"Row {n}\n") for n in range(1, 30))
        assert find_start_in_file(path, ROW, _target(30), buffer_size=3) == expected

    def test_gzip_file(self, tmp_path):
        f = tmp_path / "app.log.2.gz"
        f.write_bytes(gzip.compress(b"Row 1\nRow 2\nRow 3\n"))
        assert find_start_in_file(str(f), ROW, _target(2)) == 6

    def test_fixed_width_encoding_offsets(self, tmp_path):
        f = tmp_path / "app.log"
        f.write_bytes("Row 1\nRow 2\nRow 3\n".encode("utf-16-le"))
        assert find_start_in_file(str(f), ROW, _target(3), encoding="utf-16-le") == 24

    def test_bom_encoding_rejected(self, tmp_path):
        f = tmp_path / "app.log"
        f.write_bytes("Row 1\nRow 2\nRow 3\n".encode("utf-16"))
        with pytest.raises(ValueError):
            find_start_in_file(str(f), ROW, _target(3), encoding="utf-16")

    def test_should_stop_interrupts(self, tmp_path):
        path = _rows(tmp_path / "app.log", [1, 2, 3])
        with pytest.raises(StartInterrupted):
            find_start_in_file(path, ROW, _target(3), should_stop=lambda: True)


class TestResolveStart:
    def test_found_in_primary(self, tmp_path):
        primary = _rows(tmp_path / "app.log", [5, 6, 7])
        result = resolve_start([primary], ROW, _target(6))
        assert (result.path, result.offset, result.backlog) == (primary, 6, [])

    def test_found_in_secondary(self, tmp_path):
        primary = _rows(tmp_path / "app.log", [5, 6])
        secondary = _rows(tmp_path / "app.log.1", [1, 2, 3, 4])
        result = resolve_start([primary, secondary], ROW, _target(3))
        assert result.path == secondary
        assert result.offset == 12
        assert result.backlog == [primary]

    def test_between_files_resumes_at_next_newer(self, tmp_path):
        primary = _rows(tmp_path / "app.log", [7, 8])
        first = _rows(tmp_path / "app.log.1", [5, 6])
        second = _rows(tmp_path / "app.log.2", [1, 2])
        result = resolve_start([primary, first, second], ROW, _target(3))
        assert (result.path, result.offset) == (first, 0)
        assert result.backlog == [primary]

    def test_beyond_everything_resumes_after_primary(self, tmp_path):
        primary = _rows(tmp_path / "app.log", [1, 2])
        result = resolve_start([primary, str(tmp_path / "app.log.1")], ROW, _target(10))
        assert (result.path, result.offset) == (primary, 12)

    def test_missing_files_go_to_backlog(self, tmp_path):
        primary = str(tmp_path / "app.log")
        secondary = _rows(tmp_path / "app.log.1", [1, 2, 3])
        result = resolve_start([primary, secondary], ROW, _target(2))
        assert (result.path, result.offset, result.backlog) == (secondary, 6, [primary])

    def test_beyond_secondary_with_primary_gone(self, tmp_path):
        primary = str(tmp_path / "app.log")
        secondary = _rows(tmp_path / "app.log.1", [1, 2])
        result = resolve_start([primary, secondary], ROW, _target(5))
        assert (result.path, result.offset, result.backlog) == (secondary, 12, [])

    def test_exhausted_chain(self, tmp_path):
        primary = _rows(tmp_path / "app.log", [5, 6])
        secondary = _rows(tmp_path / "app.log.1", [3, 4])
        with pytest.raises(NotFoundError) as info:
            resolve_start([primary, secondary], ROW, _target(1))
        assert info.value.files == [primary, secondary]
        assert isinstance(info.value.__cause__, TargetOlderError)

    def test_missing_primary_is_the_reported_cause(self, tmp_path):
        primary = str(tmp_path / "app.log")
        secondary = str(tmp_path / "app.log.1")
        with pytest.raises(NotFoundError) as info:
            resolve_start([primary, secondary], ROW, _target(1))
        assert isinstance(info.value.__cause__, FileNotFoundError)
        assert info.value.__cause__.filename == primary

    def test_other_errors_propagate(self, tmp_path):
        directory = tmp_path / "app.log"
        directory.mkdir()
        with pytest.raises(OSError) as info:
            resolve_start([str(directory)], ROW, _target(1))
        assert not isinstance(info.value, FileNotFoundError)
