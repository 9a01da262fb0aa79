"""Tail: follows a log file across rotation, truncation and recreation.

Signals (see EventEmitter):

- ``line(text)``: a complete line was read
- ``ready(fd)``: a file was opened and reading begins
- ``error(exc)``: an operation or the running tail failed
- ``eof(pos)``: all available bytes were read
- ``skip(pos)``: asked to start at the top, but the file exceeds the cutoff
- ``secondary(path)``: tailing a file other than the primary
- ``restart(reason)``: PRIMEFOUND, NEWPRIME, TRUNCATE or CATCHUP
"""

import dataclasses
import enum
import logging
import os
import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Callable

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from logfollow.config import TailConfig
from logfollow.errors import NotFoundError, StartInterrupted, TailError
from logfollow.events import EventEmitter
from logfollow.finder import compile_match, resolve_start
from logfollow.position import Position
from logfollow.secondary import first_secondary, search_files
from logfollow.segment import SegmentReader
from logfollow.splitter import compile_separator, split_lines

logger = logging.getLogger(__name__)

RESTART_PRIMEFOUND = "PRIMEFOUND"  # primary appeared while not tailing anything
RESTART_NEWPRIME = "NEWPRIME"      # a new primary got content while tailing
RESTART_TRUNCATE = "TRUNCATE"      # the current file shrank
RESTART_CATCHUP = "CATCHUP"        # moved on to the next backlog file

# Our own open() calls show up as events on some platforms.
_IGNORED_EVENTS = {"opened", "closed_no_write"}

_WAKE = object()
_SHUTDOWN = object()


class TailState(enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    READING = "reading"
    AT_EOF = "at_eof"
    SWITCHING = "switching"


@dataclass
class _Operation:
    kind: str  # "start", "find_start" or "stop"
    seq: int
    run: Callable
    future: Future = field(default_factory=Future)


class _DirectoryHandler(FileSystemEventHandler):
    """Forwards changes in the watched directory to the tail."""

    def __init__(self, tail: "Tail"):
        super().__init__()
        self._tail = tail

    def on_any_event(self, event):
        if event.is_directory or event.event_type in _IGNORED_EVENTS:
            return
        names = {os.path.basename(os.fsdecode(event.src_path))}
        dest = getattr(event, "dest_path", "")
        if dest:
            names.add(os.path.basename(os.fsdecode(dest)))
        self._tail.notify(names)


class Tail(EventEmitter):
    """Follows one log file, its rotations and its compressed predecessors.

    All file I/O and all signals happen on a single worker thread per
    session, so listeners see signals in the order they were emitted.
    ``start()``, ``find_start()`` and ``stop()`` queue an operation and
    return a ``concurrent.futures.Future``. Listeners run on the worker
    thread and must not block on those futures.
    """

    def __init__(self, config, on_line=None, **options):
        super().__init__()
        if not isinstance(config, TailConfig):
            config = TailConfig(path=config, **options)
        elif options:
            config = dataclasses.replace(config, **options)
        self.config = config
        self.path = config.path
        self._separator = compile_separator(config.separator)
        self._start_pos = config.start_pos

        self.state = TailState.STOPPED
        self.started: str | None = None
        self.file_id: tuple[int, int] | None = None
        self.position = Position()
        self.backlog: list[str] = []
        self._reader: SegmentReader | None = None
        self._text = ""
        self._reading = False
        self._waiting = False  # watching for the primary without an open file
        self._observer = None

        self._lock = threading.Lock()
        self._commands: queue.Queue = queue.Queue()
        self._worker: threading.Thread | None = None
        self._seq = 0         # last issued operation
        self._active_seq = 0  # operation the worker ran last
        self._start_seq = 0   # newest start; older starts are superseded
        self._stop_seq = 0    # newest stop; everything issued before it is interrupted
        self._changed: set[str] = set()
        self._wake_queued = False
        self._closed = False
        self._fatal: Exception | None = None

        if on_line is not None:
            self.on("line", on_line)
            self.start()

    # -- public API ---------------------------------------------------------

    @property
    def watching(self) -> bool:
        return self._observer is not None

    def get_secondary(self) -> str:
        """The file tried when the primary is missing."""
        return first_secondary(self.path, self.config.secondary)

    def search_files(self):
        """Primary, then predecessors newest first."""
        return search_files(self.path, self.config.secondary)

    def start(self, path: str | None = None) -> Future:
        """Start tailing *path* (default: the primary). Resolves True when ready."""
        return self._submit("start", lambda op: self._run_start(op, path))

    def find_start(self, match, cmp) -> Future:
        """Resume at the first line at or after a target, then keep tailing.

        *match* extracts a token from each line (first group if any), and
        ``cmp(token)`` returns a positive number while the target is still
        ahead, zero on the target line, negative once past it.
        """
        pattern = compile_match(match)
        return self._submit("find_start", lambda op: self._run_find_start(op, pattern, cmp))

    def stop(self) -> Future:
        """Interrupt pending starts, close the file and the watch."""
        return self._submit("stop", self._run_stop)

    def next_line(self) -> Future:
        future = Future()

        def _resolve(line):
            if not future.done():
                future.set_result(line)

        self.once("line", _resolve)
        return future

    def close(self, timeout: float | None = 5.0) -> None:
        """Stop the session and shut down its worker thread."""
        with self._lock:
            if self._closed:
                return
            worker = self._worker
            running = worker is not None and worker.is_alive() and self._fatal is None
        if running:
            self.stop()
            self._commands.put(_SHUTDOWN)
        with self._lock:
            self._closed = True
        if running and worker is not threading.current_thread():
            worker.join(timeout)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def notify(self, names) -> None:
        """Record changed directory entries and wake the worker once."""
        with self._lock:
            self._changed.update(names)
            if self._wake_queued or self._worker is None:
                return
            self._wake_queued = True
        self._commands.put(_WAKE)

    # -- operation queue ----------------------------------------------------

    def _submit(self, kind: str, run) -> Future:
        with self._lock:
            if self._fatal is not None:
                raise TailError(f"Tail of {self.path} has failed") from self._fatal
            if self._closed:
                raise TailError(f"Tail of {self.path} is closed")
            self._seq += 1
            op = _Operation(kind, self._seq, run)
            if kind == "stop":
                self._stop_seq = op.seq
            else:
                self._start_seq = op.seq
            if self._worker is None or not self._worker.is_alive():
                self._worker = threading.Thread(
                    target=self._run, name=f"tail-{os.path.basename(self.path)}", daemon=True,
                )
                self._worker.start()
            self._commands.put(op)
        return op.future

    def _interrupted(self, op: _Operation) -> bool:
        if op.kind == "stop":
            return False
        with self._lock:
            return op.seq < self._stop_seq or op.seq < self._start_seq

    def _op_pending(self) -> bool:
        with self._lock:
            return self._seq > self._active_seq

    def _run(self):
        try:
            while True:
                try:
                    item = self._commands.get(timeout=self.config.poll_interval)
                except queue.Empty:
                    self._guard(self._poll)
                    continue
                if item is _SHUTDOWN:
                    break
                if item is _WAKE:
                    self._guard(self._on_dir_change)
                    continue
                self._execute(item)
                if self._reader is not None:
                    self._guard(self._read_available)
        except Exception as err:
            with self._lock:
                self._fatal = err
            logger.error("Tail of %s failed: %s", self.path, err)
            raise
        finally:
            self._teardown_file()
            self._unwatch()
            self.state = TailState.STOPPED
            self._fail_pending()

    def _execute(self, op: _Operation) -> None:
        with self._lock:
            self._active_seq = op.seq
        if self._interrupted(op):
            logger.debug("Skipping superseded %s", op.kind)
            op.future.set_exception(StartInterrupted(f"{op.kind} of {self.path} was superseded"))
            return
        try:
            result = op.run(op)
        except StartInterrupted as err:
            self._teardown_file()
            op.future.set_exception(err)
        except Exception as err:
            logger.debug("%s of %s failed: %r", op.kind, self.path, err)
            self._teardown_file()
            if self.config.force:
                self._wait_for_primary()
            else:
                self._unwatch()
                self.state = TailState.STOPPED
            op.future.set_exception(err)
            if self.listener_count("error"):
                self.emit("error", err)
        else:
            op.future.set_result(result)

    def _fail_pending(self) -> None:
        while True:
            try:
                item = self._commands.get_nowait()
            except queue.Empty:
                return
            if isinstance(item, _Operation) and not item.future.done():
                item.future.set_exception(TailError(f"Tail of {self.path} is no longer running"))

    def _guard(self, action) -> None:
        try:
            action()
        except Exception as err:
            self._fail(err)

    def _fail(self, err: Exception) -> None:
        """Handle an error raised while tailing outside of any operation."""
        logger.debug("Tail error on %s: %r", self.started or self.path, err)
        self._teardown_file()
        if self.config.force:
            self._wait_for_primary()
        else:
            self._unwatch()
            self._waiting = False
            self.state = TailState.STOPPED
        self._report(err)

    def _report(self, err: Exception) -> None:
        if self.listener_count("error"):
            self.emit("error", err)
        elif self.config.force:
            logger.warning("%s", err)
        else:
            raise err

    # -- operations ---------------------------------------------------------

    def _run_start(self, op: _Operation, path: str | None = None) -> bool:
        self.state = TailState.STARTING
        try:
            self._begin(path)
        except NotFoundError as err:
            if not self.config.force:
                raise
            self._report(err)
            self._wait_for_primary()
            return False
        return True

    def _run_find_start(self, op: _Operation, pattern, cmp) -> bool:
        self.state = TailState.STARTING
        self._teardown_file()
        self.backlog = []
        try:
            resolution = resolve_start(
                self.search_files(), pattern, cmp,
                separator=self._separator,
                encoding=self.config.encoding,
                buffer_size=self.config.buffer_size,
                should_stop=lambda: self._interrupted(op),
            )
        except NotFoundError as err:
            if not self.config.force:
                raise
            self._report(err)
            return self._run_start(op)

        # The primary is reached through the usual NEWPRIME switch.
        self.backlog = [path for path in resolution.backlog if path != self.path]
        logger.info("Found start in %s at byte %d", resolution.path, resolution.offset)
        self._open_tail(resolution.path, start_at=resolution.offset)
        return True

    def _run_stop(self, op: _Operation) -> bool:
        self._teardown_file()
        self._unwatch()
        self.backlog = []
        self._waiting = False
        self.state = TailState.STOPPED
        return True

    # -- file handling ------------------------------------------------------

    def _begin(self, path: str | None = None, start_at=None) -> None:
        """Open *path*, falling back to the secondary when the primary is gone."""
        target = path or self.path
        if self._reader is not None and self.started == target:
            self.emit("ready", self._reader.fileno())
            return

        self._teardown_file()
        try:
            self._open_tail(target, start_at)
        except FileNotFoundError as err:
            if target != self.path:
                raise
            secondary = self.get_secondary()
            logger.debug("%s gone. Trying %s", self.path, secondary)
            try:
                self._open_tail(secondary, start_at)
            except OSError as secondary_err:
                raise NotFoundError(
                    f"No such file: {self.path} (secondary {secondary}: {secondary_err})",
                    files=[self.path, secondary],
                ) from err

    def _open_tail(self, path: str, start_at=None) -> None:
        reader = SegmentReader(path, self.config.encoding)
        stat = reader.open()
        self.file_id = (stat.st_dev, stat.st_ino)
        self._reader = reader
        self.started = path
        self._text = ""
        self._waiting = False

        start = self._start_pos if start_at is None else start_at
        skipped = False
        if isinstance(start, int):
            self.position.resume(start, seekable=not reader.compressed)
        elif start == "start" and not (self.config.cutoff and stat.st_size > self.config.cutoff):
            self.position.reset(0)
        else:
            skipped = start == "start"
            self.position.reset(stat.st_size)

        self.state = TailState.READING
        self._watch()
        if skipped:
            logger.info("%s is %d bytes, over the cutoff; starting at the end", path, stat.st_size)
            self.emit("skip", stat.st_size)
        if path != self.path:
            self.emit("secondary", path)
        logger.info("Tailing %s from byte %d", path, self.position.pos)
        self.emit("ready", reader.fileno())

    def _teardown_file(self) -> None:
        """Close the current file without touching the watch."""
        if self._reader is not None:
            logger.debug("Stops tail of %s", self.started)
            reader, self._reader = self._reader, None
            reader.close()
        self.position.clear()
        self._text = ""
        self.started = None
        self.file_id = None

    def _wait_for_primary(self) -> None:
        self._waiting = True
        self.state = TailState.STOPPED
        try:
            self._watch()
        except OSError as err:
            logger.warning("Cannot watch for %s (%s), polling instead", self.path, err)

    def _watch(self) -> None:
        if self._observer is not None:
            return
        directory = os.path.dirname(os.path.abspath(self.path))
        observer = Observer()
        observer.schedule(_DirectoryHandler(self), directory, recursive=False)
        observer.start()
        self._observer = observer
        logger.debug("Watching directory %s", directory)

    def _unwatch(self) -> None:
        observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            observer.join(timeout=5)

    # -- reading ------------------------------------------------------------

    def _on_dir_change(self) -> None:
        with self._lock:
            names, self._changed = self._changed, set()
            self._wake_queued = False
        if self._reader is not None:
            self._read_available()
        elif self._waiting and os.path.basename(self.path) in names:
            self._primary_found()

    def _poll(self) -> None:
        if self._reader is not None:
            self._read_available(quiet=True)
        elif self._waiting and os.path.exists(self.path):
            self._primary_found()

    def _primary_found(self) -> None:
        logger.info("%s appeared, starting tail", self.path)
        self.emit("restart", RESTART_PRIMEFOUND)
        self._begin(start_at=0)
        self._read_available()

    def _read_available(self, quiet: bool = False) -> None:
        """Read until the end of the current file, switching files as needed.

        A *quiet* cycle (the poll fallback) only reports ``eof`` when it
        actually read something.
        """
        if self._reading:
            return
        self._reading = True
        try:
            while self._reader is not None and not self._op_pending():
                read_any = self._drain()
                if self._reader is None or self._op_pending():
                    return
                self.state = TailState.AT_EOF
                if not self._switch_at_eof():
                    if read_any or not quiet:
                        self.emit("eof", self.position.pos)
                    return
                quiet = False
        finally:
            self._reading = False

    def _drain(self) -> bool:
        self.state = TailState.READING
        read_any = False
        while not self._op_pending():
            size, text = self._reader.read(self.position.pos, self.config.buffer_size)
            if size == 0:
                self._push_text(self._reader.finish())
                return read_any
            read_any = True
            self.position.pos += size
            self._push_text(text)
        return read_any

    def _push_text(self, text: str) -> None:
        if not text:
            return
        result = split_lines(self._text + text, self._separator, self.config.encoding)
        self._text = result.remainder
        for line, consumed in zip(result.lines, result.consumed):
            self.position.advance(consumed)
            if self.position.should_emit():
                self.emit("line", line)

    def _switch_at_eof(self) -> bool:
        """Decide whether to move on to another file. Returns True if one was opened."""
        if self.backlog:
            next_path = self.backlog.pop()
            logger.info("Catching up with %s", next_path)
            self.state = TailState.SWITCHING
            self._teardown_file()
            try:
                self._open_tail(next_path, start_at=0)
            except OSError as err:
                self.backlog = []
                if not self.config.force:
                    raise
                self._report(err)
                self._begin()
                return True
            self.emit("restart", RESTART_CATCHUP)
            return True

        try:
            stat = os.stat(self.path)
        except OSError as err:
            logger.debug("Primary %s unavailable: %s", self.path, err)
            stat = None

        if stat is not None and (stat.st_dev, stat.st_ino) != self.file_id and stat.st_size:
            logger.info("Switching over to the new %s", self.path)
            self.state = TailState.SWITCHING
            self._teardown_file()
            self._start_pos = "start"
            self.emit("restart", RESTART_NEWPRIME)
            self._begin()
            return True

        if not self._reader.compressed and self._reader.stat().st_size < self.position.pos:
            path = self.started
            logger.info("%s truncated", path)
            self.state = TailState.SWITCHING
            self._teardown_file()
            self.emit("restart", RESTART_TRUNCATE)
            self._open_tail(path, start_at=0)
            return True

        return False
