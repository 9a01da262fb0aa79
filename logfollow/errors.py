"""Error taxonomy for tail sessions and start-position searches."""


class TailError(Exception):
    """Base class for errors raised by a tail session."""


class NotFoundError(TailError):
    """A file, or a start position inside the searched files, was not found.

    ``files`` lists the paths that were searched, ``value`` holds the last
    matched token when a scan ran past the end of a file, and ``end_offset``
    is the byte offset just after that file's last complete line.
    """

    def __init__(self, message: str, files=None, value=None, end_offset: int = 0):
        super().__init__(message)
        self.files = list(files or [])
        self.value = value
        self.end_offset = end_offset


class TargetOlderError(TailError):
    """The target lies before the first matched line of a file."""

    def __init__(self, message: str, value=None):
        super().__init__(message)
        self.value = value


class ComparatorError(TailError):
    """The comparison function returned something other than a number."""


class StartInterrupted(TailError):
    """A start or search was superseded by a newer request or by stop()."""
