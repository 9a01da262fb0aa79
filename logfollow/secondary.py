"""Enumerates rotated predecessors of a log file.

For ``app.log`` the chain is ``app.log.1``, ``app.log.2``, ... while each
exists. The first missing plain file switches to compressed names at the
same number (``app.log.3.gz``, ``app.log.4.gz``, ...), which matches
logrotate's ``delaycompress`` layout. The chain ends at the first missing
compressed file.
"""

import os
from typing import Iterator, NamedTuple

from logfollow.segment import GZIP_SUFFIX


class SecondaryFile(NamedTuple):
    path: str
    compressed: bool


def secondary_files(base: str, exists=os.path.exists) -> Iterator[SecondaryFile]:
    """Lazily yield predecessor files of *base*, newest first.

    When nothing exists at all, ``{base}.1`` is still yielded once so
    callers have a concrete path to try and report.
    """
    count = 1
    compressed = False
    while True:
        candidate = f"{base}.{count}"
        if compressed:
            candidate += GZIP_SUFFIX
        if exists(candidate):
            yield SecondaryFile(candidate, compressed)
            count += 1
            continue
        if compressed:
            if count == 1:
                yield SecondaryFile(f"{base}.1", False)
            return
        compressed = True


def search_files(primary: str, secondary: str | None = None,
                 exists=os.path.exists) -> Iterator[str]:
    """Yield the primary, then its predecessors, newest first.

    A configured *secondary* replaces the numbered chain.
    """
    yield primary
    if secondary:
        yield secondary
        return
    for entry in secondary_files(primary, exists):
        yield entry.path


def first_secondary(primary: str, secondary: str | None = None,
                    exists=os.path.exists) -> str:
    if secondary:
        return secondary
    return next(secondary_files(primary, exists)).path
