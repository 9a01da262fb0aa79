"""Start-position resolver: finds where to resume inside old log data.

The comparison function gets the token extracted by ``match`` and answers
where the target lies relative to that line, e.g. ``lambda n: target - int(n)``:

- positive: the target comes after this line, keep scanning
- zero: this is the target line
- negative: this line is already past the target
"""

import logging
import math
import numbers
import os
import re
from dataclasses import dataclass, field

from logfollow.errors import ComparatorError, NotFoundError, StartInterrupted, TargetOlderError
from logfollow.segment import iter_segment_lines

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    path: str
    offset: int
    backlog: list[str] = field(default_factory=list)  # newer files, oldest last


def compile_match(match) -> re.Pattern:
    if isinstance(match, re.Pattern):
        return match
    return re.compile(match)


def _compare(cmp, token):
    compared = cmp(token)
    if (isinstance(compared, bool) or not isinstance(compared, numbers.Real)
            or math.isnan(compared)):
        raise ComparatorError(f"Given comparison function returned {compared!r}")
    return compared


def find_start_in_file(path: str, match, cmp, separator="\n", encoding: str = "utf-8",
                       buffer_size: int = 4096, should_stop=None) -> int:
    """Return the byte offset of the line to resume at inside *path*.

    Raises TargetOlderError when the target precedes everything matched in
    the file, and NotFoundError when it comes after the last matched line.
    """
    pattern = compile_match(match)
    found_offset = -1
    found_value = None
    end = 0

    for start, end, line in iter_segment_lines(path, separator, encoding, buffer_size):
        if should_stop is not None and should_stop():
            raise StartInterrupted(f"Search in {path} interrupted")

        found = pattern.search(line)
        if found is None:
            continue
        token = found.group(1) if pattern.groups else found.group(0)
        compared = _compare(cmp, token)

        if compared == 0:
            return start
        if compared < 0:
            if found_offset >= 0:
                return start
            raise TargetOlderError(
                f"The first matched line has the value {token}. "
                f"The target value is probably in an older file.",
                value=token,
            )
        found_offset = start
        found_value = token

    if found_offset >= 0:
        raise NotFoundError(
            f"The last matched line has the value {found_value}. "
            f"The target value comes after the end of this file.",
            files=[path],
            value=found_value,
            end_offset=end,
        )
    raise TargetOlderError(f"No line in {path} reaches the target value")


def resolve_start(files, match, cmp, separator="\n", encoding: str = "utf-8",
                  buffer_size: int = 4096, should_stop=None) -> Resolution:
    """Walk *files* (newest first) until one of them holds the start.

    Files passed over on the way are returned as the backlog so the caller
    can replay them after the resolved file.
    """
    pattern = compile_match(match)
    backlog: list[str] = []
    first_error = None

    for path in files:
        if should_stop is not None and should_stop():
            raise StartInterrupted("Search for start position interrupted")
        logger.debug("Looking for start in %s", path)
        try:
            offset = find_start_in_file(path, pattern, cmp, separator, encoding,
                                        buffer_size, should_stop)
        except NotFoundError as err:
            while backlog:
                newer = backlog.pop()
                if os.path.exists(newer):
                    logger.debug("Start lies between %s and %s", path, newer)
                    return Resolution(newer, 0, backlog)
                # Rotated away and not recreated yet.
                logger.debug("Newer file %s is gone, skipping it", newer)
            logger.debug("Start is beyond the end of %s", path)
            return Resolution(path, err.end_offset, backlog)
        except (TargetOlderError, FileNotFoundError) as err:
            logger.debug("Backlog %s: %s", path, err)
            backlog.append(path)
            if first_error is None:
                first_error = err
        else:
            return Resolution(path, offset, backlog)

    raise NotFoundError(
        "Start not found in primary or any secondary file",
        files=backlog,
    ) from first_error
