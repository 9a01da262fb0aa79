"""Line splitter: cuts decoded text into separator-delimited records.

Text handed to the splitter is decoded with the ``surrogateescape`` error
handler, so re-encoding a span gives back exactly the bytes it was decoded
from. That is how consumed byte counts stay exact for multi-byte encodings
and for invalid input.
"""

import codecs
import re
from dataclasses import dataclass, field

_ESCAPED_BYTES = re.compile("[\udc80-\udcff]")


@dataclass
class SplitResult:
    lines: list[str] = field(default_factory=list)
    remainder: str = ""
    consumed: list[int] = field(default_factory=list)  # encoded bytes per line incl. separator


def compile_separator(separator) -> re.Pattern:
    """Return a compiled pattern for a literal string or a regex separator."""
    if isinstance(separator, re.Pattern):
        pattern = separator
    elif isinstance(separator, str):
        if not separator:
            raise ValueError("separator must not be empty")
        pattern = re.compile(re.escape(separator))
    else:
        raise TypeError(f"separator must be str or re.Pattern, not {type(separator).__name__}")

    if pattern.fullmatch("") is not None:
        raise ValueError(f"separator pattern {pattern.pattern!r} matches an empty string")
    return pattern


def check_encoding(encoding: str) -> codecs.CodecInfo:
    """Look up *encoding* and reject codecs that prefix every encode with a BOM.

    Byte offsets are measured by re-encoding line by line, which only holds
    for encodings like ``utf-8`` or ``utf-16-le`` that do not emit a byte
    order mark.
    """
    info = codecs.lookup(encoding)
    if info.encode("")[0]:
        raise ValueError(
            f"encoding {encoding!r} writes a byte order mark; "
            f"use an explicit byte order such as utf-16-le instead"
        )
    return info


def restore_text(text: str, encoding: str = "utf-8") -> str:
    """Turn escaped raw bytes back into proper characters (or U+FFFD)."""
    if not _ESCAPED_BYTES.search(text):
        return text
    return text.encode(encoding, "surrogateescape").decode(encoding, "replace")


def split_lines(text: str, separator, encoding: str = "utf-8") -> SplitResult:
    """Split *text* on every separator match.

    Returns the complete lines (without separator), the undelimited
    remainder, and for each line the number of encoded bytes it spans
    together with its separator match.
    """
    pattern = compile_separator(separator)
    result = SplitResult()
    start = 0
    for match in pattern.finditer(text):
        if match.end() == match.start():
            continue
        result.lines.append(restore_text(text[start:match.start()], encoding))
        result.consumed.append(len(text[start:match.end()].encode(encoding, "surrogateescape")))
        start = match.end()
    result.remainder = text[start:]
    return result
