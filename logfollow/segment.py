"""Segment reader: reads one physical log file from a byte offset.

Plain files are read positionally. Files ending in ``.gz`` are pushed through
a streaming gunzip first. Either way the bytes go through an incremental
decoder, so multi-byte characters split across reads are reassembled.
"""

import logging
import os
import zlib

from logfollow.splitter import check_encoding, compile_separator, split_lines

logger = logging.getLogger(__name__)

GZIP_SUFFIX = ".gz"
_GZIP_WBITS = zlib.MAX_WBITS | 16


def is_compressed(path: str) -> bool:
    return path.endswith(GZIP_SUFFIX)


class GzipInflater:
    """Streaming gunzip that follows concatenated gzip members."""

    def __init__(self):
        self._obj = zlib.decompressobj(_GZIP_WBITS)
        self._flushed = False

    def feed(self, raw: bytes) -> bytes:
        out = []
        while raw:
            out.append(self._obj.decompress(raw))
            if not self._obj.eof:
                break
            raw = self._obj.unused_data
            self._obj = zlib.decompressobj(_GZIP_WBITS)
        return b"".join(out)

    def flush(self) -> bytes:
        if self._flushed:
            return b""
        self._flushed = True
        return self._obj.flush()


class SegmentReader:
    """Reads decoded text chunks from a single file.

    ``read(offset, size)`` returns ``(bytes_read, text)``; ``bytes_read`` is
    counted in raw file bytes (compressed bytes for ``.gz``) and is 0 at the
    end of the file. Call ``finish()`` at that point to flush the
    decompressor and the decoder.
    """

    def __init__(self, path: str, encoding: str = "utf-8", inflater=None):
        self.path = path
        self.encoding = encoding
        if inflater is None and is_compressed(path):
            inflater = GzipInflater()
        self._inflater = inflater
        self._decoder = check_encoding(encoding).incrementaldecoder(errors="surrogateescape")
        self._fh = None

    @property
    def compressed(self) -> bool:
        return self._inflater is not None

    def open(self) -> os.stat_result:
        """Open the file and return its fstat result."""
        self._fh = open(self.path, "rb")
        try:
            return os.fstat(self._fh.fileno())
        except OSError:
            self.close()
            raise

    def fileno(self) -> int:
        return self._fh.fileno()

    def stat(self) -> os.stat_result:
        return os.fstat(self._fh.fileno())

    def read(self, offset: int, size: int) -> tuple[int, str]:
        self._fh.seek(offset)
        raw = self._fh.read(size)
        if not raw:
            return 0, ""
        data = self._inflater.feed(raw) if self._inflater else raw
        return len(raw), self._decoder.decode(data)

    def finish(self) -> str:
        """Flush whatever the decompressor and decoder still hold."""
        data = self._inflater.flush() if self._inflater else b""
        return self._decoder.decode(data, final=True)

    def close(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            finally:
                self._fh = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def iter_segment_lines(path: str, separator="\n", encoding: str = "utf-8",
                       buffer_size: int = 4096):
    """Yield ``(start, end, line)`` for every complete line of *path*.

    Offsets are byte offsets into the (decompressed) stream. A trailing
    partial line without separator is not yielded.
    """
    pattern = compile_separator(separator)
    text = ""
    line_start = 0
    read_pos = 0
    with SegmentReader(path, encoding) as reader:
        while True:
            size, chunk = reader.read(read_pos, buffer_size)
            if size == 0:
                chunk = reader.finish()
            read_pos += size
            result = split_lines(text + chunk, pattern, encoding)
            text = result.remainder
            for line, consumed in zip(result.lines, result.consumed):
                yield line_start, line_start + consumed, line
                line_start += consumed
            if size == 0:
                logger.debug("Scanned %s to byte %d", path, line_start)
                return
