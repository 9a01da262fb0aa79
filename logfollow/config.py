"""Configuration loading from CLI args, env vars, and optional YAML file."""

import codecs
import logging
import os
import re
from dataclasses import dataclass, fields

import yaml

from logfollow.splitter import check_encoding, compile_separator

logger = logging.getLogger(__name__)

START_MODES = ("end", "start")


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def parse_start_pos(value):
    """Accept ``end``, ``start`` or a non-negative byte offset."""
    if isinstance(value, int) and not isinstance(value, bool):
        if value < 0:
            raise ValueError(f"start position must not be negative: {value}")
        return value
    text = str(value).strip().lower()
    if text in START_MODES:
        return text
    try:
        offset = int(text)
    except ValueError:
        raise ValueError(f"start position must be 'end', 'start' or a byte offset, not {value!r}")
    return parse_start_pos(offset)


def unescape_separator(value: str) -> str:
    """Turn a separator typed as ``\\r\\n`` on a command line into real characters."""
    return codecs.decode(value, "unicode_escape")


@dataclass(frozen=True)
class TailConfig:
    path: str
    secondary: str | None = None      # single predecessor; disables chain probing
    start_pos: str | int = "end"      # "end", "start" or byte offset
    cutoff: int = 0                   # max size for starting at the top, 0 = no limit
    force: bool = False
    separator: str | re.Pattern = "\n"
    encoding: str = "utf-8"
    buffer_size: int = 4096
    poll_interval: float = 0.5

    def __post_init__(self):
        if not self.path:
            raise ValueError("path is required")
        object.__setattr__(self, "start_pos", parse_start_pos(self.start_pos))
        if self.cutoff < 0:
            raise ValueError(f"cutoff must not be negative: {self.cutoff}")
        if self.buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive: {self.buffer_size}")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive: {self.poll_interval}")
        compile_separator(self.separator)
        check_encoding(self.encoding)


# Options a YAML file may carry besides the TailConfig fields.
SEARCH_KEYS = ("separator_regex", "find_pattern", "find_target")
YAML_KEYS = frozenset(f.name for f in fields(TailConfig)) | frozenset(SEARCH_KEYS)


def load_yaml_config(path: str | None) -> dict:
    """Read tail options from a YAML file.

    The document must be a mapping. Keys that are neither ``TailConfig``
    fields nor search options are dropped with a warning, so a typo does not
    silently fall back to a default.
    """
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        logger.warning("Tail config %s does not exist; using env vars and defaults", path)
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Tail config {path} must be a mapping of options, not {type(data).__name__}")

    unknown = sorted(str(key) for key in data if key not in YAML_KEYS)
    if unknown:
        logger.warning("Ignoring unknown options in %s: %s", path, ", ".join(unknown))
    options = {key: value for key, value in data.items() if key in YAML_KEYS}
    logger.info("Loaded %d tail option(s) from %s", len(options), path)
    return options


def load_config(cli_args, yaml_data: dict) -> TailConfig:
    """Build TailConfig with precedence CLI > env vars > YAML > defaults."""

    def pick(name: str, env: str, default, convert=str):
        cli_value = getattr(cli_args, name, None)
        if cli_value is not None:
            return convert(cli_value)
        if env in os.environ:
            return convert(os.environ[env])
        if name in yaml_data:
            return convert(yaml_data[name])
        return default

    separator = pick("separator", "TAIL_SEPARATOR", TailConfig.separator, unescape_separator)
    separator_regex = getattr(cli_args, "separator_regex", None) or yaml_data.get("separator_regex")
    if separator_regex:
        separator = re.compile(separator_regex)

    path = getattr(cli_args, "path", None) or yaml_data.get("path")

    return TailConfig(
        path=path,
        secondary=pick("secondary", "TAIL_SECONDARY", TailConfig.secondary),
        start_pos=pick("start_pos", "TAIL_START_POS", TailConfig.start_pos, parse_start_pos),
        cutoff=pick("cutoff", "TAIL_CUTOFF", TailConfig.cutoff, int),
        force=pick("force", "TAIL_FORCE", TailConfig.force, _parse_bool),
        separator=separator,
        encoding=pick("encoding", "TAIL_ENCODING", TailConfig.encoding),
        buffer_size=pick("buffer_size", "TAIL_BUFFER_SIZE", TailConfig.buffer_size, int),
        poll_interval=pick("poll_interval", "TAIL_POLL_INTERVAL", TailConfig.poll_interval, float),
    )
