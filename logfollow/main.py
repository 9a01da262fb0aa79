#!/usr/bin/env python3
"""logfollow entry point."""

import argparse
import logging
import signal
import sys
import threading

from logfollow.config import load_config, load_yaml_config
from logfollow.errors import TailError
from logfollow.tail import Tail

logger = logging.getLogger(__name__)


def build_cli_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Follow a log file across rotation, truncation and compressed predecessors",
    )
    parser.add_argument("path", nargs="?", default=None, help="Primary log file to follow")
    parser.add_argument(
        "--secondary", default=None,
        help="Single predecessor file (default: probe PATH.1, PATH.2, ..., PATH.N.gz)",
    )
    parser.add_argument(
        "--start", dest="start_pos", default=None,
        help="Where to start: end, start or a byte offset (default: end)",
    )
    parser.add_argument(
        "--cutoff", type=int, default=None,
        help="Max file size for --start=start; larger files start at the end (0 = no limit)",
    )
    parser.add_argument(
        "--force", action="store_true", default=None,
        help="Keep running when no file is found or errors occur",
    )
    parser.add_argument("--separator", default=None, help="Literal line separator, escapes allowed")
    parser.add_argument("--separator-regex", default=None, help="Regex line separator")
    parser.add_argument("--encoding", default=None, help="Text encoding (default: utf-8)")
    parser.add_argument("--buffer-size", type=int, default=None, help="Read buffer size in bytes")
    parser.add_argument("--poll-interval", type=float, default=None, help="Fallback poll interval in seconds")
    parser.add_argument(
        "--find-pattern", default=None,
        help="Regex whose first group is a number, used to resume at --find-target",
    )
    parser.add_argument("--find-target", type=float, default=None, help="Number to resume at")
    parser.add_argument("--config", default=None, help="Path to YAML config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def numeric_comparator(target: float):
    """Comparator for find_start over numeric tokens."""
    def cmp(token: str) -> float:
        return target - float(token)
    return cmp


def main(argv=None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [logfollow] %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    parser = build_cli_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        yaml_data = load_yaml_config(args.config)
        config = load_config(args, yaml_data)
    except ValueError as err:
        parser.error(str(err))

    find_pattern = args.find_pattern or yaml_data.get("find_pattern")
    find_target = args.find_target if args.find_target is not None else yaml_data.get("find_target")
    if find_pattern and find_target is None:
        parser.error("--find-pattern requires --find-target")

    shutdown = threading.Event()
    exit_code = 0

    def _signal_handler(sig, _frame):
        logger.info("Shutdown signal received (signal %d), stopping...", sig)
        shutdown.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    def _on_error(err):
        nonlocal exit_code
        logger.error("%s", err)
        if not config.force:
            exit_code = 1
            shutdown.set()

    tail = Tail(config)
    tail.on("line", lambda line: print(line, flush=True))
    tail.on("error", _on_error)
    tail.on("restart", lambda reason: logger.info("Restarted tail: %s", reason))
    tail.on("secondary", lambda path: logger.info("Reading secondary file %s", path))
    tail.on("skip", lambda pos: logger.warning("File exceeds cutoff, skipped to byte %d", pos))

    logger.info("Following %s (start=%s, force=%s)", config.path, config.start_pos, config.force)
    if find_pattern:
        future = tail.find_start(find_pattern, numeric_comparator(float(find_target)))
    else:
        future = tail.start()

    try:
        future.result()
    except (TailError, OSError, ValueError):
        # Already reported through the error listener.
        tail.close()
        return 1

    try:
        while not shutdown.is_set():
            shutdown.wait(1)
    except KeyboardInterrupt:
        pass

    tail.close()
    logger.info("Stopped following %s", config.path)
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
