"""Follow a log file across rotation, truncation and compressed predecessors."""

from logfollow.config import TailConfig
from logfollow.errors import ComparatorError, NotFoundError, StartInterrupted, TailError
from logfollow.tail import Tail, TailState

__all__ = [
    "ComparatorError",
    "NotFoundError",
    "StartInterrupted",
    "Tail",
    "TailConfig",
    "TailError",
    "TailState",
]
