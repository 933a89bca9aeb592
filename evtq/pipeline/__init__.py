"""
Pipeline — Synchronized output of encoded events

Choose a strategy with make_writer():
- "locked": LockedOutput, writes under one lock on the caller's thread
- "queued": QueuedOutput, one dedicated writer thread behind a bounded queue
"""

from typing import TextIO

from .writers import LockedOutput, OutputWriter, QueuedOutput, WriterStats


def make_writer(stream: TextIO, mode: str = "locked", queue_size: int = 1024) -> OutputWriter:
    """
    Build the output writer for a pipeline mode.

    Raises:
        ValueError: unknown mode
    """
    if mode == "locked":
        return LockedOutput(stream)
    if mode == "queued":
        writer = QueuedOutput(stream, queue_size=queue_size)
        writer.start()
        return writer
    raise ValueError(f"Unknown pipeline mode '{mode}'. Valid: locked, queued")


__all__ = ["LockedOutput", "OutputWriter", "QueuedOutput", "WriterStats", "make_writer"]
