"""
BackupReader — Sequential replay of an offline event log file

Reads a .evtx/.evt backup in order and forwards each raw event to a
callback on the calling thread.

States:
    OPENED -> ITERATING -> EXHAUSTED   (end of stream)
                        -> FAILED      (any other error, from the log or the callback)

The log handle is released in every case.
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Optional

from .base import EventHost

logger = logging.getLogger(__name__)


class ReaderState(Enum):
    OPENED = "opened"
    ITERATING = "iterating"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


class BackupReader:
    """
    Replays one backup file through a callback.

    Usage:
        reader = BackupReader(host, "security.evtx")
        count = reader.run(processor)
    """

    def __init__(self, host: EventHost, path: str):
        self.host = host
        self.path = path
        self.state: Optional[ReaderState] = None
        self.forwarded = 0

    def run(self, callback: Callable[[Any], Any], stop: Optional[threading.Event] = None) -> int:
        """
        Forward every record of the backup to `callback`.

        Args:
            callback: Called once per raw event, synchronously
            stop: Optional event; when set, reading stops before the next record

        Returns:
            Number of records forwarded

        Raises:
            SourceError: the file cannot be opened or a read fails
        """
        try:
            events = self.host.open_backup(self.path)
        except Exception:
            self.state = ReaderState.FAILED
            raise
        self.state = ReaderState.OPENED
        logger.info("Reading backup %s", self.path)

        try:
            self.state = ReaderState.ITERATING
            for raw in events:
                if stop is not None and stop.is_set():
                    logger.debug("Stop requested after %d records", self.forwarded)
                    break
                callback(raw)
                self.forwarded += 1
            self.state = ReaderState.EXHAUSTED
        except Exception:
            self.state = ReaderState.FAILED
            raise
        finally:
            close = getattr(events, "close", None)
            if close is not None:
                close()

        logger.info("Read %d records from %s", self.forwarded, self.path)
        return self.forwarded
