"""
Output writers — The single choke point for encoded events

Every encoded event goes through emit(), from whichever thread rendered
it. One event's text is always written whole, never interleaved with
another's.

Strategies:
- LockedOutput: one lock held around each write; callers encode first,
  so only the write itself is serialized
- QueuedOutput: Single Writer pattern; callers enqueue into a bounded
  queue and one dedicated thread performs every write

Both count records written and flush the stream on close().
"""

import logging
import queue
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, TextIO

from ..errors import OutputError

logger = logging.getLogger(__name__)

# Sentinel telling the writer thread to exit once the queue is drained
_STOP = object()


@dataclass
class WriterStats:
    """Counters for writer observability."""
    records_received: int = 0
    records_written: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return {
            "records_received": self.records_received,
            "records_written": self.records_written,
            "errors": self.errors,
            "pending": self.records_received - self.records_written - self.errors,
        }


class OutputWriter(ABC):
    """Base class for synchronized event output."""

    def __init__(self, stream: TextIO):
        self.stream = stream
        self._stats = WriterStats()
        self._stats_lock = threading.Lock()
        self._closed = False

    @abstractmethod
    def emit(self, text: str) -> None:
        """Write one encoded event. Safe to call from any thread."""

    @abstractmethod
    def close(self) -> None:
        """Write everything pending, flush, and refuse further emits."""

    @property
    def written(self) -> int:
        with self._stats_lock:
            return self._stats.records_written

    def stats(self) -> WriterStats:
        with self._stats_lock:
            return WriterStats(
                records_received=self._stats.records_received,
                records_written=self._stats.records_written,
                errors=self._stats.errors,
            )

    def _write(self, text: str) -> None:
        try:
            self.stream.write(text)
        except OSError as e:
            with self._stats_lock:
                self._stats.errors += 1
            raise OutputError(f"Unable to write event: {e}") from e
        with self._stats_lock:
            self._stats.records_written += 1

    def _flush(self) -> None:
        try:
            self.stream.flush()
        except OSError as e:
            raise OutputError(f"Unable to flush output: {e}") from e

    def __enter__(self) -> "OutputWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class LockedOutput(OutputWriter):
    """
    Serializes writes with one lock.

    Usage:
        out = LockedOutput(sys.stdout)
        out.emit(encoder.encode(record))   # from any thread
        out.close()
    """

    def __init__(self, stream: TextIO):
        super().__init__(stream)
        self._lock = threading.Lock()

    def emit(self, text: str) -> None:
        with self._stats_lock:
            self._stats.records_received += 1
        with self._lock:
            if self._closed:
                raise OutputError("Output is closed")
            self._write(text)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._flush()


class QueuedOutput(OutputWriter):
    """
    Hands every event to one writer thread through a bounded queue.

    emit() blocks only when the queue is full. close() waits until every
    queued event has been written.

    Usage:
        out = QueuedOutput(sys.stdout, queue_size=1024)
        out.start()
        out.emit(text)   # from any thread
        out.close()
    """

    def __init__(self, stream: TextIO, queue_size: int = 1024):
        """
        Args:
            stream: Destination text stream
            queue_size: Max events waiting to be written
        """
        super().__init__(stream)
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._thread: Optional[threading.Thread] = None
        self._state_lock = threading.Lock()
        self._failure: Optional[OutputError] = None

    def start(self) -> None:
        """Start the writer thread."""
        with self._state_lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._writer_loop,
                name="evtq-output-writer",
                daemon=True,
            )
            self._thread.start()

    def emit(self, text: str) -> None:
        if self._closed:
            raise OutputError("Output is closed")
        if self._thread is None:
            self.start()
        with self._stats_lock:
            self._stats.records_received += 1
        self._queue.put(text)

    def _writer_loop(self) -> None:
        """Writer thread main loop."""
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            if self._failure is not None:
                # Destination broken; discard the rest so producers never block
                with self._stats_lock:
                    self._stats.errors += 1
                continue
            try:
                self._write(item)
            except OutputError as e:
                logger.error("%s", e)
                self._failure = e

    def close(self, timeout: Optional[float] = None) -> None:
        """
        Drain the queue, stop the writer thread and flush.

        Raises:
            OutputError: a write failed while draining
        """
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            thread = self._thread

        if thread is not None:
            self._queue.put(_STOP)
            thread.join(timeout=timeout)
            self._thread = None

        self._flush()
        if self._failure is not None:
            raise self._failure
