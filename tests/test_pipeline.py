"""
Tests for the synchronized output pipeline

These tests validate:
- K concurrent emitters produce K whole, non-interleaved records
- Both strategies (lock, single writer thread) keep that guarantee
- close() drains pending records, flushes, and refuses later emits
- Write failures surface as OutputError
"""

import io
import threading
import time

import orjson
import pytest

from evtq.errors import OutputError
from evtq.pipeline import LockedOutput, QueuedOutput, make_writer


class ChunkedStream(io.StringIO):
    """A stream that writes one character at a time, yielding between them."""

    def write(self, text):
        for ch in text:
            super().write(ch)
            # Give other threads a chance to interleave if unsynchronized
            time.sleep(0)
        return len(text)


class FailingStream(io.StringIO):
    def write(self, text):
        raise OSError("disk full")


def emit_concurrently(writer, count):
    barrier = threading.Barrier(count)

    def worker(n):
        record = orjson.dumps({"thread": n, "payload": "x" * 50}).decode() + "\n"
        barrier.wait()
        writer.emit(record)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()


def parse_records(text):
    return [orjson.loads(line) for line in text.splitlines()]


@pytest.fixture(params=["locked", "queued"])
def mode(request):
    return request.param


class TestConcurrentEmit:
    """Per-event atomicity under concurrency."""

    @pytest.mark.parametrize("count", [64, 128])
    def test_records_never_interleave(self, mode, count):
        stream = ChunkedStream()
        writer = make_writer(stream, mode, queue_size=8)
        emit_concurrently(writer, count)
        writer.close()

        records = parse_records(stream.getvalue())
        assert len(records) == count
        assert sorted(r["thread"] for r in records) == list(range(count))
        assert writer.written == count

    def test_stats(self, mode):
        writer = make_writer(io.StringIO(), mode)
        emit_concurrently(writer, 10)
        writer.close()
        stats = writer.stats()
        assert stats.records_received == 10
        assert stats.records_written == 10
        assert stats.to_dict()["pending"] == 0


class TestLifecycle:
    """close() semantics."""

    def test_emit_after_close_rejected(self, mode):
        writer = make_writer(io.StringIO(), mode)
        writer.close()
        with pytest.raises(OutputError):
            writer.emit("late\n")

    def test_close_is_idempotent(self, mode):
        writer = make_writer(io.StringIO(), mode)
        writer.emit("a\n")
        writer.close()
        writer.close()
        assert writer.written == 1

    def test_context_manager(self):
        stream = io.StringIO()
        with LockedOutput(stream) as writer:
            writer.emit("one\n")
        assert stream.getvalue() == "one\n"

    def test_queued_drains_on_close(self):
        """Everything queued before close() is written, in queue order."""
        stream = io.StringIO()
        writer = QueuedOutput(stream, queue_size=4)
        writer.start()
        for n in range(100):
            writer.emit(f"{n}\n")
        writer.close()
        assert stream.getvalue().splitlines() == [str(n) for n in range(100)]

    def test_queued_starts_lazily(self):
        stream = io.StringIO()
        writer = QueuedOutput(stream)
        writer.emit("x\n")
        writer.close()
        assert stream.getvalue() == "x\n"

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            make_writer(io.StringIO(), "parallel")


class TestFailures:
    """Destination errors."""

    def test_locked_write_failure(self):
        writer = LockedOutput(FailingStream())
        with pytest.raises(OutputError, match="disk full"):
            writer.emit("x\n")
        assert writer.stats().errors == 1

    def test_queued_write_failure_raised_on_close(self):
        writer = QueuedOutput(FailingStream())
        writer.start()
        writer.emit("x\n")
        writer.emit("y\n")
        with pytest.raises(OutputError, match="disk full"):
            writer.close()
        assert writer.written == 0
