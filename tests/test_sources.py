"""
Tests for event sources — backup replay and the live multiplexer

These tests validate:
- Backup replay forwards every record once, in order, and releases the log
- Read and callback failures propagate after closing the log, leaving FAILED
- Live runs subscribe to every usable channel and skip the rest
- Quiescence ends non-follow runs only after a quiet interval
- Follow runs end on the stop event, closing every subscription
- Remote credentials are wiped once the session is open
"""

import logging
import threading
import time

import pytest

from evtq.errors import SourceError
from evtq.sources.backup import BackupReader, ReaderState
from evtq.sources.base import Credentials
from evtq.sources.live import LiveMultiplexer, LiveState
from tests.factories import make_event


class Collector:
    """Thread-safe callback recording delivery times."""

    def __init__(self):
        self.lock = threading.Lock()
        self.events = []
        self.times = []

    def __call__(self, raw):
        with self.lock:
            self.events.append(raw)
            self.times.append(time.monotonic())
        return 0


# =============================================================================
# Backup
# =============================================================================

class TestBackupReader:
    """Sequential replay of backup files."""

    def test_three_records_then_end(self, fake_host):
        """Three records give exactly three callbacks and a clean finish."""
        events = [make_event(record_id=n) for n in (1, 2, 3)]
        fake_host.add_backup("app.evtx", events)
        collected = Collector()

        reader = BackupReader(fake_host, "app.evtx")
        assert reader.run(collected) == 3
        assert collected.events == events
        assert reader.state is ReaderState.EXHAUSTED
        assert fake_host.open_handles() == []

    def test_empty_backup(self, fake_host):
        fake_host.add_backup("empty.evtx", [])
        reader = BackupReader(fake_host, "empty.evtx")
        assert reader.run(Collector()) == 0
        assert reader.state is ReaderState.EXHAUSTED

    def test_missing_file(self, fake_host):
        reader = BackupReader(fake_host, "missing.evtx")
        with pytest.raises(SourceError):
            reader.run(Collector())
        assert reader.state is ReaderState.FAILED

    def test_read_failure_propagates(self, fake_host):
        """A failed read stops replay, marks FAILED and closes the log."""
        fake_host.add_backup("bad.evtx", [make_event(record_id=n) for n in range(5)], fail_after=2)
        collected = Collector()
        reader = BackupReader(fake_host, "bad.evtx")
        with pytest.raises(SourceError) as exc_info:
            reader.run(collected)
        assert exc_info.value.code == 13
        assert len(collected.events) == 2
        assert reader.state is ReaderState.FAILED
        assert fake_host.open_handles() == []

    def test_callback_failure_marks_failed(self, fake_host):
        """Any exception ends replay in FAILED and still closes the log."""
        fake_host.add_backup("app.evtx", [make_event(record_id=n) for n in range(3)])

        def callback(raw):
            raise RuntimeError("callback exploded")

        reader = BackupReader(fake_host, "app.evtx")
        with pytest.raises(RuntimeError):
            reader.run(callback)
        assert reader.state is ReaderState.FAILED
        assert fake_host.open_handles() == []

    def test_open_failure_of_any_kind_marks_failed(self, fake_host, monkeypatch):
        def open_backup(path):
            raise PermissionError(path)

        monkeypatch.setattr(fake_host, "open_backup", open_backup)
        reader = BackupReader(fake_host, "locked.evtx")
        with pytest.raises(PermissionError):
            reader.run(Collector())
        assert reader.state is ReaderState.FAILED

    def test_stop_event(self, fake_host):
        """Replay stops before the next record once stop is set."""
        fake_host.add_backup("big.evtx", [make_event(record_id=n) for n in range(10)])
        stop = threading.Event()

        def callback(raw):
            if raw.system.record_id == 3:
                stop.set()

        reader = BackupReader(fake_host, "big.evtx")
        assert reader.run(callback, stop=stop) == 4
        assert fake_host.open_handles() == []


# =============================================================================
# Live
# =============================================================================

class TestLiveMultiplexer:
    """Push subscriptions across channels."""

    def test_two_channels_quiescence(self, fake_host):
        """Two channels of 5 events: 10 processed, stop no earlier than one quiet interval."""
        fake_host.add_channel("Application", [make_event(record_id=n, channel="Application") for n in range(5)])
        fake_host.add_channel("System", [make_event(record_id=n, channel="System") for n in range(5)])
        collected = Collector()
        interval = 0.2

        mux = LiveMultiplexer(fake_host, quiescence_interval=interval)
        assert mux.run(collected, replay=True, follow=False) == 10
        finished = time.monotonic()

        assert len(collected.events) == 10
        assert finished - max(collected.times) >= interval
        assert mux.state is LiveState.DONE
        assert sorted(mux.subscribed) == ["Application", "System"]
        assert fake_host.open_handles() == []

    def test_future_mode_skips_backlog(self, fake_host):
        fake_host.add_channel("Application", [make_event(record_id=1)])
        collected = Collector()
        mux = LiveMultiplexer(fake_host, quiescence_interval=0.05)
        assert mux.run(collected, replay=False, follow=False) == 0
        assert collected.events == []

    def test_waits_while_events_keep_arriving(self, fake_host):
        """A steady trickle of events keeps a non-follow run alive."""
        fake_host.add_channel("Security")
        collected = Collector()
        mux = LiveMultiplexer(fake_host, quiescence_interval=0.3)
        result = {}

        runner = threading.Thread(target=lambda: result.setdefault("n", mux.run(collected, follow=False)))
        runner.start()
        while "Security" not in fake_host.subscriptions:
            time.sleep(0.01)
        for n in range(8):
            fake_host.push("Security", make_event(record_id=n))
            time.sleep(0.05)
        fake_host.wait_pushed()
        runner.join(timeout=5)

        assert not runner.is_alive()
        assert result["n"] == 8
        assert len(collected.events) == 8

    def test_direct_channel_skipped_silently(self, fake_host, caplog):
        fake_host.add_channel("Microsoft-Windows-Kernel-Power/Diagnostic", direct=True)
        fake_host.add_channel("Application")
        mux = LiveMultiplexer(fake_host, quiescence_interval=0.05)
        with caplog.at_level(logging.WARNING):
            mux.run(Collector())
        assert mux.subscribed == ["Application"]
        assert "Kernel-Power" not in caplog.text

    def test_failing_channel_logged_and_skipped(self, fake_host, caplog):
        fake_host.add_channel("Locked", error="access denied")
        fake_host.add_channel("Application", [make_event()])
        collected = Collector()
        mux = LiveMultiplexer(fake_host, quiescence_interval=0.05)
        with caplog.at_level(logging.WARNING):
            assert mux.run(collected, replay=True) == 1
        assert mux.subscribed == ["Application"]
        assert "Locked" in caplog.text

    def test_follow_until_stop(self, fake_host):
        """Follow mode runs until cancelled, then closes every subscription."""
        fake_host.add_channel("Application")
        fake_host.add_channel("System")
        stop = threading.Event()
        collected = Collector()
        mux = LiveMultiplexer(fake_host, quiescence_interval=0.05, stop=stop)

        runner = threading.Thread(target=mux.run, args=(collected,), kwargs={"follow": True})
        runner.start()
        while len(fake_host.subscriptions) < 2:
            time.sleep(0.01)

        fake_host.push("Application", make_event(record_id=1))
        fake_host.push("System", make_event(record_id=2))
        fake_host.wait_pushed()
        time.sleep(0.2)
        assert runner.is_alive()

        stop.set()
        runner.join(timeout=5)
        assert not runner.is_alive()
        assert len(collected.events) == 2
        assert mux.state is LiveState.DONE
        assert fake_host.open_handles() == []

    def test_remote_session_wipes_password(self, fake_host):
        fake_host.add_channel("Application")
        creds = Credentials(user="Admin", password="MyPassw0rd", domain="lab1")
        mux = LiveMultiplexer(fake_host, hostname="server1.lab", credentials=creds, quiescence_interval=0.05)
        mux.run(Collector())

        session = fake_host.sessions[0]
        assert session["hostname"] == "server1.lab"
        assert (session["domain"], session["user"], session["password"]) == ("lab1", "Admin", "MyPassw0rd")
        assert creds.wiped
        assert fake_host.open_handles() == []

    def test_channels_listing(self, fake_host):
        fake_host.add_channel("Application")
        fake_host.add_channel("Security")
        mux = LiveMultiplexer(fake_host)
        assert mux.channels() == ["Application", "Security"]


class TestCredentials:
    """Password buffer handling."""

    def test_wipe_zeroes_buffer(self):
        creds = Credentials("user", "secret")
        assert creds.password == "secret"
        creds.wipe()
        assert creds.wiped
        assert creds.password == "\x00" * 6

    def test_repr_hides_password(self):
        assert "secret" not in repr(Credentials("user", "secret", "dom"))
