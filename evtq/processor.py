"""
EventProcessor — Per-event render callback

Called once per raw event by every source, from the backup reader's
thread or from host delivery threads. For each event:

1. Render the system block and user fields (or XML)
2. Encode the record
3. Enforce the optional event limit
4. Count the event in the statistics table and emit it through the pipeline

Events that fail to render or encode take no slot of the limit and are
not counted, so statistics match the events handed to the output.

Returns 0 on success and a non-zero status when the event could not be
rendered or written. Failures are logged and never raised, so one bad
event never stops a source.
"""

import logging
import threading
from typing import Any, Optional

from .core.record import EventRecord
from .core.stats import StatisticsTable
from .errors import OutputError, RenderError
from .output.base import BaseEncoder
from .pipeline.writers import OutputWriter
from .sources.base import EventHost

logger = logging.getLogger(__name__)

EVENT_OK = 0
EVENT_SKIPPED = 0
EVENT_RENDER_FAILED = 1
EVENT_OUTPUT_FAILED = 2


class EventProcessor:
    """
    Thread-safe render callback shared by every source.

    Usage:
        processor = EventProcessor(host, encoder, writer, stats=stats, max_events=100)
        BackupReader(host, path).run(processor, stop=processor.stop)
    """

    def __init__(
        self,
        host: EventHost,
        encoder: BaseEncoder,
        writer: OutputWriter,
        stats: Optional[StatisticsTable] = None,
        max_events: Optional[int] = None,
        stop: Optional[threading.Event] = None,
    ):
        """
        Args:
            host: Host used to render raw events
            encoder: Output encoder
            writer: Synchronized output
            stats: Statistics table, or None to skip counting
            max_events: Stop after this many events (None = unlimited)
            stop: Set once the limit is reached or output fails
        """
        self.host = host
        self.encoder = encoder
        self.writer = writer
        self.stats = stats
        self.max_events = max_events
        self.stop = stop or threading.Event()

        self._lock = threading.Lock()
        self._accepted = 0
        self._failed = 0

    @property
    def accepted(self) -> int:
        with self._lock:
            return self._accepted

    @property
    def failed(self) -> int:
        with self._lock:
            return self._failed

    def _reserve(self) -> bool:
        """Claim an output slot; False once the limit is reached."""
        with self._lock:
            if self.max_events is not None and self._accepted >= self.max_events:
                return False
            self._accepted += 1
            if self.max_events is not None and self._accepted >= self.max_events:
                self.stop.set()
            return True

    def _fail(self) -> None:
        with self._lock:
            self._failed += 1

    def render(self, raw: Any) -> EventRecord:
        """
        Build the EventRecord of one raw event.

        Raises:
            RenderError: the host could not render the event
        """
        system = self.host.render_system(raw)
        if self.encoder.needs_xml:
            return EventRecord(system=system, xml=self.host.render_xml(raw))
        return EventRecord(system=system, fields=tuple(self.host.render_user(raw)))

    def __call__(self, raw: Any) -> int:
        if self.max_events is not None and self.accepted >= self.max_events:
            return EVENT_SKIPPED

        try:
            record = self.render(raw)
        except RenderError as e:
            logger.warning("Unable to render event: %s", e)
            self._fail()
            return EVENT_RENDER_FAILED

        try:
            text = self.encoder.encode(record)
        except (RenderError, TypeError, ValueError) as e:
            logger.warning(
                "Unable to encode record %d of %s: %s",
                record.system.record_id, record.system.provider, e,
            )
            self._fail()
            return EVENT_RENDER_FAILED

        # Only events headed for the output take a slot and are counted
        if not self._reserve():
            return EVENT_SKIPPED

        if self.stats is not None:
            self.stats.increment(record.system.key())

        try:
            self.writer.emit(text)
        except OutputError as e:
            logger.error("%s", e)
            self._fail()
            self.stop.set()
            return EVENT_OUTPUT_FAILED

        return EVENT_OK
