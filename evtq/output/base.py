"""
BaseEncoder — Abstract base class for event encoders

An encoder turns one rendered EventRecord into the exact text written to
the output, trailing newline included. Encoding happens on the thread that
rendered the event, before the output lock is taken, so encoders must not
keep per-call state.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence, Tuple

from ..core.metadata import MetadataRegistry, fallback_name
from ..core.record import EventRecord
from ..core.render import DEFAULT_DATEFMT, format_timestamp
from .columns import Column


class BaseEncoder(ABC):
    """
    Abstract base class for all event encoders.

    Provides:
    - Access to the field-name registry
    - The selected columns (None = the format's own layout)
    - Shared system-column formatting, honouring the date format

    Subclasses must implement encode().
    """

    # Whether the processor must ask the host for the event's XML
    needs_xml = False

    def __init__(
        self,
        registry: Optional[MetadataRegistry] = None,
        columns: Optional[Sequence[Column]] = None,
        datefmt: str = DEFAULT_DATEFMT,
    ):
        self.registry = registry if registry is not None else MetadataRegistry()
        self.selected: Optional[Tuple[Column, ...]] = tuple(columns) if columns is not None else None
        self.datefmt = datefmt

    @abstractmethod
    def encode(self, record: EventRecord) -> str:
        """
        Encode one event.

        Args:
            record: Rendered event

        Returns:
            Encoded text, ending with a newline
        """

    def field_name(self, record: EventRecord, index: int) -> str:
        system = record.system
        name = self.registry.resolve(system.provider, system.event_id, system.version, index)
        return name or fallback_name(index)

    def timestamp(self, record: EventRecord) -> str:
        return format_timestamp(record.system.time_created, self.datefmt)

    def system_value(self, record: EventRecord, name: str) -> Any:
        """Native value of a system column."""
        system = record.system
        if name == "hostname":
            return system.host
        if name == "recordid":
            return system.record_id
        if name == "timestamp":
            return self.timestamp(record)
        if name == "provider":
            return system.provider
        if name == "eventid":
            return system.event_id
        if name == "version":
            return system.version
        raise ValueError(f"Unknown system column '{name}'")
