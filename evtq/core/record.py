"""
Record — Event record and provenance key

SystemProperties is the fixed block every event carries regardless of its
provider's schema. EventRecord bundles it with the provider-defined user
fields (possibly none) and, for XML output, the host-rendered XML.
"""

from dataclasses import dataclass, field
from typing import NamedTuple, Optional, Tuple

from .variant import VariantField


class MetadataKey(NamedTuple):
    """(provider, event id, version); provider comparison is case-sensitive."""
    provider: str
    event_id: int
    version: int

    def __str__(self) -> str:
        return f"{self.provider}-{self.event_id}-{self.version}"


@dataclass(frozen=True)
class SystemProperties:
    """
    Mandatory system block of an event.

    Attributes:
        host: Computer name that logged the event
        record_id: Record number within its channel
        time_created: FILE_TIME tick count (100ns since 1601-01-01 UTC)
        provider: Provider name
        event_id: Provider-scoped event identifier
        version: Event template version
        channel: Channel the event was read from, when known
    """
    host: str
    record_id: int
    time_created: int
    provider: str
    event_id: int
    version: int
    channel: Optional[str] = None

    def key(self) -> MetadataKey:
        return MetadataKey(self.provider, self.event_id, self.version)


@dataclass(frozen=True)
class EventRecord:
    """A rendered event: system block, user fields, optional raw XML."""
    system: SystemProperties
    fields: Tuple[VariantField, ...] = field(default_factory=tuple)
    xml: Optional[str] = None
