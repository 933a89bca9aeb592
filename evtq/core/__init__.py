"""
Core — Host-independent event model for evtq

Contains the foundational pieces:
- Variant: Tagged-union field model and payload conversions
- Render: Total text/structured rendering of variant fields
- Record: System properties, metadata keys, rendered events
- Metadata: Field-name registry and its JSON cache
- Stats: Per-provenance event counters
"""

from .variant import VariantType, VariantField, SystemTime, ARRAY_FLAG, TYPE_MASK
from .render import (
    render_scalar, render_structured, render_elements, sanitize, format_timestamp,
    format_systemtime, DEFAULT_DATEFMT,
    UNKNOWN_SID, UNKNOWN_DATE, UNKNOWN_GUID,
)
from .record import MetadataKey, SystemProperties, EventRecord
from .metadata import MetadataRegistry, parse_template, fallback_name
from .stats import StatisticsTable

__all__ = [
    "VariantType", "VariantField", "SystemTime", "ARRAY_FLAG", "TYPE_MASK",
    "render_scalar", "render_structured", "render_elements", "sanitize", "format_timestamp",
    "format_systemtime", "DEFAULT_DATEFMT",
    "UNKNOWN_SID", "UNKNOWN_DATE", "UNKNOWN_GUID",
    "MetadataKey", "SystemProperties", "EventRecord",
    "MetadataRegistry", "parse_template", "fallback_name",
    "StatisticsTable",
]
