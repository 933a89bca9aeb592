"""
Output Module — Event encoders

Separates rendering from serialization: the processor builds an
EventRecord, an encoder turns it into text, the pipeline writes it.

Usage:
    from evtq.output import get_encoder

    encoder = get_encoder("json", registry=registry, pretty=True)
    text = encoder.encode(record)
"""

from typing import Optional, Sequence

from ..core.metadata import MetadataRegistry
from ..core.render import DEFAULT_DATEFMT
from .base import BaseEncoder
from .columns import DEFAULT_COLUMNS, Column, parse_columns
from .delimited import CsvEncoder, DelimitedEncoder, TsvEncoder, TOTAL_COLUMNS
from .json import JsonEncoder
from .xml import XmlEncoder


# =============================================================================
# Format Registry
# =============================================================================

# Maps format name to encoder class
ENCODERS = {
    "json": JsonEncoder,
    "xml": XmlEncoder,
    "tsv": TsvEncoder,
    "csv": CsvEncoder,
}

# Valid format values for config/CLI
VALID_FORMATS = tuple(ENCODERS)


def get_encoder(
    format: str,
    registry: Optional[MetadataRegistry] = None,
    pretty: bool = False,
    columns: Optional[Sequence[Column]] = None,
    datefmt: str = DEFAULT_DATEFMT,
) -> BaseEncoder:
    """
    Get encoder instance for a format.

    Args:
        format: Format name from VALID_FORMATS
        registry: Field-name registry
        pretty: Indent JSON output (ignored by other formats)
        columns: Selected columns (None = the format's default layout; ignored by XML)
        datefmt: Date format for timestamps and date-typed fields (ignored by XML)

    Raises:
        ValueError: If format is invalid
    """
    if format not in ENCODERS:
        valid = ", ".join(ENCODERS.keys())
        raise ValueError(f"Unknown format '{format}'. Valid: {valid}")

    if format == "json":
        return JsonEncoder(registry, pretty=pretty, columns=columns, datefmt=datefmt)
    return ENCODERS[format](registry, columns=columns, datefmt=datefmt)


__all__ = [
    "BaseEncoder", "DelimitedEncoder", "TsvEncoder", "CsvEncoder",
    "JsonEncoder", "XmlEncoder", "ENCODERS", "VALID_FORMATS",
    "TOTAL_COLUMNS", "Column", "DEFAULT_COLUMNS", "parse_columns", "get_encoder",
]
