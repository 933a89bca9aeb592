"""
Delimited encoders — Fixed column formats (TSV, CSV)

Without a column list every line has exactly 10 columns:

    host, record id, timestamp, provider, event id, version,
    user field 0, user field 1, user field 2, user field 3

Events with more than 4 user fields are truncated; missing fields leave
their column empty. A column list (see columns.py) replaces that layout
with the selected columns, in order.

Values are sanitized to printable ASCII, and the separator itself is
replaced with a space, so a line never has a stray column or line break.
"""

from typing import List, Optional, Sequence

from ..core.metadata import MetadataRegistry
from ..core.record import EventRecord
from ..core.render import DEFAULT_DATEFMT, render_scalar, sanitize
from .base import BaseEncoder
from .columns import DEFAULT_COLUMNS, Column

TOTAL_COLUMNS = len(DEFAULT_COLUMNS)


class DelimitedEncoder(BaseEncoder):
    """Encodes events as separator-joined lines of columns."""

    separator = "\t"

    def __init__(
        self,
        registry: Optional[MetadataRegistry] = None,
        columns: Optional[Sequence[Column]] = None,
        datefmt: str = DEFAULT_DATEFMT,
        separator: Optional[str] = None,
    ):
        super().__init__(registry, columns, datefmt)
        if separator is not None:
            self.separator = separator
        self.layout = self.selected if self.selected is not None else DEFAULT_COLUMNS

    def _clean(self, value: str) -> str:
        return sanitize(value).replace(self.separator, " ")

    def _cell(self, record: EventRecord, column: Column) -> str:
        if not column.is_variant:
            return str(self.system_value(record, column.name))
        if column.index < len(record.fields):
            return render_scalar(record.fields[column.index], self.datefmt)
        return ""

    def columns(self, record: EventRecord) -> List[str]:
        """The column values of one event, unescaped."""
        return [self._cell(record, column) for column in self.layout]

    def encode(self, record: EventRecord) -> str:
        return self.separator.join(self._clean(c) for c in self.columns(record)) + "\n"


class TsvEncoder(DelimitedEncoder):
    separator = "\t"


class CsvEncoder(DelimitedEncoder):
    separator = ","
