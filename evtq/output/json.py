"""
JsonEncoder — One JSON object per event

Object layout:
    hostname, record_number, timestamp, provider, eventid, version,
    then one key per user field, named from the metadata registry
    (or "field<i>" when unknown)

With a column list, only the selected keys are written, in column order;
a selected user field the event does not have is left out.

Supports:
- Compact mode (default): one object per line, JSON Lines style
- Pretty mode: 2-space indentation for reading
"""

from typing import Any, Dict, Optional, Sequence

import orjson

from ..core.metadata import MetadataRegistry
from ..core.record import EventRecord
from ..core.render import DEFAULT_DATEFMT, render_structured
from .base import BaseEncoder
from .columns import SYSTEM_COLUMN_NAMES, Column

# Column name -> JSON key
SYSTEM_KEYS = {
    "hostname": "hostname",
    "recordid": "record_number",
    "timestamp": "timestamp",
    "provider": "provider",
    "eventid": "eventid",
    "version": "version",
}


class JsonEncoder(BaseEncoder):
    """
    Encode events as JSON with orjson.

    Useful for:
    - Piping to jq or other tools
    - Loading into log analytics platforms
    """

    def __init__(
        self,
        registry: Optional[MetadataRegistry] = None,
        pretty: bool = False,
        columns: Optional[Sequence[Column]] = None,
        datefmt: str = DEFAULT_DATEFMT,
    ):
        """
        Args:
            registry: Field-name registry for user field keys
            pretty: Indent output instead of one object per line
            columns: Keys to write (None = every system key and user field)
            datefmt: Format of the timestamp and of date-typed fields
        """
        super().__init__(registry, columns, datefmt)
        self.pretty = pretty

    def _field(self, obj: Dict[str, Any], record: EventRecord, index: int) -> None:
        obj[self.field_name(record, index)] = render_structured(record.fields[index], self.datefmt)

    def to_dict(self, record: EventRecord) -> Dict[str, Any]:
        """Build the JSON object of one event."""
        obj: Dict[str, Any] = {}
        if self.selected is None:
            for name in SYSTEM_COLUMN_NAMES:
                obj[SYSTEM_KEYS[name]] = self.system_value(record, name)
            for index in range(len(record.fields)):
                self._field(obj, record, index)
            return obj

        for column in self.selected:
            if not column.is_variant:
                obj[SYSTEM_KEYS[column.name]] = self.system_value(record, column.name)
            elif column.index < len(record.fields):
                self._field(obj, record, column.index)
        return obj

    def encode(self, record: EventRecord) -> str:
        option = orjson.OPT_APPEND_NEWLINE
        if self.pretty:
            option |= orjson.OPT_INDENT_2
        return orjson.dumps(self.to_dict(record), option=option).decode("utf-8")
