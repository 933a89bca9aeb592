"""
XmlEncoder — Host-rendered event XML, one event per line
"""

from ..core.record import EventRecord
from ..errors import RenderError
from .base import BaseEncoder


class XmlEncoder(BaseEncoder):
    """Writes the XML the host rendered for each event."""

    needs_xml = True

    def encode(self, record: EventRecord) -> str:
        if record.xml is None:
            raise RenderError(
                f"No XML rendered for record {record.system.record_id} of {record.system.provider}"
            )
        # Rendered XML may be pretty-printed; keep one event per line
        return " ".join(record.xml.splitlines()) + "\n"
