"""
Render — Pure rendering of variant fields to text and structured values

Two total functions over every type tag:
- render_scalar(field) -> str         flat text (TSV, CSV, column formats)
- render_structured(field) -> value   JSON-like (str, int, float, bool, None, list)

Neither ever raises. Unknown tags and unusable payloads render a sentinel:
"<type=N ?>" in text, "<unknown field type N>" in structured output.
Conversion failures of SIDs and dates render "<unknown SID?>" and
"<unknown date?>" and are logged as warnings.

Arrays: render_elements() yields one rendered string per element; joining
is the encoder's concern. render_scalar() joins them as "[a,b,c]", the
flat-text convention. An array payload that is not a sequence renders the
sentinel of its tag.

Date-typed fields (FILE_TIME, SYS_TIME) take an optional `datefmt`; see
format_systemtime() for the directives.
"""

import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from .variant import (
    SystemTime,
    VariantField,
    VariantType,
    array_elements,
    filetime_to_datetime,
    guid_to_string,
    sid_to_string,
)

logger = logging.getLogger(__name__)

UNKNOWN_SID = "<unknown SID?>"
UNKNOWN_DATE = "<unknown date?>"
UNKNOWN_GUID = "<unknown GUID?>"

PRINTABLE_MIN = 0x20
PRINTABLE_MAX = 0x7E


def sanitize(text: str) -> str:
    """
    Replace every character outside printable ASCII with a single space.

    Length is preserved, so column-based formats never break on embedded
    control characters, newlines or non-ASCII text.
    """
    return "".join(
        ch if PRINTABLE_MIN <= ord(ch) <= PRINTABLE_MAX else " "
        for ch in text
    )


def unknown_text(tag: int) -> str:
    return f"<type={tag} ?>"


def unknown_structured(tag: int) -> str:
    return f"<unknown field type {tag}>"


# =============================================================================
# Element formatters
# =============================================================================

DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S%.3f"

# Directives understood by date formats; anything else is copied verbatim
_DATE_DIRECTIVE = re.compile(r"%(\.3f|[YmdHMSz])")


def format_systemtime(st: SystemTime, datefmt: str = DEFAULT_DATEFMT) -> str:
    """
    Expand a date format for one UTC instant.

    Directives: %Y %m %d %H %M %S, %.3f (".mmm") and %z (always "+0000").

    Raises:
        ValueError: the instant is not a valid calendar date
    """
    # Reject impossible calendar values carried by SYS_TIME payloads
    datetime(st.year, st.month, st.day, st.hour, st.minute, st.second)
    if not 0 <= st.millisecond <= 999:
        raise ValueError(f"millisecond out of range: {st.millisecond}")

    values = {
        "Y": f"{st.year:04d}",
        "m": f"{st.month:02d}",
        "d": f"{st.day:02d}",
        "H": f"{st.hour:02d}",
        "M": f"{st.minute:02d}",
        "S": f"{st.second:02d}",
        ".3f": f".{st.millisecond:03d}",
        "z": "+0000",
    }
    return _DATE_DIRECTIVE.sub(lambda m: values[m.group(1)], datefmt)


def format_timestamp(value: Any, datefmt: str = DEFAULT_DATEFMT) -> str:
    """Format a FILE_TIME, SYS_TIME or datetime payload (default YYYY-MM-DD HH:MM:SS.mmm)."""
    try:
        if isinstance(value, SystemTime):
            st = value
        elif isinstance(value, datetime):
            st = SystemTime.from_datetime(value)
        else:
            st = SystemTime.from_datetime(filetime_to_datetime(value))
        return format_systemtime(st, datefmt)
    except (TypeError, ValueError) as e:
        logger.warning("Failed to convert date value %r: %s", value, e)
        return UNKNOWN_DATE


def _format_systime(value: Any, datefmt: str = DEFAULT_DATEFMT) -> str:
    if isinstance(value, (SystemTime, datetime)):
        return format_timestamp(value, datefmt)
    if isinstance(value, (tuple, list)) and len(value) in (6, 7):
        return format_timestamp(SystemTime(*value), datefmt)
    logger.warning("Failed to convert system time value %r", value)
    return UNKNOWN_DATE


def _format_sid(value: Any) -> str:
    try:
        return sid_to_string(value)
    except ValueError as e:
        logger.warning("Failed to convert SID to string: %s", e)
        return UNKNOWN_SID


def _format_guid(value: Any) -> str:
    try:
        return guid_to_string(value)
    except ValueError as e:
        logger.warning("Failed to convert GUID to string: %s", e)
        return UNKNOWN_GUID


def _format_text(value: Any) -> str:
    return "" if value is None else str(value)


def _format_ansi(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("latin-1")
    return _format_text(value)


def _format_binary(value: Any) -> str:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise TypeError(f"binary payload must be bytes, got {type(value).__name__}")
    return bytes(value).hex().upper()


def _format_float(value: Any) -> str:
    return f"{float(value):f}"


def _format_bool(value: Any) -> str:
    return "true" if value else "false"


def _format_int(value: Any) -> str:
    return str(int(value))


def _format_hex32(value: Any) -> str:
    return f"{int(value):04X}"


def _format_hex64(value: Any) -> str:
    return f"{int(value):08X}"


def _format_null(value: Any) -> str:
    return ""


# One (text, structured) formatter pair per VariantType member.
Formatter = Callable[[Any], Any]

FORMATTERS: Dict[VariantType, Tuple[Formatter, Formatter]] = {
    VariantType.NULL: (_format_null, lambda v: None),
    VariantType.STRING: (_format_text, _format_text),
    VariantType.ANSI_STRING: (_format_ansi, _format_ansi),
    VariantType.SBYTE: (_format_int, int),
    VariantType.BYTE: (_format_int, int),
    VariantType.INT16: (_format_int, int),
    VariantType.UINT16: (_format_int, int),
    VariantType.INT32: (_format_int, int),
    VariantType.UINT32: (_format_int, int),
    VariantType.INT64: (_format_int, int),
    VariantType.UINT64: (_format_int, int),
    VariantType.SIZE_T: (_format_int, int),
    VariantType.SINGLE: (_format_float, float),
    VariantType.DOUBLE: (_format_float, float),
    VariantType.BOOLEAN: (_format_bool, bool),
    VariantType.BINARY: (_format_binary, _format_binary),
    VariantType.GUID: (_format_guid, _format_guid),
    VariantType.FILE_TIME: (format_timestamp, format_timestamp),
    VariantType.SYS_TIME: (_format_systime, _format_systime),
    VariantType.SID: (_format_sid, _format_sid),
    VariantType.HEX_INT32: (_format_hex32, int),
    VariantType.HEX_INT64: (_format_hex64, int),
    VariantType.EVT_XML: (_format_text, _format_text),
}


DATE_TYPES = frozenset({VariantType.FILE_TIME, VariantType.SYS_TIME})


def _render_element(tag: int, value: Any, structured: bool, datefmt: str = DEFAULT_DATEFMT) -> Any:
    try:
        kind = VariantType(tag)
    except ValueError:
        return unknown_structured(tag) if structured else unknown_text(tag)

    fmt = FORMATTERS[kind][1 if structured else 0]
    try:
        if kind in DATE_TYPES:
            return fmt(value, datefmt)
        return fmt(value)
    except (TypeError, ValueError, OverflowError) as e:
        logger.debug("Unusable %s payload %r: %s", kind.name, value, e)
        return unknown_structured(tag) if structured else unknown_text(tag)


def _array_items(field: VariantField) -> Optional[Tuple[Any, ...]]:
    """Elements of an array field, or None when the payload is not a sequence."""
    items = array_elements(field.value)
    if items is None:
        logger.warning("Unusable array payload for type %d: %r", field.type, field.value)
    return items


# =============================================================================
# Public API
# =============================================================================

def render_elements(field: VariantField, datefmt: str = DEFAULT_DATEFMT) -> List[str]:
    """
    Render each element of a field as text (a one-item list for scalars).

    An array whose payload is not a sequence renders as one sentinel element.
    """
    if not field.is_array:
        return [_render_element(field.type, field.value, False, datefmt)]
    items = _array_items(field)
    if items is None:
        return [unknown_text(field.type)]
    return [_render_element(field.type, item, False, datefmt) for item in items]


def render_scalar(field: VariantField, datefmt: str = DEFAULT_DATEFMT) -> str:
    """
    Render a field to display text.

    Scalars render by their type's rule; arrays render as "[a,b,c]".
    Array payloads that are not sequences render the bare tag sentinel.
    """
    if field.is_array:
        if _array_items(field) is None:
            return unknown_text(field.type)
        return "[" + ",".join(render_elements(field, datefmt)) + "]"
    return _render_element(field.type, field.value, False, datefmt)


def render_structured(field: VariantField, datefmt: str = DEFAULT_DATEFMT) -> Any:
    """Render a field to a JSON-like value (a list for arrays)."""
    if field.is_array:
        items = _array_items(field)
        if items is None:
            return unknown_structured(field.type)
        return [_render_element(field.type, item, True, datefmt) for item in items]
    return _render_element(field.type, field.value, True, datefmt)
