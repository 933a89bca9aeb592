"""
Variant — Tagged-union field model for event properties

Every event property delivered by the host is a variant: a type tag plus a
payload, optionally an array of same-typed values. VariantField mirrors that
shape without any host dependency, so rendering is pure and testable.

Design principles:
- Tags keep the host's numeric codes (VariantType values)
- Unknown tags are representable; consumers must stay total over them
- Fields are immutable once built and discarded after rendering
"""

import struct
import uuid
from collections import abc
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, NamedTuple, Optional, Sequence, Tuple


# Host flag marking an array variant, and mask for the base type
ARRAY_FLAG = 0x80
TYPE_MASK = 0x7F

FILETIME_EPOCH = datetime(1601, 1, 1, tzinfo=timezone.utc)


class VariantType(IntEnum):
    """Variant type tags, numbered like the host's EVT_VARIANT_TYPE."""
    NULL = 0
    STRING = 1
    ANSI_STRING = 2
    SBYTE = 3
    BYTE = 4
    INT16 = 5
    UINT16 = 6
    INT32 = 7
    UINT32 = 8
    INT64 = 9
    UINT64 = 10
    SINGLE = 11
    DOUBLE = 12
    BOOLEAN = 13
    BINARY = 14
    GUID = 15
    SIZE_T = 16
    FILE_TIME = 17
    SYS_TIME = 18
    SID = 19
    HEX_INT32 = 20
    HEX_INT64 = 21
    EVT_XML = 35


INTEGER_TYPES = frozenset({
    VariantType.SBYTE, VariantType.BYTE,
    VariantType.INT16, VariantType.UINT16,
    VariantType.INT32, VariantType.UINT32,
    VariantType.INT64, VariantType.UINT64,
    VariantType.SIZE_T,
})


class SystemTime(NamedTuple):
    """Broken-down calendar time, as carried by SYS_TIME variants."""
    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int
    millisecond: int = 0

    @classmethod
    def from_datetime(cls, value: datetime) -> 'SystemTime':
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return cls(value.year, value.month, value.day, value.hour,
                   value.minute, value.second, value.microsecond // 1000)


@dataclass(frozen=True)
class VariantField:
    """
    One typed event property.

    Attributes:
        type: Raw type tag (a VariantType value, or an unknown code)
        value: Scalar payload, or a sequence of payloads when is_array
        is_array: True when value holds an ordered sequence of elements
    """
    type: int
    value: Any = None
    is_array: bool = False

    @property
    def kind(self) -> Optional[VariantType]:
        """The known VariantType for this tag, or None for unknown tags."""
        try:
            return VariantType(self.type)
        except ValueError:
            return None

    @property
    def count(self) -> int:
        """Number of elements (1 for scalars, 0 for unusable array payloads)."""
        if not self.is_array:
            return 1
        return len(array_elements(self.value) or ())

    @classmethod
    def scalar(cls, kind: int, value: Any) -> 'VariantField':
        return cls(type=int(kind), value=value, is_array=False)

    @classmethod
    def array(cls, kind: int, values: Sequence[Any]) -> 'VariantField':
        return cls(type=int(kind), value=tuple(values), is_array=True)

    @classmethod
    def from_host(cls, value: Any, type_code: int) -> 'VariantField':
        """Build a field from a host (value, type) pair, honouring the array flag."""
        if type_code & ARRAY_FLAG:
            items = array_elements(value)
            # Unusable payloads are kept as-is; the renderer turns them into sentinels
            payload = items if items is not None else value
            return cls(type=type_code & TYPE_MASK, value=payload, is_array=True)
        return cls.scalar(type_code, value)


# =============================================================================
# Payload conversions
# =============================================================================

def array_elements(value: Any) -> Optional[Tuple[Any, ...]]:
    """
    Elements of an array payload as a tuple, or None when it is not a sequence.

    None is an empty array. Text and byte strings are not arrays.
    """
    if value is None:
        return ()
    if isinstance(value, (str, bytes, bytearray)) or not isinstance(value, abc.Sequence):
        return None
    return tuple(value)


def filetime_to_datetime(ticks: int) -> datetime:
    """
    Convert a count of 100ns intervals since 1601-01-01 UTC to a datetime.

    Raises:
        ValueError: ticks is negative, not an integer, or out of datetime range
    """
    if isinstance(ticks, bool) or not isinstance(ticks, int):
        raise ValueError(f"FILETIME must be an integer, got {type(ticks).__name__}")
    if ticks < 0:
        raise ValueError(f"FILETIME out of range: {ticks}")
    try:
        return FILETIME_EPOCH + timedelta(microseconds=ticks // 10)
    except OverflowError as e:
        raise ValueError(f"FILETIME out of range: {ticks}") from e


def datetime_to_filetime(value: datetime) -> int:
    """Inverse of filetime_to_datetime (naive datetimes are taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - FILETIME_EPOCH
    return (delta.days * 86_400 + delta.seconds) * 10_000_000 + delta.microseconds * 10


def guid_to_string(value: Any) -> str:
    """
    Format a GUID as {XXXXXXXX-XXXX-XXXX-XXXX-XXXXXXXXXXXX}.

    Accepts a uuid.UUID, 16 bytes in host (little-endian) layout, or a
    string in any form uuid.UUID understands.

    Raises:
        ValueError: value cannot be interpreted as a GUID
    """
    if isinstance(value, uuid.UUID):
        guid = value
    elif isinstance(value, (bytes, bytearray)):
        if len(value) != 16:
            raise ValueError(f"GUID must be 16 bytes, got {len(value)}")
        guid = uuid.UUID(bytes_le=bytes(value))
    elif isinstance(value, str):
        guid = uuid.UUID(value.strip())
    else:
        raise ValueError(f"Unsupported GUID payload: {type(value).__name__}")
    return "{" + str(guid).upper() + "}"


def sid_to_string(value: Any) -> str:
    """
    Convert a binary SID to its canonical S-1-... form.

    Strings already in canonical form are returned unchanged.

    Raises:
        ValueError: malformed SID
    """
    if isinstance(value, str):
        if value.upper().startswith("S-1-"):
            return value
        raise ValueError(f"Not a string SID: {value!r}")
    if not isinstance(value, (bytes, bytearray)):
        raise ValueError(f"Unsupported SID payload: {type(value).__name__}")

    data = bytes(value)
    if len(data) < 8:
        raise ValueError("SID shorter than its header")
    revision, count = data[0], data[1]
    if revision != 1 or count > 15 or len(data) < 8 + 4 * count:
        raise ValueError("Malformed SID header")

    authority = int.from_bytes(data[2:8], "big")
    subauthorities = struct.unpack_from(f"<{count}I", data, 8)
    if authority >= 2 ** 32:
        parts = [f"S-{revision}", f"0x{authority:012X}"]
    else:
        parts = [f"S-{revision}", str(authority)]
    parts.extend(str(sub) for sub in subauthorities)
    return "-".join(parts)


def string_to_sid(text: str) -> bytes:
    """Encode a canonical string SID into its binary form."""
    parts = text.split("-")
    if len(parts) < 3 or parts[0].upper() != "S":
        raise ValueError(f"Not a string SID: {text!r}")
    revision = int(parts[1])
    authority = int(parts[2], 16) if parts[2].lower().startswith("0x") else int(parts[2])
    subauthorities = [int(p) for p in parts[3:]]
    return (
        bytes([revision, len(subauthorities)])
        + authority.to_bytes(6, "big")
        + struct.pack(f"<{len(subauthorities)}I", *subauthorities)
    )
