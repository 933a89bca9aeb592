"""
Columns — User-selected output columns

A column list is a comma-separated string of names:

    hostname, recordid, timestamp, provider, eventid, version
    variantN            user field N (1-indexed)
    ...                 between variantN and variantM: every field in between

Example:
    "timestamp,provider,eventid,variant1,...,variant15"

Used by the TSV, CSV and JSON encoders; XML output is the host's own
rendering and has no columns.
"""

from dataclasses import dataclass
from typing import List, Optional

SYSTEM_COLUMN_NAMES = ("hostname", "recordid", "timestamp", "provider", "eventid", "version")
VARIANT_PREFIX = "variant"
ELLIPSIS = "..."


@dataclass(frozen=True)
class Column:
    """One output column: a system property, or the user field at `index` (0-based)."""
    name: str
    index: Optional[int] = None

    @property
    def is_variant(self) -> bool:
        return self.index is not None


def variant(number: int) -> Column:
    """Column for user field `number` (1-indexed, as written in column lists)."""
    return Column(f"{VARIANT_PREFIX}{number}", number - 1)


def _parse_variant(name: str) -> int:
    digits = name[len(VARIANT_PREFIX):]
    if not digits.isdigit() or int(digits) < 1:
        raise ValueError(f"Unexpected output column name '{name}': expected variantN with N >= 1")
    return int(digits)


def parse_columns(text: str) -> List[Column]:
    """
    Parse a comma-separated column list.

    Raises:
        ValueError: unknown name, bad variant number, or a misplaced "..."
    """
    columns: List[Column] = []
    last_variant: Optional[int] = None
    expand = False

    for raw in text.split(","):
        name = raw.strip().lower()
        if name == ELLIPSIS:
            if last_variant is None or expand:
                raise ValueError("Expecting variantN column name before '...'")
            expand = True
            continue

        if name in SYSTEM_COLUMN_NAMES:
            if expand:
                raise ValueError(f"Expecting variantN column name after '...', got '{name}'")
            columns.append(Column(name))
            last_variant = None
            continue

        if not name.startswith(VARIANT_PREFIX):
            valid = ", ".join(SYSTEM_COLUMN_NAMES + ("variantN", ELLIPSIS))
            raise ValueError(f"Unexpected output column name '{name}'. Valid: {valid}")

        number = _parse_variant(name)
        if expand:
            columns.extend(variant(n) for n in range(last_variant + 1, number))
            expand = False
        columns.append(variant(number))
        last_variant = number

    if expand:
        raise ValueError("Expecting output column name after '...'")
    return columns


# Fixed shape of delimited output when no column list is given
DEFAULT_COLUMNS = tuple(parse_columns(",".join(SYSTEM_COLUMN_NAMES) + ",variant1,...,variant4"))
