"""
MetadataRegistry — Field names for positional event properties

User properties arrive from the host as a positional list. Their names live
in each provider's event template. This registry maps

    (provider, event id, version) -> [name of field 0, name of field 1, ...]

Sources, applied in order:
1. populate_from_host(): introspect every registered provider (once)
2. import_file(): merge a JSON cache exported earlier, possibly from
   another machine; cache names win on conflict

The registry is filled single-threaded before any subscription starts and
is read-only afterwards, so lookups take no lock.

Cache file format (UTF-8 JSON, keys sorted, 2-space indent):
    {
      "Microsoft-Windows-Security-Auditing-4624-2": ["SubjectUserSid", ...]
    }
"""

import logging
import re
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

import orjson

from ..errors import MetadataCacheError, SourceError
from .record import MetadataKey

logger = logging.getLogger(__name__)

NAME_MARKER = '<data name="'
NAME_TERMINATOR = '"'
_MARKER_RE = re.compile(re.escape(NAME_MARKER), re.IGNORECASE | re.ASCII)


def fallback_name(index: int) -> str:
    """Synthesized name for a field with no registered name."""
    return f"field{index}"


def parse_template(template: str) -> List[str]:
    """
    Extract field names from an event template, in order of appearance.

    Scans case-insensitively for <data name="X">. Empty names are skipped.

    Raises:
        ValueError: a name is opened but never terminated
    """
    names: List[str] = []
    pos = 0
    while True:
        # Offsets index the template itself, never a case-folded copy
        match = _MARKER_RE.search(template, pos)
        if match is None:
            return names
        start = match.end()
        end = template.find(NAME_TERMINATOR, start)
        if end < 0:
            raise ValueError(f"unterminated field name at offset {start}")
        if end > start:
            names.append(template[start:end])
        pos = end + 1


class MetadataRegistry:
    """Maps metadata keys to ordered field names."""

    def __init__(self):
        self._entries: Dict[str, List[str]] = {}
        self._populated = False

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return str(key) in self._entries

    def keys(self) -> Iterator[str]:
        return iter(sorted(self._entries))

    def entry(self, key: Union[MetadataKey, str]) -> Optional[List[str]]:
        """Copy of the names registered for a key, or None."""
        names = self._entries.get(str(key))
        return list(names) if names is not None else None

    def set_names(self, key: Union[MetadataKey, str], names: List[str]) -> None:
        """Register (or replace) the field names of one key."""
        self._entries[str(key)] = list(names)

    # =========================================================================
    # Lookup
    # =========================================================================

    def resolve(self, provider: str, event_id: int, version: int, index: int) -> Optional[str]:
        """
        Name of field `index` for an event, or None when unknown.

        Empty names (cache padding) count as unknown.
        """
        if index < 0:
            return None
        names = self._entries.get(str(MetadataKey(provider, event_id, version)))
        if names is None or index >= len(names):
            return None
        return names[index] or None

    def field_name(self, provider: str, event_id: int, version: int, index: int) -> str:
        """Like resolve(), but falls back to "field<index>"."""
        return self.resolve(provider, event_id, version, index) or fallback_name(index)

    # =========================================================================
    # Host introspection
    # =========================================================================

    @property
    def populated(self) -> bool:
        return self._populated

    def populate_from_host(self, host) -> int:
        """
        Fill the registry from every provider registered on the host.

        Runs at most once per registry; later calls return 0. Failures on one
        provider or event are logged and skipped.

        Returns:
            Number of entries inserted
        """
        if self._populated:
            return 0
        self._populated = True

        try:
            providers = host.list_providers()
        except SourceError as e:
            logger.warning("Unable to enumerate event providers: %s", e)
            return 0

        inserted = 0
        for provider in providers:
            inserted += self._populate_provider(host, provider)

        logger.info("Loaded metadata for %d events from %d providers", inserted, len(providers))
        return inserted

    def _populate_provider(self, host, provider: str) -> int:
        try:
            handles = host.list_event_descriptors(provider)
        except SourceError as e:
            logger.warning("Unable to open metadata for provider %s: %s", provider, e)
            return 0

        inserted = 0
        for handle in handles:
            try:
                descriptor = host.describe_event(provider, handle)
            except SourceError as e:
                logger.warning("Unable to read event metadata of %s: %s", provider, e)
                continue

            try:
                names = parse_template(descriptor.template or "")
            except ValueError as e:
                logger.warning(
                    "Skipping template of %s event %d: %s",
                    provider, descriptor.event_id, e,
                )
                continue

            if names:
                key = MetadataKey(descriptor.provider or provider,
                                  descriptor.event_id, descriptor.version)
                self._entries[str(key)] = names
                inserted += 1
        return inserted

    # =========================================================================
    # Cache file
    # =========================================================================

    def export(self, path: Union[str, Path]) -> int:
        """
        Write every entry to a JSON cache file.

        Returns:
            Number of entries written

        Raises:
            MetadataCacheError: the file cannot be written
        """
        data = orjson.dumps(self._entries, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS)
        try:
            Path(path).write_bytes(data + b"\n")
        except OSError as e:
            raise MetadataCacheError(f"Unable to write metadata cache {path}: {e}") from e
        logger.info("Exported metadata for %d events to %s", len(self._entries), path)
        return len(self._entries)

    def import_file(self, path: Union[str, Path]) -> int:
        """
        Merge a JSON cache file into the registry.

        New keys are added; existing entries are extended (padded with "")
        and overwritten by index where the cache has a non-empty name.
        Nothing is ever removed or shortened.
        The registry is left untouched when the file is malformed.

        Returns:
            Number of keys merged

        Raises:
            MetadataCacheError: unreadable file, invalid JSON, or wrong shape
        """
        try:
            raw = Path(path).read_bytes()
        except OSError as e:
            raise MetadataCacheError(f"Unable to read metadata cache {path}: {e}") from e

        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise MetadataCacheError(f"Metadata cache {path} is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise MetadataCacheError(
                f"Metadata cache {path} must be a JSON object, got {type(data).__name__}"
            )
        for key, names in data.items():
            if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
                raise MetadataCacheError(
                    f"Metadata cache {path}: entry '{key}' must be an array of strings"
                )

        for key, names in data.items():
            current = self._entries.setdefault(key, [])
            if len(current) < len(names):
                current.extend([""] * (len(names) - len(current)))
            for i, name in enumerate(names):
                if name:
                    current[i] = name

        logger.info("Imported metadata for %d events from %s", len(data), path)
        return len(data)
