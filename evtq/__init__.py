"""
evtq — Windows Event Log collector and normalizer

Reads events from a backup file or live from every channel of a host,
resolves field names, and writes them as JSON, XML, TSV or CSV.

Usage:
    evtq --from-backup security.evtx --to-json events.json
    evtq --from-host dc01 --dump-existing --no-wait --to-csv
    evtq --from-host lab/Admin:Passw0rd@dc01 --to-tsv -s
    evtq --export-metadata fields.json
"""

__version__ = "0.1.0"

from .core import (
    VariantType, VariantField, SystemTime,
    render_scalar, render_structured, sanitize,
    MetadataKey, SystemProperties, EventRecord,
    MetadataRegistry, StatisticsTable,
)
from .errors import (
    EvtqError, ConfigError, SourceError, SubscriptionRejected,
    RenderError, MetadataCacheError, OutputError,
)
from .config import Config, ConfigManager
