"""
Errors — Exception hierarchy for evtq

All evtq-specific errors inherit from EvtqError for easy catching.

Severity mapping:
- SourceError: the requested log, host or session cannot be used (source-fatal)
- SubscriptionRejected: one channel refused a subscription (per-item, recoverable)
- RenderError: one event could not be rendered (per-item, recoverable)
- MetadataCacheError: a field-name cache file could not be read or parsed
"""

from typing import Optional


class EvtqError(Exception):
    """Base error for all evtq operations."""


class ConfigError(EvtqError):
    """Invalid or missing configuration."""


class SourceError(EvtqError):
    """
    Error raised by the event source layer.

    Carries the host error code when one is known, so callers can
    propagate it as a process exit status.
    """

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class SubscriptionRejected(SourceError):
    """A channel cannot be subscribed to (direct, non-queryable channel)."""


class RenderError(EvtqError):
    """An event's properties could not be rendered by the host."""


class MetadataCacheError(EvtqError):
    """Malformed or unreadable field-name cache file."""


class OutputError(EvtqError):
    """The output destination cannot be opened or written to."""
