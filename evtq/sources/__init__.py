"""
Sources — Where raw events come from

- base: EventHost contract, Credentials, EventDescriptor
- backup: BackupReader (offline .evtx/.evt replay)
- live: LiveMultiplexer (push subscriptions on every channel)
- winevt: WinEvtHost (Windows Event Log via pywin32, imported on demand)
"""

from .base import Credentials, DeliveryCallback, EventDescriptor, EventHost
from .backup import BackupReader, ReaderState
from .live import ChannelSubscription, LiveMultiplexer, LiveState

__all__ = [
    "Credentials", "DeliveryCallback", "EventDescriptor", "EventHost",
    "BackupReader", "ReaderState",
    "ChannelSubscription", "LiveMultiplexer", "LiveState",
]
