"""
EventHost — Boundary between evtq and the host's event-logging subsystem

Everything evtq needs from the operating system goes through this abstract
class: reading backups, subscribing to channels, rendering one event's
properties, and introspecting provider metadata. Handles are opaque objects
owned by the implementation; evtq only passes them back and closes them.

Implementations:
- WinEvtHost (evtq.sources.winevt): Windows Event Log via pywin32
- FakeHost (tests/factories.py): in-memory host for tests

Error contract:
- Source-fatal failures raise SourceError
- A channel that cannot be subscribed to raises SubscriptionRejected
- Rendering failures of one event raise RenderError
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Iterator, List, Optional

from ..core.record import SystemProperties
from ..core.variant import VariantField


# Called by the host for every pushed event, possibly from many threads
DeliveryCallback = Callable[[Any], None]


@dataclass(frozen=True)
class EventDescriptor:
    """Schema of one provider event: identity plus its raw field template."""
    provider: str
    event_id: int
    version: int
    template: str


class Credentials:
    """
    Remote login for a live session.

    The password is kept in a mutable buffer so it can be zeroed as soon as
    the session has been opened. Call wipe() after use.
    """

    __slots__ = ("user", "domain", "_password")

    def __init__(self, user: str, password: str = "", domain: Optional[str] = None):
        self.user = user
        self.domain = domain
        self._password = bytearray(password.encode("utf-8"))

    @property
    def password(self) -> str:
        return self._password.decode("utf-8")

    @property
    def wiped(self) -> bool:
        return not any(self._password)

    def wipe(self) -> None:
        """Overwrite the password buffer with zeros."""
        for i in range(len(self._password)):
            self._password[i] = 0

    def __repr__(self) -> str:
        return f"Credentials(user={self.user!r}, domain={self.domain!r})"


class EventHost(ABC):
    """Abstract access to a host's event log."""

    # ----- Backup files -----

    @abstractmethod
    def open_backup(self, path: str) -> Iterator[Any]:
        """
        Open a backup log and iterate its raw events in order.

        The iterator ends at end-of-stream; any other read failure raises
        SourceError. Closing the iterator releases the log handle.

        Raises:
            SourceError: the file cannot be opened
        """

    # ----- Live channels -----

    @abstractmethod
    def open_session(self, hostname: Optional[str], credentials: Optional[Credentials] = None) -> Any:
        """
        Open a session to a host (None = local machine).

        Returns an opaque session handle, or None for the local host.

        Raises:
            SourceError: the host cannot be reached or login fails
        """

    @abstractmethod
    def list_channels(self, session: Any) -> List[str]:
        """
        List every channel path exposed by the host.

        Raises:
            SourceError: channels cannot be enumerated
        """

    @abstractmethod
    def subscribe(self, session: Any, channel: str, replay: bool, callback: DeliveryCallback) -> Any:
        """
        Open a push subscription on one channel.

        Args:
            session: Handle from open_session()
            channel: Channel path
            replay: True to deliver existing records first, False for future records only
            callback: Invoked with each raw event, from host-managed threads

        Raises:
            SubscriptionRejected: the channel is a direct (non-queryable) channel
            SourceError: any other subscription failure
        """

    @abstractmethod
    def close(self, handle: Any) -> None:
        """Release a session or subscription handle (None is ignored)."""

    # ----- Rendering one event -----

    @abstractmethod
    def render_system(self, raw: Any) -> SystemProperties:
        """Render the system property block. Raises RenderError."""

    @abstractmethod
    def render_user(self, raw: Any) -> List[VariantField]:
        """Render the template-defined user properties (may be empty). Raises RenderError."""

    @abstractmethod
    def render_xml(self, raw: Any) -> str:
        """Render the whole event as XML text. Raises RenderError."""

    # ----- Provider metadata -----

    @abstractmethod
    def list_providers(self) -> List[str]:
        """Names of every registered provider. Raises SourceError."""

    @abstractmethod
    def list_event_descriptors(self, provider: str) -> List[Any]:
        """Opaque event-metadata handles of one provider. Raises SourceError."""

    @abstractmethod
    def describe_event(self, provider: str, handle: Any) -> EventDescriptor:
        """Read one event's id, version and template. Raises SourceError."""
