"""
LiveMultiplexer — Push subscriptions on every channel of a host

Subscribes to all channels of a (local or remote) host and funnels every
delivered event into one callback. Delivery happens on host-managed
threads, so the callback must be thread-safe.

States:
    ENUMERATING -> SUBSCRIBED -> DRAINING -> DONE

Termination:
- follow=False: the host gives no end-of-stream signal for push
  subscriptions, so the main thread samples a delivery counter every
  `quiescence_interval` seconds and stops once a whole interval passes
  with no new event.
- follow=True: runs until the stop event is set (Ctrl-C in the CLI).

Every subscription and the session are closed on the way out.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

from ..errors import SubscriptionRejected, SourceError
from .base import Credentials, EventHost

logger = logging.getLogger(__name__)


class LiveState(Enum):
    ENUMERATING = "enumerating"
    SUBSCRIBED = "subscribed"
    DRAINING = "draining"
    DONE = "done"


@dataclass
class ChannelSubscription:
    """One open subscription: channel path, host handle, delivery mode."""
    channel: str
    handle: Any
    replay: bool


class LiveMultiplexer:
    """
    Multiplexes events from every subscribable channel of a host.

    Usage:
        mux = LiveMultiplexer(host, hostname="dc01", credentials=creds)
        count = mux.run(processor, replay=True, follow=False)
    """

    def __init__(
        self,
        host: EventHost,
        hostname: Optional[str] = None,
        credentials: Optional[Credentials] = None,
        quiescence_interval: float = 1.0,
        stop: Optional[threading.Event] = None,
    ):
        """
        Args:
            host: Event host adapter
            hostname: Remote host name (None = local machine)
            credentials: Remote login; its password is wiped once the session is opened
            quiescence_interval: Seconds without events before a non-follow run ends
            stop: Cancellation event shared with the caller
        """
        self.host = host
        self.hostname = hostname
        self.credentials = credentials
        self.quiescence_interval = quiescence_interval
        self.stop = stop or threading.Event()

        self.state = LiveState.ENUMERATING
        self.subscriptions: List[ChannelSubscription] = []

        self._session: Any = None
        self._lock = threading.Lock()
        self._delivered = 0

    @property
    def delivered(self) -> int:
        with self._lock:
            return self._delivered

    @property
    def subscribed(self) -> List[str]:
        return [sub.channel for sub in self.subscriptions]

    # =========================================================================
    # Session
    # =========================================================================

    def _open_session(self) -> None:
        try:
            self._session = self.host.open_session(self.hostname, self.credentials)
        finally:
            if self.credentials is not None:
                self.credentials.wipe()

    def _close_all(self) -> None:
        for sub in self.subscriptions:
            try:
                self.host.close(sub.handle)
            except SourceError as e:
                logger.warning("Unable to close subscription on %s: %s", sub.channel, e)
        if self._session is not None:
            try:
                self.host.close(self._session)
            except SourceError as e:
                logger.warning("Unable to close session: %s", e)
            self._session = None

    def channels(self) -> List[str]:
        """
        List channel paths on the host (the CLI's --list-channels).

        Raises:
            SourceError: the session cannot be opened or channels enumerated
        """
        self._open_session()
        try:
            return self.host.list_channels(self._session)
        finally:
            self._close_all()

    # =========================================================================
    # Subscription
    # =========================================================================

    def _deliver(self, callback: Callable[[Any], Any]) -> Callable[[Any], None]:
        def on_event(raw: Any) -> None:
            # Counted before rendering so a slow callback still looks like activity
            with self._lock:
                self._delivered += 1
            callback(raw)
        return on_event

    def _subscribe_all(self, callback: Callable[[Any], Any], replay: bool) -> None:
        on_event = self._deliver(callback)
        for channel in self.host.list_channels(self._session):
            try:
                handle = self.host.subscribe(self._session, channel, replay, on_event)
            except SubscriptionRejected:
                continue
            except SourceError as e:
                logger.warning("Unable to subscribe to events on '%s': %s", channel, e)
                continue
            self.subscriptions.append(ChannelSubscription(channel, handle, replay))
            logger.debug("Subscribed to %s", channel)

    def _wait_quiescent(self) -> None:
        while True:
            before = self.delivered
            if self.stop.wait(self.quiescence_interval):
                return
            if self.delivered == before:
                return

    def run(self, callback: Callable[[Any], Any], replay: bool = False, follow: bool = False) -> int:
        """
        Subscribe to every channel and block until the run ends.

        Args:
            callback: Called with each raw event, from host threads
            replay: Deliver existing records before new ones
            follow: Keep running until the stop event is set

        Returns:
            Number of events delivered

        Raises:
            SourceError: the session cannot be opened or channels enumerated
        """
        self.state = LiveState.ENUMERATING
        try:
            self._open_session()
            self._subscribe_all(callback, replay)
            self.state = LiveState.SUBSCRIBED
            logger.info("Subscribed to %d channels", len(self.subscriptions))

            self.state = LiveState.DRAINING
            if follow:
                logger.info("Following new events, interrupt to stop")
                # Timed waits keep the main thread responsive to Ctrl-C on Windows
                while not self.stop.wait(self.quiescence_interval):
                    pass
            else:
                logger.info("Waiting for the end...")
                self._wait_quiescent()
        finally:
            self._close_all()
            self.state = LiveState.DONE

        logger.info("Done, %d events delivered", self.delivered)
        return self.delivered
