"""
WinEvtHost — EventHost over the Windows Event Log API (pywin32)

Thin adapter from win32evtlog to the EventHost contract. pywin32 is only
imported when a WinEvtHost is created, so the rest of evtq runs on any
platform.

Value conversion:
- SID payloads (PySID) become canonical "S-1-..." strings
- GUID payloads (PyIID) become "{...}" strings
- FILE_TIME/SYS_TIME payloads arrive as datetimes and are kept as such
- Everything else is passed through as returned by pywin32
"""

import logging
from typing import Any, Iterator, List, Optional

from ..core.record import SystemProperties
from ..core.variant import VariantField, VariantType, TYPE_MASK, datetime_to_filetime
from ..errors import RenderError, SourceError, SubscriptionRejected
from .base import Credentials, DeliveryCallback, EventDescriptor, EventHost

logger = logging.getLogger(__name__)

ERROR_EVT_SUBSCRIPTION_TO_DIRECT_CHANNEL = 15088


def _winerror(e: Exception) -> Optional[int]:
    return getattr(e, "winerror", None)


class WinEvtHost(EventHost):
    """Windows Event Log host, local or remote."""

    def __init__(self):
        try:
            import pywintypes
            import win32evtlog
            import win32security
        except ImportError as e:
            raise SourceError(
                "The Windows Event Log API is unavailable (requires Windows and pywin32)"
            ) from e
        self._api = win32evtlog
        self._security = win32security
        self._error = pywintypes.error
        self._ctx_system = None
        self._ctx_user = None

    def _system_context(self):
        if self._ctx_system is None:
            self._ctx_system = self._api.EvtCreateRenderContext(self._api.EvtRenderContextSystem)
        return self._ctx_system

    def _user_context(self):
        if self._ctx_user is None:
            self._ctx_user = self._api.EvtCreateRenderContext(self._api.EvtRenderContextUser)
        return self._ctx_user

    # =========================================================================
    # Backup files
    # =========================================================================

    def open_backup(self, path: str) -> Iterator[Any]:
        api = self._api
        try:
            query = api.EvtQuery(path, api.EvtQueryFilePath | api.EvtQueryForwardDirection)
        except self._error as e:
            raise SourceError(f"Unable to open backup {path}: {e.strerror}", _winerror(e)) from e
        return self._iterate(query, path)

    def _iterate(self, query: Any, path: str) -> Iterator[Any]:
        try:
            while True:
                try:
                    batch = self._api.EvtNext(query, 1)
                except self._error as e:
                    raise SourceError(f"Unable to read from {path}: {e.strerror}", _winerror(e)) from e
                if not batch:
                    return
                yield from batch
        finally:
            self.close(query)

    # =========================================================================
    # Live channels
    # =========================================================================

    def open_session(self, hostname: Optional[str], credentials: Optional[Credentials] = None) -> Any:
        if not hostname:
            return None
        api = self._api
        if credentials is not None:
            login = (hostname, credentials.user, credentials.domain,
                     credentials.password, api.EvtRpcLoginAuthNegotiate)
        else:
            login = (hostname, None, None, None, api.EvtRpcLoginAuthNegotiate)
        try:
            return api.EvtOpenSession(login, api.EvtRpcLogin)
        except self._error as e:
            raise SourceError(
                f"Unable to connect to remote host {hostname}: {e.strerror}", _winerror(e)
            ) from e

    def list_channels(self, session: Any) -> List[str]:
        api = self._api
        try:
            enum = api.EvtOpenChannelEnum(session)
            channels = []
            while True:
                path = api.EvtNextChannelPath(enum)
                if path is None:
                    break
                channels.append(path)
        except self._error as e:
            raise SourceError(f"Unable to enumerate channels: {e.strerror}", _winerror(e)) from e
        self.close(enum)
        return channels

    def subscribe(self, session: Any, channel: str, replay: bool, callback: DeliveryCallback) -> Any:
        api = self._api
        flags = api.EvtSubscribeStartAtOldestRecord if replay else api.EvtSubscribeToFutureEvents

        def on_notify(action, context, event):
            if action != api.EvtSubscribeActionDeliver:
                logger.warning("Unable to read event from %s: error code %s", channel, event)
                return 0
            callback(event)
            return 0

        try:
            return api.EvtSubscribe(channel, flags, Callback=on_notify, Session=session)
        except self._error as e:
            if _winerror(e) == ERROR_EVT_SUBSCRIPTION_TO_DIRECT_CHANNEL:
                raise SubscriptionRejected(f"{channel} is a direct channel", _winerror(e)) from e
            raise SourceError(f"{e.strerror} (code {_winerror(e)})", _winerror(e)) from e

    def close(self, handle: Any) -> None:
        if handle is None:
            return
        try:
            handle.Close()
        except self._error as e:
            raise SourceError(f"Unable to close handle: {e.strerror}", _winerror(e)) from e

    # =========================================================================
    # Rendering
    # =========================================================================

    def _convert(self, value: Any, type_code: int) -> Any:
        base = type_code & TYPE_MASK
        if value is None:
            return None
        if base == VariantType.SID:
            if type_code != base:
                return [self._security.ConvertSidToStringSid(v) for v in value]
            return self._security.ConvertSidToStringSid(value)
        if base == VariantType.GUID:
            if type_code != base:
                return [str(v) for v in value]
            return str(value)
        return value

    def render_system(self, raw: Any) -> SystemProperties:
        api = self._api
        try:
            values = api.EvtRender(raw, api.EvtRenderEventValues, Context=self._system_context())
        except self._error as e:
            raise RenderError(f"Unable to render system properties: {e.strerror}") from e

        def value(index):
            return values[index][0]

        created = value(api.EvtSystemTimeCreated)
        if created is not None and not isinstance(created, int):
            created = datetime_to_filetime(created)
        return SystemProperties(
            host=value(api.EvtSystemComputer) or "",
            record_id=value(api.EvtSystemEventRecordId) or 0,
            time_created=created or 0,
            provider=value(api.EvtSystemProviderName) or "",
            event_id=value(api.EvtSystemEventID) or 0,
            version=value(api.EvtSystemVersion) or 0,
            channel=value(api.EvtSystemChannel),
        )

    def render_user(self, raw: Any) -> List[VariantField]:
        api = self._api
        try:
            values = api.EvtRender(raw, api.EvtRenderEventValues, Context=self._user_context())
        except self._error as e:
            raise RenderError(f"Unable to render user properties: {e.strerror}") from e
        return [
            VariantField.from_host(self._convert(value, type_code), type_code)
            for value, type_code in values
        ]

    def render_xml(self, raw: Any) -> str:
        api = self._api
        try:
            return api.EvtRender(raw, api.EvtRenderEventXml)
        except self._error as e:
            raise RenderError(f"Unable to render event XML: {e.strerror}") from e

    # =========================================================================
    # Provider metadata
    # =========================================================================

    def list_providers(self) -> List[str]:
        api = self._api
        try:
            enum = api.EvtOpenPublisherEnum()
            providers = []
            while True:
                name = api.EvtNextPublisherId(enum)
                if name is None:
                    break
                providers.append(name)
        except self._error as e:
            raise SourceError(f"Unable to enumerate providers: {e.strerror}", _winerror(e)) from e
        self.close(enum)
        return providers

    def list_event_descriptors(self, provider: str) -> List[Any]:
        api = self._api
        try:
            metadata = api.EvtOpenPublisherMetadata(provider)
            enum = api.EvtOpenEventMetadataEnum(metadata)
            handles = []
            while True:
                handle = api.EvtNextEventMetadata(enum)
                if handle is None:
                    break
                handles.append(handle)
        except self._error as e:
            raise SourceError(f"{e.strerror} (code {_winerror(e)})", _winerror(e)) from e
        self.close(enum)
        self.close(metadata)
        return handles

    def describe_event(self, provider: str, handle: Any) -> EventDescriptor:
        api = self._api
        try:
            event_id, _ = api.EvtGetEventMetadataProperty(handle, api.EventMetadataEventID)
            version, _ = api.EvtGetEventMetadataProperty(handle, api.EventMetadataEventVersion)
            template, _ = api.EvtGetEventMetadataProperty(handle, api.EventMetadataEventTemplate)
        except self._error as e:
            raise SourceError(f"{e.strerror} (code {_winerror(e)})", _winerror(e)) from e
        finally:
            self.close(handle)
        return EventDescriptor(provider, int(event_id), int(version), template or "")
