"""
UPower access over the D-Bus system bus.

Gio's callback-style asynchronous calls are bridged onto asyncio futures,
so they can be awaited from tasks running on the GLib event loop.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

import gi
gi.require_version('Gio', '2.0')
from gi.repository import Gio, GLib

import config
from device_sync import (
    ConnectError,
    ICON_NAME,
    PERCENTAGE,
    PropertyReadError,
    ResolveError,
    TIME_TO_EMPTY,
)

logger = logging.getLogger(__name__)

# D-Bus type signatures of the device properties we read
PROPERTY_SIGNATURES = {
    ICON_NAME: "s",
    PERCENTAGE: "d",
    TIME_TO_EMPTY: "x",
}


def _gio_async(start: Callable, finish: Callable, *args: Any) -> "asyncio.Future":
    """
    Run a Gio ``*_async``/``*_finish`` pair as an awaitable future.

    ``start`` is called with ``args`` followed by a NULL cancellable and
    the completion callback.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def _done(source: Any, result: Gio.AsyncResult, *_user_data: Any) -> None:
        if future.cancelled():
            return
        try:
            value = finish(result)
        except Exception as err:
            future.set_exception(err)
        else:
            future.set_result(value)

    start(*args, None, _done, None)
    return future


class DeviceHandle:
    """
    Cached view of one UPower device object.

    Property values come from the proxy's local cache, which Gio keeps up
    to date from PropertiesChanged signals.
    """

    def __init__(self, proxy: Gio.DBusProxy) -> None:
        self._proxy = proxy

    @property
    def object_path(self) -> str:
        return self._proxy.get_object_path()

    async def subscribe(self, name: str, callback: Callable[[str], None]) -> None:
        """Call ``callback(name)`` whenever a change notification touches ``name``."""
        def _on_properties_changed(proxy: Gio.DBusProxy, changed: GLib.Variant,
                                   invalidated: list) -> None:
            if name in changed.keys() or name in invalidated:
                callback(name)

        self._proxy.connect("g-properties-changed", _on_properties_changed)

    def cached(self, name: str) -> Optional[Any]:
        """
        Read a property from the proxy cache.

        Returns:
            The unpacked value, or None when the cache holds no value.

        Raises:
            PropertyReadError: The property is unknown or has the wrong type.
        """
        signature = PROPERTY_SIGNATURES.get(name)
        if signature is None:
            raise PropertyReadError(f"unknown property {name!r}")

        value = self._proxy.get_cached_property(name)
        if value is None:
            return None
        if value.get_type_string() != signature:
            raise PropertyReadError(
                f"{name} has type {value.get_type_string()!r}, expected {signature!r}"
            )
        return value.unpack()


async def connect() -> Gio.DBusConnection:
    """
    Open the system bus.

    Raises:
        ConnectError: The bus is unreachable or refused the connection.
    """
    try:
        return await _gio_async(Gio.bus_get, Gio.bus_get_finish, Gio.BusType.SYSTEM)
    except GLib.Error as err:
        raise ConnectError(err.message) from err


async def _new_proxy(connection: Gio.DBusConnection, flags: Gio.DBusProxyFlags,
                     object_path: str, interface_name: str) -> Gio.DBusProxy:
    return await _gio_async(
        Gio.DBusProxy.new,
        Gio.DBusProxy.new_finish,
        connection,
        flags,
        None,
        config.UPOWER_BUS_NAME,
        object_path,
        interface_name,
    )


async def get_display_device_path(connection: Gio.DBusConnection) -> str:
    """Ask UPower for the object path of its display device."""
    try:
        upower = await _new_proxy(
            connection,
            Gio.DBusProxyFlags.DO_NOT_LOAD_PROPERTIES | Gio.DBusProxyFlags.DO_NOT_CONNECT_SIGNALS,
            config.UPOWER_OBJECT_PATH,
            config.UPOWER_BUS_NAME,
        )
        reply = await _gio_async(
            upower.call,
            upower.call_finish,
            "GetDisplayDevice",
            None,
            Gio.DBusCallFlags.NONE,
            config.DBUS_CALL_TIMEOUT_MS,
        )
    except GLib.Error as err:
        raise ResolveError(err.message) from err

    if reply.get_type_string() != "(o)":
        raise ResolveError(f"unexpected GetDisplayDevice reply {reply.get_type_string()!r}")
    path = reply.unpack()[0]
    if not GLib.Variant.is_object_path(path):
        raise ResolveError(f"invalid display device path {path!r}")
    return path


async def resolve_display_device(connection: Gio.DBusConnection) -> DeviceHandle:
    """
    Resolve UPower's display device and bind a caching proxy to it.

    Raises:
        ResolveError: UPower has no display device or the proxy failed.
    """
    path = await get_display_device_path(connection)
    try:
        proxy = await _new_proxy(
            connection,
            Gio.DBusProxyFlags.GET_INVALIDATED_PROPERTIES,
            path,
            config.UPOWER_DEVICE_INTERFACE,
        )
    except GLib.Error as err:
        raise ResolveError(err.message) from err

    device = DeviceHandle(proxy)
    logger.info("Using UPower display device %s", device.object_path)
    return device
