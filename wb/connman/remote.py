import logging
from typing import Callable, List, Optional

import dbus
from gi.repository import GLib

from wb.connman.errors import BindingError, ConnmanError, from_dbus_exception

CONNMAN_BUS_NAME = "net.connman"
INTROSPECTABLE_INTERFACE = "org.freedesktop.DBus.Introspectable"

DEFAULT_TIMEOUT = 10
LONG_TIMEOUT = 30


def to_python(obj):
    if isinstance(obj, (bool, dbus.Boolean)):
        return bool(obj)
    if isinstance(obj, (dbus.String, dbus.ObjectPath, dbus.Signature)):
        return str(obj)
    if isinstance(obj, dbus.ByteArray):
        return bytes(obj)
    if isinstance(obj, dict):
        return {to_python(key): to_python(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_python(item) for item in obj]
    if isinstance(obj, dbus.Double):
        return float(obj)
    if isinstance(obj, int):
        return int(obj)
    return obj


def defer(callback: Optional[Callable], *args) -> None:
    """
    Calls callback(*args) from the GLib main loop, so that locally detected
    errors reach the caller the same way as remote replies do.
    """
    if callback is None:
        return

    def _deliver():
        callback(*args)
        return GLib.SOURCE_REMOVE

    GLib.idle_add(_deliver)


def run_series(steps: List[Callable], callback: Optional[Callable]) -> None:
    """
    Runs callback-style steps one after another. Each step receives a
    done(error, result=None) function. The first error stops the series.
    """
    results = []

    def _run(index):
        if index == len(steps):
            if callback:
                callback(None, results)
            return

        def _done(error, result=None):
            if error is not None:
                if callback:
                    callback(error, results)
                return
            results.append(result)
            _run(index + 1)

        steps[index](_done)

    _run(0)


class RemoteObject:
    """
    One remote ConnMan object: resolves the proxy, issues asynchronous method
    calls and keeps at most one match per signal name.
    """

    def __init__(self, bus, path: str, interface_name: str, dbus_name: str = CONNMAN_BUS_NAME):
        self.bus = bus
        self.path = path
        self.interface_name = interface_name
        self.dbus_name = dbus_name
        self._matches = {}
        self.iface = None

    @property
    def bound(self) -> bool:
        return self.iface is not None

    def resolve(self, callback: Callable, error_class=BindingError) -> None:
        try:
            proxy = self.bus.get_object(self.dbus_name, self.path, introspect=False)
        except dbus.exceptions.DBusException as ex:
            logging.debug("Unable to get %s %s: %s", self.dbus_name, self.path, ex)
            defer(callback, error_class(f"{self.path}: {ex.get_dbus_message()}"), None)
            return

        def _on_introspect(xml):
            if f'name="{self.interface_name}"' not in str(xml):
                callback(error_class(f"{self.path} has no {self.interface_name} interface"), None)
                return
            self.iface = dbus.Interface(proxy, self.interface_name)
            callback(None, self.iface)

        def _on_error(ex):
            logging.debug("Introspection of %s failed: %s", self.path, ex)
            callback(error_class(f"{self.path}: {ex.get_dbus_message()}"), None)

        proxy.Introspect(
            dbus_interface=INTROSPECTABLE_INTERFACE,
            reply_handler=_on_introspect,
            error_handler=_on_error,
            timeout=DEFAULT_TIMEOUT,
        )

    def call(self, method: str, *args, callback: Optional[Callable] = None, timeout: Optional[float] = None):
        def _on_reply(*result):
            if callback:
                callback(None, to_python(result[0]) if result else None)

        def _on_error(ex):
            error = from_dbus_exception(ex)
            logging.debug("%s.%s on %s failed: %s", self.interface_name, method, self.path, error)
            if callback:
                callback(error, None)

        kwargs = {"reply_handler": _on_reply, "error_handler": _on_error}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            self.iface.get_dbus_method(method)(*args, **kwargs)
        except dbus.exceptions.DBusException as ex:
            defer(callback, from_dbus_exception(ex), None)

    def watch(self, signal_name: str, handler: Callable) -> None:
        """Replaces the match for signal_name, old one is removed first"""
        self.unwatch(signal_name)
        self._matches[signal_name] = self.iface.connect_to_signal(signal_name, handler)

    def unwatch(self, signal_name: Optional[str] = None) -> None:
        names = list(self._matches) if signal_name is None else [signal_name]
        for name in names:
            match = self._matches.pop(name, None)
            if match is not None:
                match.remove()


def precondition(callback: Optional[Callable], error: ConnmanError) -> None:
    logging.debug("%s", error)
    defer(callback, error, None)
