import logging
import posixpath
from typing import Callable, Optional

from wb.connman.errors import NoServiceError, NoSuchServiceError, NoTechnologyError
from wb.connman.events import EventEmitter, Subscription
from wb.connman.remote import (
    DEFAULT_TIMEOUT,
    LONG_TIMEOUT,
    RemoteObject,
    defer,
    precondition,
    to_python,
)

SERVICE_INTERFACE = "net.connman.Service"
SERVICE_ROOT = "/net/connman/service"


def service_path(service_name: str) -> str:
    if service_name.startswith("/"):
        return service_name
    return posixpath.join(SERVICE_ROOT, service_name)


class Service:
    """
    net.connman.Service wrapper.

    A Service is bound to at most one remote service at a time and keeps
    exactly one PropertyChanged match for it. select_service() may be called
    again to rebind the same instance to another remote service.
    """

    def __init__(self, connman):
        self.connman = connman
        self.name = None
        self.technology_type = None
        self.events = EventEmitter("service")
        self._remote: Optional[RemoteObject] = None

    def __repr__(self):
        return f"Service({self.name!r}, {self.technology_type!r})"

    @property
    def technology(self):
        if self.technology_type is None:
            return None
        return self.connman.technologies.get(self.technology_type)

    @property
    def bound(self) -> bool:
        return self._remote is not None

    @property
    def object_path(self) -> Optional[str]:
        return self._remote.path if self._remote else None

    def subscribe(self, event: str, handler: Callable) -> Subscription:
        return self.events.subscribe(event, handler)

    def unsubscribe(self, subscription: Subscription) -> None:
        self.events.unsubscribe(subscription)

    def init(self, technology_type: str, service_name: str, callback: Optional[Callable] = None) -> None:
        self.technology_type = technology_type
        self.name = service_name
        self.select_service(service_path(service_name), callback)

    def select_service(self, object_path: str, callback: Optional[Callable] = None) -> None:
        if self.technology is None:
            precondition(callback, NoTechnologyError(f"No technology {self.technology_type} was found"))
            return

        remote = RemoteObject(self.connman.bus, object_path, SERVICE_INTERFACE)

        def _on_resolved(error, iface):
            if error is not None:
                logging.warning("Unable to select service %s: %s", object_path, error)
                if callback:
                    callback(error, None)
                return
            # previous match goes away before the new one is added
            if self._remote is not None:
                self._remote.unwatch()
            self._remote = remote
            self._watch()
            logging.debug("Service bound to %s", object_path)
            if callback:
                callback(None, iface)

        remote.resolve(_on_resolved, NoSuchServiceError)

    def _watch(self):
        self._remote.watch("PropertyChanged", self._on_property_changed)

    def _on_property_changed(self, name, value):
        name, value = str(name), to_python(value)
        logging.debug(
            "%s PropertyChanged %s = %s", self._remote.path, name, value, extra={"object_path": self._remote.path}
        )
        self.events.emit("PropertyChanged", name, value)

    def release(self) -> None:
        if self._remote is not None:
            self._remote.unwatch()

    def _call(self, method: str, *args, callback: Optional[Callable] = None, timeout=DEFAULT_TIMEOUT):
        if not self.bound:
            precondition(callback, NoServiceError("No service was found"))
            return
        self._remote.call(method, *args, callback=callback, timeout=timeout)

    def get_properties(self, callback: Callable) -> None:
        self._call("GetProperties", callback=callback)

    def set_property(self, name: str, value, callback: Optional[Callable] = None) -> None:
        self._call("SetProperty", name, value, callback=callback)

    def clear_property(self, name: str, callback: Optional[Callable] = None) -> None:
        self._call("ClearProperty", name, callback=callback)

    def remove(self, callback: Optional[Callable] = None) -> None:
        self._call("Remove", callback=callback)

    def connect(self, callback: Optional[Callable] = None, on_result: Optional[Callable] = None) -> None:
        """
        Starts a connection attempt and completes without waiting for it.

        The outcome of the Connect call is only observable through the
        following PropertyChanged events (State, Error). on_result, if given,
        receives the raw (error, result) of the Connect call for diagnostics.
        The callback result is the shared Agent when interactive
        authentication is enabled, None otherwise.
        """
        if self.technology is None:
            precondition(callback, NoTechnologyError(f"No technology {self.technology_type} was found"))
            return
        if not self.bound:
            defer(callback, None, None)
            return

        path = self._remote.path

        def _on_connect_result(error, result):
            if error is not None:
                logging.debug("Connect %s returned %s", path, error)
            if on_result:
                on_result(error, result)

        logging.info("Connect %s", path)
        self._remote.call("Connect", callback=_on_connect_result, timeout=LONG_TIMEOUT)
        self._watch()
        if callback:
            callback(None, self.connman.agent if self.connman.enable_agent else None)

    def disconnect(self, callback: Optional[Callable] = None) -> None:
        if self.technology is None:
            precondition(callback, NoTechnologyError(f"No technology {self.technology_type} was found"))
            return
        if not self.bound:
            defer(callback, None, None)
            return
        logging.info("Disconnect %s", self._remote.path)
        self._remote.call("Disconnect", callback=callback)
