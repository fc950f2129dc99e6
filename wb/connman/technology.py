import logging
import posixpath
from typing import Callable, Optional

from wb.connman.errors import BindingError, NotBoundError
from wb.connman.events import EventEmitter, Subscription
from wb.connman.remote import (
    DEFAULT_TIMEOUT,
    LONG_TIMEOUT,
    RemoteObject,
    precondition,
    run_series,
    to_python,
)

TECHNOLOGY_INTERFACE = "net.connman.Technology"
TECHNOLOGY_ROOT = "/net/connman/technology"


class Technology:
    """
    net.connman.Technology wrapper.

    Properties (Powered, Connected, Tethering, ...) are never cached: read them
    with get_properties() or follow the PropertyChanged event.
    """

    def __init__(self, connman, name: str, tech_type: str):
        self.name = name
        self.type = tech_type
        self.object_path = posixpath.join(TECHNOLOGY_ROOT, tech_type)
        self.connman = connman
        self.events = EventEmitter(f"technology {tech_type}")
        self._remote = RemoteObject(connman.bus, self.object_path, TECHNOLOGY_INTERFACE)

    def __repr__(self):
        return f"Technology({self.name!r}, {self.type!r})"

    @property
    def bound(self) -> bool:
        return self._remote.bound

    def subscribe(self, event: str, handler: Callable) -> Subscription:
        return self.events.subscribe(event, handler)

    def unsubscribe(self, subscription: Subscription) -> None:
        self.events.unsubscribe(subscription)

    def init(self, callback: Optional[Callable] = None) -> None:
        def _on_resolved(error, _iface):
            if error is not None:
                logging.warning("Technology %s is not available: %s", self.type, error)
                if callback:
                    callback(error, None)
                return
            self._remote.watch("PropertyChanged", self._on_property_changed)
            logging.debug("Technology %s bound to %s", self.type, self.object_path)
            if callback:
                callback(None, None)

        self._remote.resolve(_on_resolved, BindingError)

    def release(self) -> None:
        self._remote.unwatch()

    def _on_property_changed(self, name, value):
        name, value = str(name), to_python(value)
        logging.debug(
            "%s PropertyChanged %s = %s", self.object_path, name, value, extra={"object_path": self.object_path}
        )
        self.events.emit("PropertyChanged", name, value)

    def _not_bound(self, callback):
        precondition(callback, NotBoundError(f"No {self.type} technology device was found"))

    def get_properties(self, callback: Callable) -> None:
        if not self.bound:
            self._not_bound(callback)
            return
        self._remote.call("GetProperties", callback=callback, timeout=DEFAULT_TIMEOUT)

    def set_property(self, name: str, value, callback: Optional[Callable] = None) -> None:
        if not self.bound:
            self._not_bound(callback)
            return
        logging.debug("Set %s %s", self.object_path, name)
        self._remote.call("SetProperty", name, value, callback=callback, timeout=DEFAULT_TIMEOUT)

    def scan(self, callback: Optional[Callable] = None) -> None:
        if not self.bound:
            self._not_bound(callback)
            return
        self._remote.call("Scan", callback=callback, timeout=LONG_TIMEOUT)

    def get_services(self, callback: Callable) -> None:
        self.connman.get_services(self.type, callback)

    def search_service(self, query: str, callback: Callable) -> None:
        self.connman.search_service(query, self.type, callback)

    def enable_tethering(
        self, ssid: Optional[str] = None, passphrase: Optional[str] = None, callback: Optional[Callable] = None
    ) -> None:
        # ConnMan refuses to enable tethering before the credentials are set
        steps = []
        if ssid:
            steps.append(lambda done: self.set_property("TetheringIdentifier", ssid, done))
        if passphrase:
            steps.append(lambda done: self.set_property("TetheringPassphrase", passphrase, done))
        steps.append(lambda done: self.set_property("Tethering", True, done))
        logging.info("Enable tethering on %s (ssid %s)", self.type, ssid)

        def _on_done(error, results):
            if error is not None:
                logging.error("Unable to enable tethering on %s: %s", self.type, error)
            if callback:
                callback(error, results[-1] if error is None else None)

        run_series(steps, _on_done)

    def disable_tethering(self, callback: Optional[Callable] = None) -> None:
        logging.info("Disable tethering on %s", self.type)
        self.set_property("Tethering", False, callback)

    def list_access_points(self, callback: Optional[Callable] = None) -> None:
        if not self.bound:
            self._not_bound(callback)
            return

        def _on_services(error, services):
            access_points = None
            if error is None:
                access_points = []
                for service_name, service in services.items():
                    service["serviceName"] = service_name
                    access_points.append(service)
            if callback:
                callback(error, access_points)

        self.connman.get_services(self.type, _on_services)

    def find_access_point(
        self, ssid: Optional[str] = None, interface: Optional[str] = None, callback: Optional[Callable] = None
    ) -> None:
        """Accepts find_access_point(ssid, callback) as well as find_access_point(ssid, interface, callback)"""
        if callback is None and callable(interface):
            interface, callback = None, interface
        if not self.bound or not ssid:
            self._not_bound(callback)
            return

        def _on_services(error, services):
            found = None
            if error is None:
                for service_name, service in services.items():
                    if interface and service.get("Ethernet", {}).get("Interface") != interface:
                        continue
                    if service.get("Name") == ssid:
                        service["serviceName"] = service_name
                        found = service
                        break
            if callback:
                callback(error, found)

        self.connman.get_services(self.type, _on_services)
