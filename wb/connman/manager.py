import logging
import posixpath
from typing import Callable, Dict, Optional

import dbus

from wb.connman.agent import Agent
from wb.connman.config import ConfigFile
from wb.connman.errors import BindingError, NotBoundError
from wb.connman.events import EventEmitter, Subscription
from wb.connman.remote import (
    DEFAULT_TIMEOUT,
    RemoteObject,
    precondition,
    run_series,
    to_python,
)
from wb.connman.service import Service
from wb.connman.technology import Technology

MANAGER_INTERFACE = "net.connman.Manager"
MANAGER_PATH = "/"


class Connman:
    """
    Registry of ConnMan technologies and owner of the process-wide Agent.

    Events: PropertyChanged(name, value), ServicesChanged(changed, removed),
    TechnologyAdded(technology), TechnologyRemoved(technology).
    """

    def __init__(self, bus=None, config: Optional[ConfigFile] = None):
        self.config = config if config is not None else ConfigFile()
        self.bus = bus if bus is not None else dbus.SystemBus()
        self.technologies: Dict[str, Technology] = {}
        self.enable_agent = self.config.agent
        self.agent = Agent(self.config.agent_path, self.config.agent_bus_name) if self.enable_agent else None
        self.events = EventEmitter("manager")
        self._remote = RemoteObject(self.bus, MANAGER_PATH, MANAGER_INTERFACE)

    @property
    def bound(self) -> bool:
        return self._remote.bound

    def subscribe(self, event: str, handler: Callable) -> Subscription:
        return self.events.subscribe(event, handler)

    def unsubscribe(self, subscription: Subscription) -> None:
        self.events.unsubscribe(subscription)

    def init(self, callback: Optional[Callable] = None) -> None:
        def _finish(error, _results=None):
            if error is not None:
                logging.error("ConnMan initialization failed: %s", error)
            if callback:
                callback(error, None)

        def _on_technologies(error, technologies):
            if error is not None:
                _finish(error)
                return
            steps = []
            for path, properties in technologies:
                steps.append(self._init_step(self._add_technology(path, properties)))
            if self.enable_agent:
                steps.append(lambda done: self.agent.init(self, done))
            run_series(steps, _finish)

        def _on_resolved(error, _iface):
            if error is not None:
                _finish(error)
                return
            self._remote.watch("PropertyChanged", self._on_property_changed)
            self._remote.watch("ServicesChanged", self._on_services_changed)
            self._remote.watch("TechnologyAdded", self._on_technology_added)
            self._remote.watch("TechnologyRemoved", self._on_technology_removed)
            self._remote.call("GetTechnologies", callback=_on_technologies, timeout=DEFAULT_TIMEOUT)

        self._remote.resolve(_on_resolved, BindingError)

    def release(self) -> None:
        self._remote.unwatch()
        for technology in self.technologies.values():
            technology.release()

    def _init_step(self, technology: Technology) -> Callable:
        # a technology that cannot be bound is dropped, the rest still start
        def _step(done):
            def _on_init(error, _result):
                if error is not None and self.technologies.get(technology.type) is technology:
                    del self.technologies[technology.type]
                    logging.warning("Technology %s dropped from registry", technology.type)
                done(None)

            technology.init(_on_init)

        return _step

    def _add_technology(self, path: str, properties: Dict) -> Technology:
        tech_type = properties.get("Type") or posixpath.basename(path)
        previous = self.technologies.get(tech_type)
        if previous is not None:
            previous.release()
        technology = Technology(self, properties.get("Name", tech_type), tech_type)
        self.technologies[tech_type] = technology
        logging.debug("Technology %s (%s) at %s", technology.name, tech_type, path)
        return technology

    def get_technology(self, tech_type: str) -> Optional[Technology]:
        return self.technologies.get(tech_type)

    def get_service(self, tech_type: str, service_name: str, callback: Callable) -> None:
        service = Service(self)

        def _on_selected(error, _iface):
            callback(error, None if error is not None else service)

        service.init(tech_type, service_name, _on_selected)

    # Signals handlers

    def _on_property_changed(self, name, value):
        self.events.emit("PropertyChanged", str(name), to_python(value))

    def _on_services_changed(self, changed, removed):
        changed = {path: properties for path, properties in to_python(changed)}
        self.events.emit("ServicesChanged", changed, to_python(removed))

    def _on_technology_added(self, path, properties):
        technology = self._add_technology(str(path), to_python(properties))

        def _on_init(_error, _result=None):
            if technology.bound:
                self.events.emit("TechnologyAdded", technology)

        self._init_step(technology)(_on_init)

    def _on_technology_removed(self, path):
        tech_type = posixpath.basename(str(path))
        technology = self.technologies.pop(tech_type, None)
        if technology is not None:
            technology.release()
            logging.debug("Technology %s removed", tech_type)
            self.events.emit("TechnologyRemoved", technology)

    # net.connman.Manager methods

    def _call(self, method: str, *args, callback: Optional[Callable] = None):
        if not self.bound:
            precondition(callback, NotBoundError("ConnMan manager is not initialized"))
            return
        self._remote.call(method, *args, callback=callback, timeout=DEFAULT_TIMEOUT)

    def get_properties(self, callback: Callable) -> None:
        self._call("GetProperties", callback=callback)

    def set_property(self, name: str, value, callback: Optional[Callable] = None) -> None:
        self._call("SetProperty", name, value, callback=callback)

    def get_services(self, tech_type: Optional[str], callback: Callable) -> None:
        """Returns {service path: properties} of tech_type (all services if None) in ConnMan order"""

        def _on_services(error, services):
            if error is not None:
                callback(error, None)
                return
            result = {}
            for path, properties in services:
                if tech_type is None or properties.get("Type") == tech_type:
                    result[path] = properties
            callback(None, result)

        self._call("GetServices", callback=_on_services)

    def search_service(self, query: str, tech_type: Optional[str], callback: Callable) -> None:
        def _on_services(error, services):
            if error is not None:
                callback(error, None)
                return
            for service_name, service in services.items():
                if query in (service_name, posixpath.basename(service_name), service.get("Name")):
                    service["serviceName"] = service_name
                    callback(None, service)
                    return
            callback(None, None)

        self.get_services(tech_type, _on_services)

    def register_agent(self, path: str, callback: Optional[Callable] = None) -> None:
        self._call("RegisterAgent", dbus.ObjectPath(path), callback=callback)

    def unregister_agent(self, path: str, callback: Optional[Callable] = None) -> None:
        self._call("UnregisterAgent", dbus.ObjectPath(path), callback=callback)
