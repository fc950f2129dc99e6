import unittest
from unittest.mock import patch

import dbus

from tests.connman_mock import FakeBus, Result, dbus_error, run_pending
from wb.connman.agent import Agent
from wb.connman.config import ConfigFile
from wb.connman.errors import BindingError, NotBoundError, RemoteError
from wb.connman.manager import MANAGER_INTERFACE, Connman
from wb.connman.service import SERVICE_INTERFACE
from wb.connman.technology import TECHNOLOGY_INTERFACE

HOME_PATH = "/net/connman/service/wifi_0011_home_managed_psk"
OFFICE_PATH = "/net/connman/service/wifi_0011_office_managed_psk"
WIRED_PATH = "/net/connman/service/ethernet_0022_cable"


def technology_entry(tech_type, name):
    return dbus.Struct(
        (
            dbus.ObjectPath(f"/net/connman/technology/{tech_type}"),
            dbus.Dictionary(
                {"Name": dbus.String(name, variant_level=1), "Type": dbus.String(tech_type, variant_level=1)},
                signature="sv",
            ),
        )
    )


def service_entry(path, tech_type, name):
    return dbus.Struct(
        (
            dbus.ObjectPath(path),
            dbus.Dictionary(
                {"Name": dbus.String(name, variant_level=1), "Type": dbus.String(tech_type, variant_level=1)},
                signature="sv",
            ),
        )
    )


class ConnmanTests(unittest.TestCase):
    def setUp(self) -> None:
        self.bus = FakeBus()
        self.manager = self.bus.fake_add_object("/", MANAGER_INTERFACE)
        self.manager.replies["GetTechnologies"] = dbus.Array(
            [technology_entry("wifi", "WiFi"), technology_entry("ethernet", "Wired")], signature="(oa{sv})"
        )
        self.manager.replies["GetServices"] = dbus.Array(
            [
                service_entry(WIRED_PATH, "ethernet", "Wired"),
                service_entry(HOME_PATH, "wifi", "Home"),
                service_entry(OFFICE_PATH, "wifi", "Office"),
            ],
            signature="(oa{sv})",
        )
        self.wifi = self.bus.fake_add_object("/net/connman/technology/wifi", TECHNOLOGY_INTERFACE)
        self.ethernet = self.bus.fake_add_object("/net/connman/technology/ethernet", TECHNOLOGY_INTERFACE)
        config = ConfigFile()
        config.agent = False
        self.connman = Connman(self.bus, config)

    def init_connman(self):
        result = Result()
        self.connman.init(result)
        run_pending()
        assert result.calls == [(None, None)]

    def test_01_init_creates_technologies(self):
        self.init_connman()
        assert sorted(self.connman.technologies) == ["ethernet", "wifi"]
        wifi = self.connman.get_technology("wifi")
        assert wifi.name == "WiFi"
        assert wifi.bound
        assert len(self.wifi.matches) == 1
        assert self.connman.agent is None

    def test_02_init_without_daemon(self):
        connman = Connman(FakeBus(), self.connman.config)
        result = Result()
        connman.init(result)
        run_pending()
        assert isinstance(result.error, BindingError)

    def test_03_init_technology_failure(self):
        self.manager.replies["GetTechnologies"] = dbus.Array(
            [technology_entry("bluetooth", "Bluetooth"), technology_entry("wifi", "WiFi")], signature="(oa{sv})"
        )
        connman = Connman(self.bus, ConfigFile())
        result = Result()
        with patch.object(connman.agent, "add_to_connection"):
            connman.init(result)
        run_pending()
        assert result.calls == [(None, None)]
        assert list(connman.technologies) == ["wifi"]
        assert connman.get_technology("wifi").bound
        assert connman.agent.registered

    def test_04_get_services_by_type(self):
        self.init_connman()
        result = Result()
        self.connman.get_services("wifi", result)
        assert list(result.value) == [HOME_PATH, OFFICE_PATH]
        assert result.value[HOME_PATH]["Name"] == "Home"

        self.connman.get_services(None, result)
        assert list(result.value) == [WIRED_PATH, HOME_PATH, OFFICE_PATH]

    def test_05_get_services_error(self):
        self.init_connman()
        self.manager.replies["GetServices"] = dbus_error("org.freedesktop.DBus.Error.NoReply")
        result = Result()
        self.connman.get_services("wifi", result)
        assert result.value is None
        assert result.error is not None

    def test_06_unbound_manager(self):
        result = Result()
        self.connman.get_services("wifi", result)
        run_pending()
        assert isinstance(result.error, NotBoundError)
        assert not self.manager.calls

    def test_07_search_service(self):
        self.init_connman()
        result = Result()
        self.connman.search_service("Office", "wifi", result)
        assert result.value["serviceName"] == OFFICE_PATH
        self.connman.search_service("wifi_0011_home_managed_psk", "wifi", result)
        assert result.value["Name"] == "Home"
        self.connman.search_service("Wired", "wifi", result)
        assert result.calls[-1] == (None, None)

    def test_08_technology_added_and_removed(self):
        self.init_connman()
        self.bus.fake_add_object("/net/connman/technology/bluetooth", TECHNOLOGY_INTERFACE)
        added = []
        removed = []
        self.connman.subscribe("TechnologyAdded", added.append)
        self.connman.subscribe("TechnologyRemoved", removed.append)

        path, properties = technology_entry("bluetooth", "Bluetooth")
        self.manager.fake_emit("TechnologyAdded", path, properties)
        assert [technology.type for technology in added] == ["bluetooth"]
        assert self.connman.get_technology("bluetooth").bound

        self.manager.fake_emit("TechnologyRemoved", dbus.ObjectPath("/net/connman/technology/wifi"))
        assert [technology.type for technology in removed] == ["wifi"]
        assert "wifi" not in self.connman.technologies
        assert not self.wifi.matches

    def test_09_services_changed_and_property_changed(self):
        self.init_connman()
        events = []
        self.connman.subscribe("ServicesChanged", lambda changed, removed: events.append((changed, removed)))
        self.connman.subscribe("PropertyChanged", lambda name, value: events.append((name, value)))

        self.manager.fake_emit(
            "ServicesChanged",
            dbus.Array([service_entry(HOME_PATH, "wifi", "Home")], signature="(oa{sv})"),
            dbus.Array([dbus.ObjectPath(OFFICE_PATH)], signature="o"),
        )
        self.manager.fake_emit("PropertyChanged", dbus.String("State"), dbus.String("online", variant_level=1))

        assert events == [
            ({HOME_PATH: {"Name": "Home", "Type": "wifi"}}, [OFFICE_PATH]),
            ("State", "online"),
        ]

    def test_10_get_service(self):
        self.init_connman()
        self.bus.fake_add_object(HOME_PATH, SERVICE_INTERFACE)
        result = Result()
        self.connman.get_service("wifi", "wifi_0011_home_managed_psk", result)
        service = result.value
        assert service.bound
        assert service.technology is self.connman.get_technology("wifi")

    def test_11_init_registers_agent(self):
        connman = Connman(self.bus, ConfigFile())
        assert isinstance(connman.agent, Agent)
        result = Result()
        with patch.object(connman.agent, "add_to_connection"):
            connman.init(result)
        run_pending()
        assert result.calls == [(None, None)]
        register_call = self.manager.fake_calls("RegisterAgent")[0]
        assert register_call.args == (dbus.ObjectPath(connman.config.agent_path),)
        assert register_call.timeout == 10
        assert connman.agent.registered

    def test_12_agent_registration_failure(self):
        connman = Connman(self.bus, ConfigFile())
        self.manager.replies["RegisterAgent"] = dbus_error("net.connman.Error.AlreadyExists", "Already exists")
        result = Result()
        with patch.object(connman.agent, "add_to_connection"):
            connman.init(result)
        run_pending()
        assert isinstance(result.error, RemoteError)
        assert not connman.agent.registered

    def test_13_release(self):
        self.init_connman()
        self.connman.release()
        assert not self.manager.matches
        assert not self.wifi.matches
        assert not self.ethernet.matches

    def test_14_technology_added_twice_keeps_one_subscription(self):
        self.init_connman()
        old_wifi = self.connman.get_technology("wifi")
        added = []
        self.connman.subscribe("TechnologyAdded", added.append)

        path, properties = technology_entry("wifi", "WiFi")
        self.manager.fake_emit("TechnologyAdded", path, properties)

        new_wifi = self.connman.get_technology("wifi")
        assert new_wifi is not old_wifi
        assert added == [new_wifi]
        assert len(self.wifi.matches) == 1
        assert self.wifi.removed_matches == 1

    def test_15_init_twice_keeps_one_subscription(self):
        self.init_connman()
        self.init_connman()
        assert len(self.wifi.matches) == 1
        assert len(self.ethernet.matches) == 1

    def test_16_added_technology_that_cannot_be_bound(self):
        self.init_connman()
        added = []
        self.connman.subscribe("TechnologyAdded", added.append)
        path, properties = technology_entry("bluetooth", "Bluetooth")
        self.manager.fake_emit("TechnologyAdded", path, properties)
        run_pending()
        assert not added
        assert "bluetooth" not in self.connman.technologies
