import json
from typing import Dict, Optional

from wb.connman.agent import DEFAULT_AGENT_PATH

CONFIG_FILE = "/etc/wb-connman.conf"


class ImproperlyConfigured(ValueError):
    pass


class ConfigFile:
    def __init__(self) -> None:
        self.debug = False
        self.agent = True
        self.agent_path = DEFAULT_AGENT_PATH
        self.agent_bus_name: Optional[str] = None
        self.passphrases: Dict[str, str] = {}

    def load_config(self, cfg: Dict):
        self.debug = bool(cfg.get("debug", False))
        self.agent = bool(cfg.get("agent", True))
        self.agent_path = self.get_agent_path(cfg)
        self.agent_bus_name = cfg.get("agent_bus_name") or None
        self.passphrases = self.get_passphrases(cfg)

    @staticmethod
    def get_agent_path(cfg: Dict) -> str:
        value = cfg.get("agent_path", DEFAULT_AGENT_PATH)
        if not isinstance(value, str) or not value.startswith("/") or value.endswith("/"):
            raise ImproperlyConfigured(f"Bad agent object path {value}")
        return value

    @staticmethod
    def get_passphrases(cfg: Dict) -> Dict[str, str]:
        value = cfg.get("passphrases", {})
        if not isinstance(value, dict):
            raise ImproperlyConfigured("passphrases must be an object")
        for ssid, passphrase in value.items():
            if not isinstance(passphrase, str) or not passphrase:
                raise ImproperlyConfigured(f"Empty passphrase for {ssid}")
        return dict(value)


def read_config_json(path: str = CONFIG_FILE) -> Dict:
    with open(path, encoding="utf-8") as file:
        return json.load(file)
