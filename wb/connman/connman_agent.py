import argparse
import json
import logging
import signal
import sys
from typing import Dict

import dbus
import dbus.mainloop.glib
from gi.repository import GLib

from wb.connman.agent import InputRequest
from wb.connman.config import (
    CONFIG_FILE,
    ConfigFile,
    ImproperlyConfigured,
    read_config_json,
)
from wb.connman.logging_filter import PropertyChangeFilter
from wb.connman.manager import Connman

EXIT_NOT_CONFIGURED = 6
EXIT_INIT_FAILED = 1

LOGGING_FORMAT = "%(message)s"


def init_logging(debug: bool):
    log_level = logging.DEBUG if debug else logging.INFO
    if log_level > logging.DEBUG:
        logger = logging.getLogger()
        logger.addFilter(PropertyChangeFilter())
    logging.basicConfig(level=log_level, format=LOGGING_FORMAT)


class PassphraseAnswerer:
    """Answers RequestInput from the passphrases configured per service name"""

    def __init__(self, connman: Connman, passphrases: Dict[str, str]):
        self.connman = connman
        self.passphrases = passphrases

    def on_request_input(self, service: str, fields: Dict, request: InputRequest):
        def _on_services(error, services):
            if not request.pending:
                return
            name = services.get(service, {}).get("Name") if error is None else None
            passphrase = self.passphrases.get(name)
            if passphrase is None or "Passphrase" not in fields:
                logging.warning("No passphrase for %s (%s), cancel input request", service, name)
                request.cancel()
                return
            logging.info("Provide passphrase for %s", name)
            request({"Passphrase": passphrase})

        self.connman.get_services(None, _on_services)


def main(argv=sys.argv):
    parser = argparse.ArgumentParser(
        description="ConnMan agent", formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("-c", "--config", type=str, default=CONFIG_FILE, help="Config file")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")
    args = parser.parse_args(argv[1:])

    try:
        cfg_json = read_config_json(args.config)
    except (FileNotFoundError, PermissionError, OSError, json.decoder.JSONDecodeError) as ex:
        logging.error("Loading %s failed: %s", args.config, ex)
        return EXIT_NOT_CONFIGURED

    try:
        config = ConfigFile()
        config.load_config(cfg_json)
    except ImproperlyConfigured as ex:
        logging.error("Configuration error: %s", ex)
        return EXIT_NOT_CONFIGURED

    init_logging(args.debug or config.debug)

    dbus.mainloop.glib.DBusGMainLoop(set_as_default=True)
    loop = GLib.MainLoop()
    connman = Connman(dbus.SystemBus(), config)
    exit_code = 0

    if connman.agent is not None:
        answerer = PassphraseAnswerer(connman, config.passphrases)
        connman.agent.subscribe("RequestInput", answerer.on_request_input)
        connman.agent.subscribe("ReportError", lambda service, error: logging.error("%s: %s", service, error))
        connman.agent.subscribe("RequestBrowser", lambda service, url: logging.info("%s: open %s", service, url))
        connman.agent.subscribe("Release", loop.quit)

    def _on_init(error, _result):
        nonlocal exit_code
        if error is not None:
            exit_code = EXIT_INIT_FAILED
            loop.quit()
            return
        logging.info("Technologies: %s", ", ".join(sorted(connman.technologies)))

    def _stop(signum, _frame):
        logging.info("Stopping on signal %s", signum)
        loop.quit()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    connman.init(_on_init)
    loop.run()
    connman.release()
    return exit_code


if __name__ == "__main__":
    sys.exit(main(sys.argv))  # pragma: no cover
