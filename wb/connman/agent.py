import itertools
import logging
from typing import Callable, Dict, List, Optional

import dbus
import dbus.service

from wb.connman.errors import AnswerError, from_dbus_exception
from wb.connman.events import EventEmitter, Subscription
from wb.connman.remote import defer, to_python

AGENT_INTERFACE = "net.connman.Agent"
DEFAULT_AGENT_PATH = "/com/wirenboard/connman/agent"


class CanceledException(dbus.exceptions.DBusException):
    _dbus_error_name = "net.connman.Agent.Error.Canceled"


class InputRequest:
    """
    One pending RequestInput call. Calling the object with an answer dict
    replies to ConnMan; it can be answered (or cancelled) only once.
    """

    _ids = itertools.count(1)

    def __init__(self, service: str, fields: Dict, reply_handler, error_handler, on_finished: Callable):
        self.request_id = next(self._ids)
        self.service = service
        self.fields = fields
        self.answered = False
        self.cancelled = False
        self._reply_handler = reply_handler
        self._error_handler = error_handler
        self._on_finished = on_finished

    def __repr__(self):
        return f"InputRequest({self.request_id}, {self.service!r}, {sorted(self.fields)})"

    @property
    def pending(self) -> bool:
        return not (self.answered or self.cancelled)

    def _check_pending(self):
        if self.cancelled:
            raise AnswerError(f"Input request {self.request_id} for {self.service} was cancelled")
        if self.answered:
            raise AnswerError(f"Input request {self.request_id} for {self.service} was already answered")

    def __call__(self, answer: Dict) -> None:
        self._check_pending()
        self.answered = True
        self._on_finished(self)
        logging.debug("Answer input request %s for %s: %s", self.request_id, self.service, sorted(answer))
        self._reply_handler(dbus.Dictionary(answer, signature="sv"))

    reply = __call__

    def cancel(self) -> None:
        """Refuses to provide the input, ConnMan gets net.connman.Agent.Error.Canceled"""
        self._check_pending()
        self._abandon("Input request canceled by user")

    def _abandon(self, reason: str) -> None:
        self.cancelled = True
        self._on_finished(self)
        self._error_handler(CanceledException(reason))


class Agent(dbus.service.Object):
    """
    net.connman.Agent endpoint.

    Every call from ConnMan is re-emitted as an event with the same name:
      Release()
      ReportError(service, error)
      RequestBrowser(service, url)
      RequestInput(service, fields, request)
      Cancel(cancelled_requests)
    RequestInput is answered by calling request(answer). Several requests may
    be pending at once, they are told apart by service and request_id.
    """

    def __init__(self, path: str = DEFAULT_AGENT_PATH, bus_name: Optional[str] = None):
        dbus.service.Object.__init__(self)
        self.path = path
        self.bus_name = bus_name
        self.events = EventEmitter("agent")
        self.pending_requests: Dict[int, InputRequest] = {}
        self.registered = False
        self._bus = None
        self._bus_name_obj = None

    def subscribe(self, event: str, handler: Callable) -> Subscription:
        return self.events.subscribe(event, handler)

    def unsubscribe(self, subscription: Subscription) -> None:
        self.events.unsubscribe(subscription)

    def init(self, connman, callback: Optional[Callable] = None) -> None:
        self._bus = connman.bus
        try:
            if self.bus_name:
                self._bus_name_obj = dbus.service.BusName(self.bus_name, self._bus)
            self.add_to_connection(self._bus, self.path)
        except dbus.exceptions.DBusException as ex:
            error = from_dbus_exception(ex)
            logging.error("Unable to export agent at %s: %s", self.path, error)
            defer(callback, error, None)
            return

        def _on_registered(error, _result):
            if error is not None:
                logging.error("Agent registration failed: %s", error)
            else:
                self.registered = True
                logging.info("Agent registered at %s", self.path)
            if callback:
                callback(error, None)

        connman.register_agent(self.path, _on_registered)

    def release(self, connman, callback: Optional[Callable] = None) -> None:
        def _on_unregistered(error, _result):
            if error is not None:
                logging.warning("Agent unregistration failed: %s", error)
            self.registered = False
            self.remove_from_connection()
            if callback:
                callback(error, None)

        connman.unregister_agent(self.path, _on_unregistered)

    def _forget(self, request: InputRequest) -> None:
        self.pending_requests.pop(request.request_id, None)

    # net.connman.Agent methods, called by ConnMan

    @dbus.service.method(AGENT_INTERFACE, in_signature="", out_signature="")
    def Release(self):
        logging.info("Agent released by ConnMan")
        self.registered = False
        for request in list(self.pending_requests.values()):
            request._abandon("Agent released by ConnMan")  # pylint: disable=protected-access
        self.events.emit("Release")

    @dbus.service.method(AGENT_INTERFACE, in_signature="os", out_signature="")
    def ReportError(self, service, error):
        logging.warning("ConnMan reports error for %s: %s", service, error)
        self.events.emit("ReportError", str(service), str(error))

    @dbus.service.method(AGENT_INTERFACE, in_signature="os", out_signature="")
    def RequestBrowser(self, service, url):
        logging.info("ConnMan requests browser login for %s: %s", service, url)
        self.events.emit("RequestBrowser", str(service), str(url))

    @dbus.service.method(
        AGENT_INTERFACE,
        in_signature="oa{sv}",
        out_signature="a{sv}",
        async_callbacks=("reply_handler", "error_handler"),
    )
    def RequestInput(self, service, fields, reply_handler, error_handler):
        request = InputRequest(str(service), to_python(fields), reply_handler, error_handler, self._forget)
        logging.info("Input request %s for %s: %s", request.request_id, request.service, sorted(request.fields))
        if not self.events.subscribers("RequestInput"):
            logging.warning("Nobody handles input requests, cancel request for %s", request.service)
            request._abandon("No input handler")  # pylint: disable=protected-access
            return
        self.pending_requests[request.request_id] = request
        self.events.emit("RequestInput", request.service, request.fields, request)

    @dbus.service.method(AGENT_INTERFACE, in_signature="", out_signature="")
    def Cancel(self):
        cancelled: List[InputRequest] = list(self.pending_requests.values())
        logging.info("ConnMan cancelled %d pending input request(s)", len(cancelled))
        for request in cancelled:
            request._abandon("Input request canceled by ConnMan")  # pylint: disable=protected-access
        self.events.emit("Cancel", cancelled)
