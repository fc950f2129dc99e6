import logging
from typing import Callable, Dict, List


class Subscription:
    # pylint: disable=too-few-public-methods

    def __init__(self, emitter: "EventEmitter", event: str, handler: Callable):
        self.emitter = emitter
        self.event = event
        self.handler = handler

    def remove(self):
        self.emitter.unsubscribe(self)


class EventEmitter:
    """
    Named-event multiplexer owned by Technology, Service, Agent and Connman.
    Handlers are called synchronously in subscription order.
    """

    def __init__(self, owner: str = ""):
        self._owner = owner
        self._subscriptions: Dict[str, List[Subscription]] = {}

    def subscribe(self, event: str, handler: Callable) -> Subscription:
        subscription = Subscription(self, event, handler)
        self._subscriptions.setdefault(event, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        handlers = self._subscriptions.get(subscription.event, [])
        if subscription in handlers:
            handlers.remove(subscription)

    def subscribers(self, event: str) -> int:
        return len(self._subscriptions.get(event, []))

    def emit(self, event: str, *args) -> None:
        logging.debug("%s: %s %s", self._owner, event, args)
        for subscription in list(self._subscriptions.get(event, [])):
            subscription.handler(*args)
