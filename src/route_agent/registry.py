"""Fan object events out to the handlers interested in them."""

from __future__ import annotations

import logging
from typing import Dict

from .events import ObjectDelete, ObjectUpsert
from .handlers import EventHandler

LOG = logging.getLogger(__name__)


class HandlerRegistry:
    """Named set of :class:`EventHandler` subscribers.

    Watchers publish every observed object change here.  Handlers run in
    registration order on the publishing thread, so a handler should only
    record work (e.g. enqueue a Route key) and never reconcile inline.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, EventHandler] = {}

    def register(self, name: str, handler: EventHandler) -> None:
        if name in self._handlers:
            raise ValueError(f"event handler '{name}' is already registered")
        LOG.debug("Registered event handler %s", name)
        self._handlers[name] = handler

    def unregister(self, name: str) -> None:
        self._handlers.pop(name, None)

    def handle(self, event: ObjectUpsert | ObjectDelete) -> None:
        if isinstance(event, ObjectUpsert):
            callbacks = [h.on_upsert for h in self._handlers.values()]
        elif isinstance(event, ObjectDelete):
            callbacks = [h.on_delete for h in self._handlers.values()]
        else:
            raise TypeError(f"Unsupported event type: {type(event)!r}")
        for callback in callbacks:
            callback(event.obj)
