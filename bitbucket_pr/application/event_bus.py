from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

from bitbucket_pr.domain.interfaces import IEventChannel

log = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class InMemoryEventBus(IEventChannel):
    """
    Synchronous in-process pub/sub.

    Created by the composition root and passed to whoever needs it; close()
    drops every subscription. Handlers are called in subscription order for
    the exact event type published. A failing handler is logged and does not
    stop delivery to the others.
    """

    def __init__(self) -> None:
        self._handlers: defaultdict[type, list[Handler]] = defaultdict(list)
        self._closed = False

    def subscribe(self, event_type: type, handler: Handler) -> Callable[[], None]:
        if self._closed:
            raise RuntimeError("Event bus is closed")
        self._handlers[event_type].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event: Any) -> None:
        if self._closed:
            log.debug("Dropping %s: bus closed", type(event).__name__)
            return
        # copy: a handler may unsubscribe while we iterate
        for handler in list(self._handlers.get(type(event), [])):
            try:
                handler(event)
            except Exception:
                log.exception("Handler %r failed for %s", handler, type(event).__name__)

    def close(self) -> None:
        self._handlers.clear()
        self._closed = True
