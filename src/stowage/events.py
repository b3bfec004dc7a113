"""
Named-event channel used for completion delivery.

Manifesto:
    Every provider operation reports its outcome twice: to the callback passed
    with the call and to anyone subscribed to the operation's event on the
    provider. Both paths go through an ``EventChannel`` so that they share
    one dispatch implementation and one ordering rule.

Handlers are called with the emitted arguments, in registration order, one
after another. A handler may be a plain function or a coroutine function.
Exceptions raised by handlers are logged and never interrupt delivery to the
remaining handlers.

Examples:
    >>> channel = EventChannel()
    >>> received = []
    >>> channel.on("save", lambda error, doc: received.append(doc))
    'sub_...'
    >>> await channel.emit("save", None, {"_id": "a"})
    1

Tags:
    events, callbacks, asyncio, stowage

Doc-Types:
    api-reference
"""

from __future__ import annotations

import inspect
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from stowage.logging import get_logger

__all__ = ["EventChannel", "EventHandler"]

EventHandler = Callable[..., Any]

logger = get_logger(__name__)


@dataclass
class Subscription:
    """Internal subscription record."""

    id: str
    event: str
    handler: EventHandler
    once: bool = False


class EventChannel:
    """Ordered, in-process publish/subscribe keyed by event name."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}

    def on(self, event: str, handler: EventHandler) -> str:
        """Subscribe ``handler`` to every emission of ``event``.

        Returns:
            Subscription ID for :meth:`off`
        """
        return self._add(event, handler, once=False)

    def once(self, event: str, handler: EventHandler) -> str:
        """Subscribe ``handler`` to the next emission of ``event`` only."""
        return self._add(event, handler, once=True)

    def off(self, subscription_id: str) -> None:
        """Remove a subscription. Unknown IDs are ignored."""
        self._subscriptions.pop(subscription_id, None)

    def clear(self) -> None:
        self._subscriptions.clear()

    def listener_count(self, event: str | None = None) -> int:
        if event is None:
            return len(self._subscriptions)
        return sum(1 for sub in self._subscriptions.values() if sub.event == event)

    async def emit(self, event: str, *args: Any) -> int:
        """Deliver ``args`` to every handler subscribed to ``event``.

        One-shot subscriptions are removed before their handler runs, so a
        handler that emits the same event again is not re-entered.

        Returns:
            Number of handlers called
        """
        matching = [sub for sub in self._subscriptions.values() if sub.event == event]
        for sub in matching:
            if sub.once:
                self._subscriptions.pop(sub.id, None)

        for sub in matching:
            try:
                outcome = sub.handler(*args)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.warning(
                    "event_handler_error",
                    subscription_id=sub.id,
                    event_name=event,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return len(matching)

    def _add(self, event: str, handler: EventHandler, *, once: bool) -> str:
        sub_id = f"sub_{uuid.uuid4().hex[:12]}"
        self._subscriptions[sub_id] = Subscription(
            id=sub_id,
            event=event,
            handler=handler,
            once=once,
        )
        return sub_id
