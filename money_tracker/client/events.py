"""Typed client events with one consumer per event type."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Type, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectivityChanged:
    online: bool


@dataclass(frozen=True)
class FormFieldChanged:
    field: str
    value: str


Event = Union[ConnectivityChanged, FormFieldChanged]
Handler = Callable[[Any], Union[None, Awaitable[None]]]


class EventDispatcher:
    def __init__(self) -> None:
        self._handlers: Dict[Type[Any], Handler] = {}

    def subscribe(self, event_type: Type[Any], handler: Handler) -> None:
        if event_type in self._handlers:
            raise ValueError(f"{event_type.__name__} already has a subscriber")
        self._handlers[event_type] = handler

    def unsubscribe(self, event_type: Type[Any]) -> None:
        self._handlers.pop(event_type, None)

    async def dispatch(self, event: Event) -> bool:
        """Deliver the event to its subscriber; False when nobody listens."""
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.debug("No subscriber for %s", type(event).__name__)
            return False
        result = handler(event)
        if inspect.isawaitable(result):
            await result
        return True
