"""Dispatch route events to registered handlers."""

from __future__ import annotations

import logging
from typing import Dict, Union

from metalnet_routes.base import RouteHandler

from .events import PeeringChanged, RouteAdded, RouteRemoved

LOG = logging.getLogger(__name__)

Event = Union[RouteAdded, RouteRemoved, PeeringChanged]


class HandlerRegistry:
    """Fan route events out to every registered :class:`RouteHandler`."""

    def __init__(self) -> None:
        self._handlers: Dict[str, RouteHandler] = {}

    def register(self, name: str, handler: RouteHandler) -> None:
        if name in self._handlers:
            raise ValueError(f"handler '{name}' already registered")
        self._handlers[name] = handler

    def unregister(self, name: str) -> None:
        self._handlers.pop(name, None)

    def handle(self, event: Event) -> None:
        if isinstance(event, RouteAdded):
            self._on_route_added(event)
        elif isinstance(event, RouteRemoved):
            self._on_route_removed(event)
        elif isinstance(event, PeeringChanged):
            self._on_peering_changed(event)
        else:
            raise TypeError(f"Unsupported event type: {type(event)!r}")

    def _on_route_added(self, event: RouteAdded) -> None:
        for handler in self._handlers.values():
            handler.add_route(event.vni, event.destination, event.next_hop)

    def _on_route_removed(self, event: RouteRemoved) -> None:
        for handler in self._handlers.values():
            handler.remove_route(event.vni, event.destination, event.next_hop)

    def _on_peering_changed(self, event: PeeringChanged) -> None:
        for name, handler in self._handlers.items():
            removed = handler.cleanup_not_peered_routes(event.vni)
            if removed:
                LOG.info("%s removed %d unpeered routes from vni %d", name, removed, event.vni)
