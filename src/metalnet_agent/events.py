"""Event primitives consumed by the handler registry."""

from __future__ import annotations

from dataclasses import dataclass

from metalnet_routes.config import Destination, NextHop


@dataclass(frozen=True)
class RouteAdded:
    """A route was announced for ``vni``."""

    vni: int
    destination: Destination
    next_hop: NextHop


@dataclass(frozen=True)
class RouteRemoved:
    """A route was withdrawn from ``vni``."""

    vni: int
    destination: Destination
    next_hop: NextHop


@dataclass(frozen=True)
class PeeringChanged:
    """The peer set of ``vni`` lost members; stale routes should be swept."""

    vni: int
