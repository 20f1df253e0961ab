"""Callback contract invoked by the route propagation protocol."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .config import Destination, NextHop


class RouteHandler(ABC):
    """Receives overlay route announcements and withdrawals for one VNI.

    Implementations raise on failure; the protocol engine re-delivers the
    event later, so both callbacks must tolerate duplicate delivery.
    """

    @abstractmethod
    def add_route(self, vni: int, destination: Destination, next_hop: NextHop) -> None:
        """Realize a route announced for ``vni``."""

    @abstractmethod
    def remove_route(self, vni: int, destination: Destination, next_hop: NextHop) -> None:
        """Remove a route withdrawn from ``vni``."""

    def cleanup_not_peered_routes(self, vni: int) -> int:
        """Drop routes of ``vni`` left behind by revoked peerings."""

        return 0
