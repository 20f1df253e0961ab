"""Overlay route realization.

Route announcements and withdrawals from the route propagation protocol are
turned into dataplane mutations here.  A standard route announced for one VNI
is installed in that VNI and in every peered VNI whose prefix allow-list
accepts it; load balancer target and NAT hops only ever touch the announcing
network.  :meth:`MetalnetClient.cleanup_not_peered_routes` removes what is
left behind when a peering goes away.
"""

from .cache import MetalnetCache, TopologyCache  # noqa: F401
from .client import MetalnetClient  # noqa: F401
from .config import ClientOptions, Destination, NextHop, NextHopType  # noqa: F401
from .errors import (  # noqa: F401
    AggregateRouteError,
    IPv4OnlyError,
    LoadBalancerNotRegisteredError,
    RouteError,
)

__all__ = [
    "AggregateRouteError",
    "ClientOptions",
    "Destination",
    "IPv4OnlyError",
    "LoadBalancerNotRegisteredError",
    "MetalnetCache",
    "MetalnetClient",
    "NextHop",
    "NextHopType",
    "RouteError",
    "TopologyCache",
]
