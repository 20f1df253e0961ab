"""Realize overlay route events in the local dataplane.

:class:`MetalnetClient` turns a single announcement or withdrawal for one VNI
into the full set of dataplane mutations: the local network plus, for
standard next hops, every network currently peered with it.  Peered networks
can restrict what they accept with a prefix allow-list.

Each dataplane call carries the list of status codes that mean "already in
the desired state" for that operation (see the ``*_IGNORED`` constants), so a
re-delivered event succeeds without side effects.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Mapping, Optional, Sequence

from metalnet_dpdk import errors as dpdk_errors
from metalnet_dpdk.client import DataplaneClient
from metalnet_dpdk.errors import DataplaneError
from metalnet_dpdk.proto import IPVersion
from metalnet_dpdk.types import (
    IPNetwork,
    LoadBalancerTarget,
    LoadBalancerTargetMetadata,
    LoadBalancerTargetSpec,
    NeighborNat,
    NeighborNatMetadata,
    NeighborNatSpec,
    Route,
    RouteMetadata,
    RouteNextHop,
    RouteSpec,
)

from .base import RouteHandler
from .cache import TopologyCache
from .config import ClientOptions, Destination, NextHop, NextHopType
from .errors import AggregateRouteError, IPv4OnlyError, LoadBalancerNotRegisteredError, RouteError

LOG = logging.getLogger(__name__)

LB_TARGET_ADD_IGNORED = dpdk_errors.ignore(dpdk_errors.ALREADY_EXISTS)
LB_TARGET_REMOVE_IGNORED = dpdk_errors.ignore(
    dpdk_errors.NOT_FOUND, dpdk_errors.NO_BACKIP, dpdk_errors.NO_LB
)
NAT_ADD_IGNORED = dpdk_errors.ignore(dpdk_errors.ALREADY_EXISTS)
NAT_REMOVE_IGNORED = dpdk_errors.ignore(dpdk_errors.NOT_FOUND)
ROUTE_ADD_IGNORED = dpdk_errors.ignore(dpdk_errors.ROUTE_EXISTS)
ROUTE_REMOVE_IGNORED = dpdk_errors.ignore(dpdk_errors.NO_VNI, dpdk_errors.ROUTE_NOT_FOUND)


class Action(Enum):
    ADD = "add"
    REMOVE = "remove"


def _raise_failures(failures: Sequence[BaseException]) -> None:
    if failures:
        raise AggregateRouteError(failures)


class MetalnetClient(RouteHandler):
    """Route event handler backed by the dataplane and the topology cache."""

    def __init__(
        self,
        dataplane: DataplaneClient,
        cache: TopologyCache,
        options: Optional[ClientOptions] = None,
    ) -> None:
        self._dataplane = dataplane
        self._cache = cache
        self._options = options or ClientOptions()

    @property
    def options(self) -> ClientOptions:
        return self._options

    # ------------------------------------------------------------------
    # Single network
    # ------------------------------------------------------------------
    def realize(
        self,
        origin_vni: int,
        vni: int,
        destination: Destination,
        next_hop: NextHop,
        action: Action,
    ) -> None:
        """Apply one route event to the forwarding state of ``vni``.

        ``origin_vni`` is the network that announced the route; it differs
        from ``vni`` when the route is being propagated into a peer.
        """

        if self._options.ipv4_only and destination.ip_version != IPVersion.IPV4:
            raise IPv4OnlyError(
                f"received non-IPv4 route {destination} will not be installed "
                "(IPv4-only mode)"
            )

        if next_hop.type is NextHopType.LOADBALANCER_TARGET:
            self._realize_lb_target(vni, destination, next_hop, action)
        elif next_hop.type is NextHopType.NAT:
            self._realize_nat(vni, destination, next_hop, action)
        else:
            self._realize_route(origin_vni, vni, destination, next_hop, action)

    def _realize_lb_target(
        self, vni: int, destination: Destination, next_hop: NextHop, action: Action
    ) -> None:
        address = str(destination.address)
        load_balancer_id = self._cache.get_load_balancer_server(vni, address)
        if load_balancer_id is None:
            raise LoadBalancerNotRegisteredError(vni, address)

        if action is Action.REMOVE:
            try:
                self._dataplane.delete_load_balancer_target(
                    load_balancer_id, next_hop.target_address, ignore=LB_TARGET_REMOVE_IGNORED
                )
            except DataplaneError as exc:
                raise RouteError(f"error deleting lb target: {exc}") from exc
            return

        preferred = self._options.preferred_network
        if preferred is not None and next_hop.target_address not in preferred:
            LOG.debug(
                "LB target %s is not in preferred network %s, ignoring",
                next_hop.target_address,
                preferred,
            )
            return

        target = LoadBalancerTarget(
            metadata=LoadBalancerTargetMetadata(load_balancer_id=load_balancer_id),
            spec=LoadBalancerTargetSpec(target_ip=next_hop.target_address),
        )
        try:
            self._dataplane.create_load_balancer_target(target, ignore=LB_TARGET_ADD_IGNORED)
        except DataplaneError as exc:
            raise RouteError(f"error creating lb target: {exc}") from exc

    def _realize_nat(
        self, vni: int, destination: Destination, next_hop: NextHop, action: Action
    ) -> None:
        nat = NeighborNat(
            metadata=NeighborNatMetadata(nat_ip=destination.address),
            spec=NeighborNatSpec(
                vni=vni,
                min_port=next_hop.nat_port_range_from,
                max_port=next_hop.nat_port_range_to,
                underlay_route=next_hop.target_address,
            ),
        )
        try:
            if action is Action.ADD:
                self._dataplane.create_neighbor_nat(nat, ignore=NAT_ADD_IGNORED)
            else:
                self._dataplane.delete_neighbor_nat(nat, ignore=NAT_REMOVE_IGNORED)
        except DataplaneError as exc:
            verb = "creating" if action is Action.ADD else "deleting"
            raise RouteError(f"error {verb} nat route in vni {vni}: {exc}") from exc

    def _realize_route(
        self,
        origin_vni: int,
        vni: int,
        destination: Destination,
        next_hop: NextHop,
        action: Action,
    ) -> None:
        next_hop_vni = origin_vni if next_hop.target_vni is None else next_hop.target_vni
        route = Route(
            metadata=RouteMetadata(vni=vni),
            spec=RouteSpec(
                prefix=destination.prefix,
                next_hop=RouteNextHop(vni=next_hop_vni, address=next_hop.target_address),
            ),
        )
        try:
            if action is Action.ADD:
                self._dataplane.create_route(route, ignore=ROUTE_ADD_IGNORED)
            else:
                self._dataplane.delete_route(route, ignore=ROUTE_REMOVE_IGNORED)
        except DataplaneError as exc:
            verb = "creating" if action is Action.ADD else "deleting"
            raise RouteError(f"error {verb} route in vni {vni}: {exc}") from exc

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------
    def _attempt(
        self,
        failures: List[BaseException],
        origin_vni: int,
        vni: int,
        destination: Destination,
        next_hop: NextHop,
        action: Action,
    ) -> None:
        # Every network gets its attempt; failures are reported together.
        try:
            self.realize(origin_vni, vni, destination, next_hop, action)
        except Exception as exc:
            LOG.debug("%s %s in vni %d failed: %s", action.value, destination, vni, exc)
            failures.append(exc)

    @staticmethod
    def _peer_accepts(
        peered_prefixes: Mapping[int, Sequence[IPNetwork]],
        peer: int,
        destination: Destination,
    ) -> bool:
        allowed = peered_prefixes.get(peer)
        if allowed is None:
            return True
        return any(destination.address in prefix for prefix in allowed)

    def add_route(self, vni: int, destination: Destination, next_hop: NextHop) -> None:
        LOG.debug("AddRoute vni=%d dest=%s hop=%s", vni, destination, next_hop)
        failures: List[BaseException] = []

        self._attempt(failures, vni, vni, destination, next_hop, Action.ADD)

        if next_hop.type is NextHopType.STANDARD:
            peers = self._cache.get_peer_vnis(vni)
            peered_prefixes = self._cache.get_peered_prefixes(vni)
            LOG.debug("vni %d peers=%s peered_prefixes=%s", vni, sorted(peers), peered_prefixes)
            for peer in sorted(peers):
                if not self._peer_accepts(peered_prefixes, peer, destination):
                    LOG.debug("%s is not allowed into peer vni %d", destination, peer)
                    continue
                self._attempt(failures, vni, peer, destination, next_hop, Action.ADD)

        _raise_failures(failures)

    def remove_route(self, vni: int, destination: Destination, next_hop: NextHop) -> None:
        LOG.debug("RemoveRoute vni=%d dest=%s hop=%s", vni, destination, next_hop)
        failures: List[BaseException] = []

        self._attempt(failures, vni, vni, destination, next_hop, Action.REMOVE)

        if next_hop.type is NextHopType.STANDARD:
            # No allow-list check: the filter may have changed since the add.
            for peer in sorted(self._cache.get_peer_vnis(vni)):
                self._attempt(failures, vni, peer, destination, next_hop, Action.REMOVE)

        _raise_failures(failures)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------
    def cleanup_not_peered_routes(self, vni: int) -> int:
        """Delete routes in ``vni`` whose next hop network is no longer peered.

        Returns the number of routes that were deleted.
        """

        try:
            routes = self._dataplane.list_routes(vni)
        except DataplaneError as exc:
            raise RouteError(f"error listing dpdk routes for vni {vni}: {exc}") from exc

        peers = self._cache.get_peer_vnis(vni)
        failures: List[BaseException] = []
        removed = 0
        for route in routes:
            next_hop_vni = route.spec.next_hop.vni
            if next_hop_vni == vni or next_hop_vni in peers:
                continue
            try:
                self._dataplane.delete_route(route, ignore=ROUTE_REMOVE_IGNORED)
            except DataplaneError as exc:
                failures.append(RouteError(f"error deleting route {route.spec.prefix} from vni {vni}: {exc}"))
                continue
            removed += 1
            LOG.info(
                "Removed unpeered route %s via vni %d from vni %d",
                route.spec.prefix,
                next_hop_vni,
                vni,
            )

        _raise_failures(failures)
        return removed
