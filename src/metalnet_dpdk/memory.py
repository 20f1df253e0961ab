"""In-memory dataplane used for lab runs and unit tests."""

from __future__ import annotations

import ipaddress
import logging
from threading import Lock
from typing import Dict, List, Optional, Set, Tuple

from . import errors, proto

LOG = logging.getLogger(__name__)

RouteKey = Tuple[bytes, int, int, bytes]
NatKey = Tuple[bytes, int, int, int]


def _status(code: int = 0, message: str = "") -> proto.StatusResponse:
    return proto.StatusResponse(status=proto.Status(error=code, message=message))


class InMemoryDataplane:
    """Thread-safe :class:`~metalnet_dpdk.proto.DataplaneStub` backed by dicts.

    It answers with the status codes the real service uses for duplicates and
    missing objects, which makes it suitable for exercising the idempotence
    handling of the route engine.  :meth:`fail_vni` makes every route and NAT
    call for one VNI fail with a chosen status; :attr:`calls` records every
    RPC that was issued when ``record_calls`` is set.
    """

    def __init__(self, underlay_prefix: str = "fc00::/64", record_calls: bool = False) -> None:
        self._lock = Lock()
        self._underlay = ipaddress.ip_network(underlay_prefix)
        self._next_underlay = 1
        self._interfaces: Dict[bytes, proto.InterfaceMsg] = {}
        self._vips: Dict[bytes, proto.InterfaceVIPIP] = {}
        self._prefixes: Dict[bytes, Dict[Tuple[bytes, int], proto.PrefixMsg]] = {}
        self._routes: Dict[int, Dict[RouteKey, proto.RouteMsg]] = {}
        self._nats: Dict[NatKey, proto.NeighborNATMsg] = {}
        self._load_balancers: Dict[bytes, Set[bytes]] = {}
        self._failures: Dict[int, proto.Status] = {}
        self.record_calls = record_calls
        self.calls: List[Tuple[str, object]] = []

    # ------------------------------------------------------------------
    # Test / lab helpers
    # ------------------------------------------------------------------
    def create_load_balancer(self, load_balancer_id: str) -> None:
        with self._lock:
            self._load_balancers.setdefault(load_balancer_id.encode("utf-8"), set())

    def load_balancer_targets(self, load_balancer_id: str) -> Set[str]:
        with self._lock:
            targets = self._load_balancers.get(load_balancer_id.encode("utf-8"), set())
            return {t.decode("utf-8") for t in targets}

    def neighbor_nats(self) -> List[proto.NeighborNATMsg]:
        with self._lock:
            return list(self._nats.values())

    def fail_vni(self, vni: int, code: int, message: str = "injected failure") -> None:
        with self._lock:
            self._failures[vni] = proto.Status(error=code, message=message)

    def clear_failures(self) -> None:
        with self._lock:
            self._failures.clear()

    def reset_calls(self) -> None:
        with self._lock:
            self.calls.clear()

    def _record(self, method: str, request: object) -> None:
        if self.record_calls:
            self.calls.append((method, request))

    def _failure(self, vni: int) -> Optional[proto.StatusResponse]:
        status = self._failures.get(vni)
        if status is None:
            return None
        return proto.StatusResponse(status=status)

    # ------------------------------------------------------------------
    # Interfaces
    # ------------------------------------------------------------------
    def GetInterface(self, request: proto.InterfaceIDMsg) -> proto.GetInterfaceResponse:
        with self._lock:
            self._record("GetInterface", request)
            iface = self._interfaces.get(request.interface_id)
            if iface is None:
                return proto.GetInterfaceResponse(
                    status=proto.Status(errors.NOT_FOUND, "interface not found")
                )
            return proto.GetInterfaceResponse(interface=iface)

    def CreateInterface(self, request: proto.CreateInterfaceRequest) -> proto.CreateInterfaceResponse:
        with self._lock:
            self._record("CreateInterface", request)
            if request.interface_id in self._interfaces:
                return proto.CreateInterfaceResponse(
                    status=proto.Status(errors.ALREADY_EXISTS, "interface already exists")
                )
            underlay = str(self._underlay[self._next_underlay]).encode("ascii")
            self._next_underlay += 1
            self._interfaces[request.interface_id] = proto.InterfaceMsg(
                interface_id=request.interface_id,
                vni=request.vni,
                primary_ipv4_address=request.ipv4_config.primary_address if request.ipv4_config else b"",
                primary_ipv6_address=request.ipv6_config.primary_address if request.ipv6_config else b"",
                pci_dp_name=request.device_name,
                underlay_route=underlay,
            )
            return proto.CreateInterfaceResponse(underlay_route=underlay)

    def DeleteInterface(self, request: proto.InterfaceIDMsg) -> proto.StatusResponse:
        with self._lock:
            self._record("DeleteInterface", request)
            if self._interfaces.pop(request.interface_id, None) is None:
                return _status(errors.NOT_FOUND, "interface not found")
            self._vips.pop(request.interface_id, None)
            self._prefixes.pop(request.interface_id, None)
            return _status()

    # ------------------------------------------------------------------
    # Virtual IPs
    # ------------------------------------------------------------------
    def GetInterfaceVIP(self, request: proto.InterfaceIDMsg) -> proto.InterfaceVIPResponse:
        with self._lock:
            self._record("GetInterfaceVIP", request)
            vip = self._vips.get(request.interface_id)
            if vip is None:
                return proto.InterfaceVIPResponse(
                    status=proto.Status(errors.NOT_FOUND, "virtual ip not found")
                )
            return proto.InterfaceVIPResponse(ip_version=vip.ip_version, address=vip.address)

    def AddInterfaceVIP(self, request: proto.InterfaceVIPMsg) -> proto.StatusResponse:
        with self._lock:
            self._record("AddInterfaceVIP", request)
            if request.interface_id not in self._interfaces:
                return _status(errors.NO_VM, "interface not found")
            if request.interface_id in self._vips:
                return _status(errors.ALREADY_EXISTS, "virtual ip already set")
            self._vips[request.interface_id] = request.interface_vip_ip
            return _status()

    def DeleteInterfaceVIP(self, request: proto.InterfaceIDMsg) -> proto.StatusResponse:
        with self._lock:
            self._record("DeleteInterfaceVIP", request)
            if self._vips.pop(request.interface_id, None) is None:
                return _status(errors.NOT_FOUND, "virtual ip not found")
            return _status()

    # ------------------------------------------------------------------
    # Alias prefixes
    # ------------------------------------------------------------------
    def ListInterfacePrefixes(self, request: proto.InterfaceIDMsg) -> proto.PrefixesResponse:
        with self._lock:
            self._record("ListInterfacePrefixes", request)
            if request.interface_id not in self._interfaces:
                return proto.PrefixesResponse(status=proto.Status(errors.NO_VM, "interface not found"))
            prefixes = self._prefixes.get(request.interface_id, {})
            return proto.PrefixesResponse(prefixes=tuple(prefixes.values()))

    def AddInterfacePrefix(self, request: proto.InterfacePrefixMsg) -> proto.StatusResponse:
        with self._lock:
            self._record("AddInterfacePrefix", request)
            uid = request.interface_id.interface_id
            if uid not in self._interfaces:
                return _status(errors.NO_VM, "interface not found")
            key = (request.prefix.address, request.prefix.prefix_length)
            prefixes = self._prefixes.setdefault(uid, {})
            if key in prefixes:
                return _status(errors.ALREADY_EXISTS, "prefix already exists")
            prefixes[key] = request.prefix
            return _status()

    def DeleteInterfacePrefix(self, request: proto.InterfacePrefixMsg) -> proto.StatusResponse:
        with self._lock:
            self._record("DeleteInterfacePrefix", request)
            uid = request.interface_id.interface_id
            key = (request.prefix.address, request.prefix.prefix_length)
            if self._prefixes.get(uid, {}).pop(key, None) is None:
                return _status(errors.NOT_FOUND, "prefix not found")
            return _status()

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------
    @staticmethod
    def _route_key(route: proto.RouteMsg) -> RouteKey:
        return (
            route.prefix.address,
            route.prefix.prefix_length,
            route.nexthop_vni,
            route.nexthop_address,
        )

    def AddRoute(self, request: proto.VNIRouteMsg) -> proto.StatusResponse:
        with self._lock:
            self._record("AddRoute", request)
            vni = request.vni.vni
            failure = self._failure(vni)
            if failure is not None:
                return failure
            table = self._routes.setdefault(vni, {})
            key = self._route_key(request.route)
            if key in table:
                return _status(errors.ROUTE_EXISTS, "route already exists")
            table[key] = request.route
            return _status()

    def DeleteRoute(self, request: proto.VNIRouteMsg) -> proto.StatusResponse:
        with self._lock:
            self._record("DeleteRoute", request)
            vni = request.vni.vni
            failure = self._failure(vni)
            if failure is not None:
                return failure
            table = self._routes.get(vni)
            if table is None:
                return _status(errors.NO_VNI, f"vni {vni} not found")
            if table.pop(self._route_key(request.route), None) is None:
                return _status(errors.ROUTE_NOT_FOUND, "route not found")
            return _status()

    def ListRoutes(self, request: proto.VNIMsg) -> proto.RoutesResponse:
        with self._lock:
            self._record("ListRoutes", request)
            routes = self._routes.get(request.vni, {})
            return proto.RoutesResponse(routes=tuple(routes.values()))

    # ------------------------------------------------------------------
    # NAT mappings
    # ------------------------------------------------------------------
    @staticmethod
    def _nat_key(request: proto.NeighborNATMsg) -> NatKey:
        return (request.nat_vip_ip, request.vni, request.min_port, request.max_port)

    def AddNeighborNAT(self, request: proto.NeighborNATMsg) -> proto.StatusResponse:
        with self._lock:
            self._record("AddNeighborNAT", request)
            failure = self._failure(request.vni)
            if failure is not None:
                return failure
            key = self._nat_key(request)
            if key in self._nats:
                return _status(errors.ALREADY_EXISTS, "neighbor nat already exists")
            self._nats[key] = request
            return _status()

    def DeleteNeighborNAT(self, request: proto.NeighborNATMsg) -> proto.StatusResponse:
        with self._lock:
            self._record("DeleteNeighborNAT", request)
            failure = self._failure(request.vni)
            if failure is not None:
                return failure
            if self._nats.pop(self._nat_key(request), None) is None:
                return _status(errors.NOT_FOUND, "neighbor nat not found")
            return _status()

    # ------------------------------------------------------------------
    # Load balancer targets
    # ------------------------------------------------------------------
    def AddLoadBalancerTarget(self, request: proto.LoadBalancerTargetMsg) -> proto.StatusResponse:
        with self._lock:
            self._record("AddLoadBalancerTarget", request)
            targets = self._load_balancers.get(request.loadbalancer_id)
            if targets is None:
                return _status(errors.NO_LB, "load balancer not found")
            if request.target_ip.address in targets:
                return _status(errors.ALREADY_EXISTS, "target already exists")
            targets.add(request.target_ip.address)
            return _status()

    def DeleteLoadBalancerTarget(self, request: proto.LoadBalancerTargetMsg) -> proto.StatusResponse:
        with self._lock:
            self._record("DeleteLoadBalancerTarget", request)
            targets = self._load_balancers.get(request.loadbalancer_id)
            if targets is None:
                return _status(errors.NO_LB, "load balancer not found")
            if request.target_ip.address not in targets:
                return _status(errors.NO_BACKIP, "target not found")
            targets.discard(request.target_ip.address)
            return _status()
