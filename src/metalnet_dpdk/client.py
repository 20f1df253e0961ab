"""Translation between network objects and dataplane RPC messages.

:class:`DataplaneClient` is a stateless mapper: every method validates its
input, builds exactly one request message, issues it on the stub and converts
the response back into :mod:`metalnet_dpdk.types` objects.  It never retries
and never caches.

Status handling is explicit.  A non-zero ``Status.error`` becomes a
:class:`~metalnet_dpdk.errors.StatusError` unless the caller listed the code
in ``ignore``; deciding which codes are harmless belongs to the caller, not to
this module.  Exceptions raised by the stub itself (transport failures) are
never caught here.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Collection, List, Optional, Union

from . import proto
from .errors import ResponseParseError, StatusError, ValidationError
from .types import (
    Interface,
    InterfaceMetadata,
    InterfaceSpec,
    InterfaceStatus,
    IPAddress,
    IPNetwork,
    LoadBalancerTarget,
    NeighborNat,
    Prefix,
    PrefixMetadata,
    PrefixSpec,
    Route,
    RouteMetadata,
    RouteNextHop,
    RouteSpec,
    VirtualIP,
    VirtualIPMetadata,
    VirtualIPSpec,
)

LOG = logging.getLogger(__name__)

MAX_VNI = 0xFFFFFFFF
MAX_PORT = 65535

AddressLike = Union[IPAddress, str]
NetworkLike = Union[IPNetwork, str]


# ----------------------------------------------------------------------
# Request side: validation and rendering
# ----------------------------------------------------------------------
def ip_version(address: IPAddress) -> proto.IPVersion:
    if address.version == 4:
        return proto.IPVersion.IPV4
    return proto.IPVersion.IPV6


def _coerce_address(value: AddressLike, field: str, version: Optional[int] = None) -> IPAddress:
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        address = value
    else:
        try:
            address = ipaddress.ip_address(value)
        except ValueError as exc:
            raise ValidationError(f"invalid {field} {value!r}: {exc}") from exc
    if version is not None and address.version != version:
        raise ValidationError(f"{field} {address} is not an IPv{version} address")
    return address


def _coerce_network(value: NetworkLike, field: str) -> IPNetwork:
    if isinstance(value, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
        return value
    try:
        return ipaddress.ip_network(value, strict=False)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"invalid {field} {value!r}: {exc}") from exc


def _check_vni(vni: int, field: str = "vni") -> int:
    if isinstance(vni, bool) or not isinstance(vni, int) or not 0 <= vni <= MAX_VNI:
        raise ValidationError(f"{field} {vni!r} is not an unsigned 32-bit value")
    return vni


def _check_id(value: str, field: str) -> bytes:
    if not value:
        raise ValidationError(f"{field} must not be empty")
    return str(value).encode("utf-8")


def _encode(address: IPAddress) -> bytes:
    return str(address).encode("ascii")


def _ip_config(address: Optional[IPAddress]) -> Optional[proto.IPConfig]:
    if address is None:
        return None
    return proto.IPConfig(ip_version=ip_version(address), primary_address=_encode(address))


def _prefix_msg(prefix: IPNetwork) -> proto.PrefixMsg:
    return proto.PrefixMsg(
        ip_version=ip_version(prefix.network_address),
        address=_encode(prefix.network_address),
        prefix_length=prefix.prefixlen,
    )


def _route_msg(route: Route) -> proto.VNIRouteMsg:
    vni = _check_vni(route.metadata.vni)
    prefix = _coerce_network(route.spec.prefix, "route prefix")
    next_hop_vni = _check_vni(route.spec.next_hop.vni, "next hop vni")
    next_hop = _coerce_address(route.spec.next_hop.address, "next hop address")
    return proto.VNIRouteMsg(
        vni=proto.VNIMsg(vni=vni),
        route=proto.RouteMsg(
            ip_version=ip_version(next_hop),
            prefix=_prefix_msg(prefix),
            nexthop_vni=next_hop_vni,
            nexthop_address=_encode(next_hop),
        ),
    )


def _nat_msg(nat: NeighborNat) -> proto.NeighborNATMsg:
    nat_ip = _coerce_address(nat.metadata.nat_ip, "nat ip")
    underlay = _coerce_address(nat.spec.underlay_route, "nat underlay route")
    min_port, max_port = nat.spec.min_port, nat.spec.max_port
    if not 0 <= min_port < max_port <= MAX_PORT:
        raise ValidationError(f"invalid nat port range [{min_port}, {max_port})")
    return proto.NeighborNATMsg(
        nat_vip_ip=_encode(nat_ip),
        ip_version=ip_version(nat_ip),
        vni=_check_vni(nat.spec.vni),
        min_port=min_port,
        max_port=max_port,
        underlay_route=_encode(underlay),
    )


def _lb_target_msg(load_balancer_id: str, target_ip: AddressLike) -> proto.LoadBalancerTargetMsg:
    target = _coerce_address(target_ip, "load balancer target ip")
    return proto.LoadBalancerTargetMsg(
        loadbalancer_id=_check_id(load_balancer_id, "load balancer id"),
        target_ip=proto.LBIP(ip_version=ip_version(target), address=_encode(target)),
    )


# ----------------------------------------------------------------------
# Response side: parsing
# ----------------------------------------------------------------------
def _decode(raw: Union[bytes, str], field: str) -> str:
    if isinstance(raw, str):
        return raw
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ResponseParseError(f"error parsing {field}: {exc}") from exc


def _parse_address(raw: Union[bytes, str], field: str, version: Optional[int] = None) -> IPAddress:
    text = _decode(raw, field)
    try:
        address = ipaddress.ip_address(text)
    except ValueError as exc:
        raise ResponseParseError(f"error parsing {field} {text!r}: {exc}") from exc
    if version is not None and address.version != version:
        raise ResponseParseError(f"error parsing {field}: {address} is not IPv{version}")
    return address


def _parse_optional_address(raw: Union[bytes, str], field: str, version: int) -> Optional[IPAddress]:
    if not raw:
        return None
    return _parse_address(raw, field, version)


def _parse_prefix(msg: proto.PrefixMsg, field: str) -> IPNetwork:
    address = _parse_address(msg.address, f"{field} address")
    try:
        return ipaddress.ip_network(f"{address}/{msg.prefix_length}", strict=False)
    except ValueError as exc:
        raise ResponseParseError(
            f"invalid {field} length {msg.prefix_length} for address {address}"
        ) from exc


class DataplaneClient:
    """Typed CRUD access to the dataplane service.

    Parameters
    ----------
    stub:
        Object implementing :class:`~metalnet_dpdk.proto.DataplaneStub`.
    """

    def __init__(self, stub: proto.DataplaneStub) -> None:
        self._stub = stub

    @property
    def stub(self) -> proto.DataplaneStub:
        return self._stub

    def _check(self, status: proto.Status, operation: str, ignore: Collection[int]) -> bool:
        """Return ``True`` on success, ``False`` if an ignored code was reported."""

        code = status.error
        if code == 0:
            return True
        if code in ignore:
            LOG.debug("%s: ignoring dataplane status %d (%s)", operation, code, status.message)
            return False
        raise StatusError(code, status.message)

    # ------------------------------------------------------------------
    # Interfaces
    # ------------------------------------------------------------------
    def get_interface(self, uid: str, ignore: Collection[int] = ()) -> Optional[Interface]:
        request = proto.InterfaceIDMsg(interface_id=_check_id(uid, "interface uid"))
        res = self._stub.GetInterface(request)
        if not self._check(res.status, "GetInterface", ignore):
            return None
        if res.interface is None:
            raise ResponseParseError(f"dataplane returned no interface for {uid}")
        return self._interface_from_msg(res.interface)

    def _interface_from_msg(self, msg: proto.InterfaceMsg) -> Interface:
        return Interface(
            metadata=InterfaceMetadata(uid=_decode(msg.interface_id, "interface id")),
            spec=InterfaceSpec(
                vni=msg.vni,
                device=msg.pci_dp_name,
                primary_ipv4_address=_parse_optional_address(
                    msg.primary_ipv4_address, "primary ipv4 address", 4
                ),
                primary_ipv6_address=_parse_optional_address(
                    msg.primary_ipv6_address, "primary ipv6 address", 6
                ),
            ),
            status=InterfaceStatus(
                underlay_route=_parse_address(msg.underlay_route, "underlay route"),
            ),
        )

    def create_interface(self, iface: Interface, ignore: Collection[int] = ()) -> Interface:
        spec = iface.spec
        ipv4 = None
        if spec.primary_ipv4_address is not None:
            ipv4 = _coerce_address(spec.primary_ipv4_address, "primary ipv4 address", 4)
        ipv6 = None
        if spec.primary_ipv6_address is not None:
            ipv6 = _coerce_address(spec.primary_ipv6_address, "primary ipv6 address", 6)

        request = proto.CreateInterfaceRequest(
            interface_type=proto.InterfaceType.VIRTUAL_INTERFACE,
            interface_id=_check_id(iface.uid, "interface uid"),
            vni=_check_vni(spec.vni),
            ipv4_config=_ip_config(ipv4),
            ipv6_config=_ip_config(ipv6),
            device_name=spec.device,
        )
        res = self._stub.CreateInterface(request)
        if not self._check(res.status, "CreateInterface", ignore):
            return iface

        underlay_route = _parse_address(res.underlay_route, "underlay route")
        LOG.debug("Created interface %s (underlay=%s)", iface.uid, underlay_route)
        return Interface(
            metadata=iface.metadata,
            spec=spec,
            status=InterfaceStatus(underlay_route=underlay_route),
        )

    def delete_interface(self, uid: str, ignore: Collection[int] = ()) -> None:
        request = proto.InterfaceIDMsg(interface_id=_check_id(uid, "interface uid"))
        res = self._stub.DeleteInterface(request)
        if self._check(res.status, "DeleteInterface", ignore):
            LOG.debug("Deleted interface %s", uid)

    # ------------------------------------------------------------------
    # Virtual IPs
    # ------------------------------------------------------------------
    def get_virtual_ip(self, interface_uid: str, ignore: Collection[int] = ()) -> Optional[VirtualIP]:
        request = proto.InterfaceIDMsg(interface_id=_check_id(interface_uid, "interface uid"))
        res = self._stub.GetInterfaceVIP(request)
        if not self._check(res.status, "GetInterfaceVIP", ignore):
            return None
        return VirtualIP(
            metadata=VirtualIPMetadata(interface_uid=interface_uid),
            spec=VirtualIPSpec(address=_parse_address(res.address, "virtual ip address")),
        )

    def create_virtual_ip(self, virtual_ip: VirtualIP, ignore: Collection[int] = ()) -> VirtualIP:
        address = _coerce_address(virtual_ip.spec.address, "virtual ip address")
        request = proto.InterfaceVIPMsg(
            interface_id=_check_id(virtual_ip.metadata.interface_uid, "interface uid"),
            interface_vip_ip=proto.InterfaceVIPIP(
                ip_version=ip_version(address),
                address=_encode(address),
            ),
        )
        res = self._stub.AddInterfaceVIP(request)
        if self._check(res.status, "AddInterfaceVIP", ignore):
            LOG.debug("Created virtual ip %s on %s", address, virtual_ip.metadata.interface_uid)
        return virtual_ip

    def delete_virtual_ip(self, interface_uid: str, ignore: Collection[int] = ()) -> None:
        request = proto.InterfaceIDMsg(interface_id=_check_id(interface_uid, "interface uid"))
        res = self._stub.DeleteInterfaceVIP(request)
        if self._check(res.status, "DeleteInterfaceVIP", ignore):
            LOG.debug("Deleted virtual ip of %s", interface_uid)

    # ------------------------------------------------------------------
    # Alias prefixes
    # ------------------------------------------------------------------
    def list_prefixes(self, interface_uid: str, ignore: Collection[int] = ()) -> List[Prefix]:
        request = proto.InterfaceIDMsg(interface_id=_check_id(interface_uid, "interface uid"))
        res = self._stub.ListInterfacePrefixes(request)
        if not self._check(res.status, "ListInterfacePrefixes", ignore):
            return []
        return [
            Prefix(
                metadata=PrefixMetadata(interface_uid=interface_uid),
                spec=PrefixSpec(prefix=_parse_prefix(msg, "prefix")),
            )
            for msg in res.prefixes
        ]

    def _interface_prefix_msg(self, interface_uid: str, prefix: NetworkLike) -> proto.InterfacePrefixMsg:
        return proto.InterfacePrefixMsg(
            interface_id=proto.InterfaceIDMsg(
                interface_id=_check_id(interface_uid, "interface uid")
            ),
            prefix=_prefix_msg(_coerce_network(prefix, "prefix")),
        )

    def create_prefix(self, prefix: Prefix, ignore: Collection[int] = ()) -> Prefix:
        request = self._interface_prefix_msg(prefix.metadata.interface_uid, prefix.spec.prefix)
        res = self._stub.AddInterfacePrefix(request)
        if self._check(res.status, "AddInterfacePrefix", ignore):
            LOG.debug("Created prefix %s on %s", prefix.spec.prefix, prefix.metadata.interface_uid)
        return prefix

    def delete_prefix(self, interface_uid: str, prefix: NetworkLike, ignore: Collection[int] = ()) -> None:
        request = self._interface_prefix_msg(interface_uid, prefix)
        res = self._stub.DeleteInterfacePrefix(request)
        if self._check(res.status, "DeleteInterfacePrefix", ignore):
            LOG.debug("Deleted prefix %s from %s", prefix, interface_uid)

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------
    def list_routes(self, vni: int, ignore: Collection[int] = ()) -> List[Route]:
        res = self._stub.ListRoutes(proto.VNIMsg(vni=_check_vni(vni)))
        if not self._check(res.status, "ListRoutes", ignore):
            return []
        return [
            Route(
                metadata=RouteMetadata(vni=vni),
                spec=RouteSpec(
                    prefix=_parse_prefix(msg.prefix, "route prefix"),
                    next_hop=RouteNextHop(
                        vni=msg.nexthop_vni,
                        address=_parse_address(msg.nexthop_address, "next hop address"),
                    ),
                ),
            )
            for msg in res.routes
        ]

    def create_route(self, route: Route, ignore: Collection[int] = ()) -> Route:
        res = self._stub.AddRoute(_route_msg(route))
        if self._check(res.status, "AddRoute", ignore):
            LOG.debug(
                "Created route %s via %s/%s in vni %d",
                route.spec.prefix,
                route.spec.next_hop.vni,
                route.spec.next_hop.address,
                route.vni,
            )
        return route

    def delete_route(self, route: Route, ignore: Collection[int] = ()) -> None:
        res = self._stub.DeleteRoute(_route_msg(route))
        if self._check(res.status, "DeleteRoute", ignore):
            LOG.debug("Deleted route %s from vni %d", route.spec.prefix, route.vni)

    # ------------------------------------------------------------------
    # NAT mappings
    # ------------------------------------------------------------------
    def create_neighbor_nat(self, nat: NeighborNat, ignore: Collection[int] = ()) -> NeighborNat:
        res = self._stub.AddNeighborNAT(_nat_msg(nat))
        if self._check(res.status, "AddNeighborNAT", ignore):
            LOG.debug(
                "Created neighbor nat %s [%d, %d) via %s in vni %d",
                nat.metadata.nat_ip,
                nat.spec.min_port,
                nat.spec.max_port,
                nat.spec.underlay_route,
                nat.spec.vni,
            )
        return nat

    def delete_neighbor_nat(self, nat: NeighborNat, ignore: Collection[int] = ()) -> None:
        res = self._stub.DeleteNeighborNAT(_nat_msg(nat))
        if self._check(res.status, "DeleteNeighborNAT", ignore):
            LOG.debug("Deleted neighbor nat %s in vni %d", nat.metadata.nat_ip, nat.spec.vni)

    # ------------------------------------------------------------------
    # Load balancer targets
    # ------------------------------------------------------------------
    def create_load_balancer_target(
        self, target: LoadBalancerTarget, ignore: Collection[int] = ()
    ) -> LoadBalancerTarget:
        request = _lb_target_msg(target.metadata.load_balancer_id, target.spec.target_ip)
        res = self._stub.AddLoadBalancerTarget(request)
        if self._check(res.status, "AddLoadBalancerTarget", ignore):
            LOG.debug(
                "Created target %s for load balancer %s",
                target.spec.target_ip,
                target.metadata.load_balancer_id,
            )
        return target

    def delete_load_balancer_target(
        self, load_balancer_id: str, target_ip: AddressLike, ignore: Collection[int] = ()
    ) -> None:
        res = self._stub.DeleteLoadBalancerTarget(_lb_target_msg(load_balancer_id, target_ip))
        if self._check(res.status, "DeleteLoadBalancerTarget", ignore):
            LOG.debug("Deleted target %s from load balancer %s", target_ip, load_balancer_id)
