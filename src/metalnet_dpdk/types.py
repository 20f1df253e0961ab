"""Network objects as seen by the control plane.

Each object is split into *metadata* (identity, never changes once created),
*spec* (the desired configuration) and, where the dataplane reports something
back, *status*.  Requests are built from ``spec`` alone while results are
assembled from the caller's metadata and whatever the dataplane returned.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


@dataclass(frozen=True)
class InterfaceMetadata:
    uid: str


@dataclass(frozen=True)
class InterfaceSpec:
    vni: int
    device: str = ""
    primary_ipv4_address: Optional[ipaddress.IPv4Address] = None
    primary_ipv6_address: Optional[ipaddress.IPv6Address] = None


@dataclass(frozen=True)
class InterfaceStatus:
    """Dataplane-observed state of an interface."""

    underlay_route: Optional[IPAddress] = None


@dataclass(frozen=True)
class Interface:
    metadata: InterfaceMetadata
    spec: InterfaceSpec
    status: InterfaceStatus = field(default_factory=InterfaceStatus)

    @property
    def uid(self) -> str:
        return self.metadata.uid


@dataclass(frozen=True)
class VirtualIPMetadata:
    interface_uid: str


@dataclass(frozen=True)
class VirtualIPSpec:
    address: IPAddress


@dataclass(frozen=True)
class VirtualIP:
    """Virtual IP attached to an interface; one per interface at a time."""

    metadata: VirtualIPMetadata
    spec: VirtualIPSpec


@dataclass(frozen=True)
class PrefixMetadata:
    interface_uid: str


@dataclass(frozen=True)
class PrefixSpec:
    prefix: IPNetwork


@dataclass(frozen=True)
class Prefix:
    """Alias prefix routed to an interface."""

    metadata: PrefixMetadata
    spec: PrefixSpec


@dataclass(frozen=True)
class RouteMetadata:
    vni: int


@dataclass(frozen=True)
class RouteNextHop:
    vni: int
    address: IPAddress


@dataclass(frozen=True)
class RouteSpec:
    prefix: IPNetwork
    next_hop: RouteNextHop


@dataclass(frozen=True)
class Route:
    """Overlay route installed into the forwarding table of ``metadata.vni``.

    A route is identified by ``(vni, prefix, next_hop)``.  All routes are
    installed with the same weight, there is no weighted multipath.
    """

    metadata: RouteMetadata
    spec: RouteSpec

    @property
    def vni(self) -> int:
        return self.metadata.vni


@dataclass(frozen=True)
class NeighborNatMetadata:
    nat_ip: IPAddress


@dataclass(frozen=True)
class NeighborNatSpec:
    vni: int
    min_port: int
    max_port: int
    underlay_route: IPAddress


@dataclass(frozen=True)
class NeighborNat:
    """NAT mapping of ``nat_ip`` ports ``[min_port, max_port)`` to an underlay target."""

    metadata: NeighborNatMetadata
    spec: NeighborNatSpec


@dataclass(frozen=True)
class LoadBalancerTargetMetadata:
    load_balancer_id: str


@dataclass(frozen=True)
class LoadBalancerTargetSpec:
    target_ip: IPAddress


@dataclass(frozen=True)
class LoadBalancerTarget:
    metadata: LoadBalancerTargetMetadata
    spec: LoadBalancerTargetSpec
