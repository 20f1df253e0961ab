"""Message model of the dataplane RPC service.

The dataplane speaks in flat request/response messages where addresses travel
as the bytes of their textual form next to an explicit IP version, and every
response carries a :class:`Status`.  :class:`DataplaneStub` lists the RPC
methods the translation layer calls; a generated client for the service or
:class:`metalnet_dpdk.memory.InMemoryDataplane` can be plugged in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, Protocol, Sequence

DEFAULT_ROUTE_WEIGHT = 100


class IPVersion(IntEnum):
    IPV4 = 0
    IPV6 = 1


class InterfaceType(IntEnum):
    VIRTUAL_INTERFACE = 0
    BAREMETAL_INTERFACE = 1


@dataclass(frozen=True)
class Status:
    error: int = 0
    message: str = ""


@dataclass(frozen=True)
class StatusResponse:
    status: Status = field(default_factory=Status)


@dataclass(frozen=True)
class InterfaceIDMsg:
    interface_id: bytes


@dataclass(frozen=True)
class VNIMsg:
    vni: int


@dataclass(frozen=True)
class IPConfig:
    ip_version: IPVersion
    primary_address: bytes


@dataclass(frozen=True)
class InterfaceMsg:
    interface_id: bytes
    vni: int
    primary_ipv4_address: bytes = b""
    primary_ipv6_address: bytes = b""
    pci_dp_name: str = ""
    underlay_route: bytes = b""


@dataclass(frozen=True)
class GetInterfaceResponse:
    status: Status = field(default_factory=Status)
    interface: Optional[InterfaceMsg] = None


@dataclass(frozen=True)
class CreateInterfaceRequest:
    interface_type: InterfaceType
    interface_id: bytes
    vni: int
    ipv4_config: Optional[IPConfig] = None
    ipv6_config: Optional[IPConfig] = None
    device_name: str = ""


@dataclass(frozen=True)
class CreateInterfaceResponse:
    status: Status = field(default_factory=Status)
    underlay_route: bytes = b""


@dataclass(frozen=True)
class InterfaceVIPIP:
    ip_version: IPVersion
    address: bytes


@dataclass(frozen=True)
class InterfaceVIPMsg:
    interface_id: bytes
    interface_vip_ip: InterfaceVIPIP


@dataclass(frozen=True)
class InterfaceVIPResponse:
    status: Status = field(default_factory=Status)
    ip_version: IPVersion = IPVersion.IPV4
    address: bytes = b""


@dataclass(frozen=True)
class PrefixMsg:
    ip_version: IPVersion
    address: bytes
    prefix_length: int


@dataclass(frozen=True)
class InterfacePrefixMsg:
    interface_id: InterfaceIDMsg
    prefix: PrefixMsg


@dataclass(frozen=True)
class PrefixesResponse:
    status: Status = field(default_factory=Status)
    prefixes: Sequence[PrefixMsg] = ()


@dataclass(frozen=True)
class RouteMsg:
    ip_version: IPVersion
    prefix: PrefixMsg
    nexthop_vni: int
    nexthop_address: bytes
    weight: int = DEFAULT_ROUTE_WEIGHT


@dataclass(frozen=True)
class VNIRouteMsg:
    vni: VNIMsg
    route: RouteMsg


@dataclass(frozen=True)
class RoutesResponse:
    status: Status = field(default_factory=Status)
    routes: Sequence[RouteMsg] = ()


@dataclass(frozen=True)
class NeighborNATMsg:
    nat_vip_ip: bytes
    ip_version: IPVersion
    vni: int
    min_port: int
    max_port: int
    underlay_route: bytes


@dataclass(frozen=True)
class LBIP:
    ip_version: IPVersion
    address: bytes


@dataclass(frozen=True)
class LoadBalancerTargetMsg:
    loadbalancer_id: bytes
    target_ip: LBIP


class DataplaneStub(Protocol):
    """RPC surface of the dataplane service used by :class:`DataplaneClient`."""

    def GetInterface(self, request: InterfaceIDMsg) -> GetInterfaceResponse: ...

    def CreateInterface(self, request: CreateInterfaceRequest) -> CreateInterfaceResponse: ...

    def DeleteInterface(self, request: InterfaceIDMsg) -> StatusResponse: ...

    def GetInterfaceVIP(self, request: InterfaceIDMsg) -> InterfaceVIPResponse: ...

    def AddInterfaceVIP(self, request: InterfaceVIPMsg) -> StatusResponse: ...

    def DeleteInterfaceVIP(self, request: InterfaceIDMsg) -> StatusResponse: ...

    def ListInterfacePrefixes(self, request: InterfaceIDMsg) -> PrefixesResponse: ...

    def AddInterfacePrefix(self, request: InterfacePrefixMsg) -> StatusResponse: ...

    def DeleteInterfacePrefix(self, request: InterfacePrefixMsg) -> StatusResponse: ...

    def AddRoute(self, request: VNIRouteMsg) -> StatusResponse: ...

    def DeleteRoute(self, request: VNIRouteMsg) -> StatusResponse: ...

    def ListRoutes(self, request: VNIMsg) -> RoutesResponse: ...

    def AddNeighborNAT(self, request: NeighborNATMsg) -> StatusResponse: ...

    def DeleteNeighborNAT(self, request: NeighborNATMsg) -> StatusResponse: ...

    def AddLoadBalancerTarget(self, request: LoadBalancerTargetMsg) -> StatusResponse: ...

    def DeleteLoadBalancerTarget(self, request: LoadBalancerTargetMsg) -> StatusResponse: ...
