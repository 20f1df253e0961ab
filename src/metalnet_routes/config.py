"""Data structures shared by the route engine and its callers.

Route events arrive as a ``(vni, destination, next_hop)`` triple.  The next
hop is a tagged union: :class:`NextHopType` selects which of the optional
payload fields are meaningful and which dataplane primitive realizes it.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from metalnet_dpdk.proto import IPVersion
from metalnet_dpdk.types import IPAddress, IPNetwork


class NextHopType(Enum):
    """Kind of a next hop.

    ``STANDARD`` hops become overlay routes and are fanned out to peered
    networks; ``LOADBALANCER_TARGET`` and ``NAT`` hops stay in the network
    that announced them.
    """

    STANDARD = "standard"
    LOADBALANCER_TARGET = "loadbalancer-target"
    NAT = "nat"


@dataclass(frozen=True)
class NextHop:
    type: NextHopType
    target_address: IPAddress
    target_vni: Optional[int] = None
    nat_port_range_from: int = 0
    nat_port_range_to: int = 0

    @classmethod
    def standard(cls, target_address: Union[IPAddress, str], target_vni: Optional[int] = None) -> "NextHop":
        return cls(NextHopType.STANDARD, ipaddress.ip_address(target_address), target_vni=target_vni)

    @classmethod
    def load_balancer_target(cls, target_address: Union[IPAddress, str]) -> "NextHop":
        return cls(NextHopType.LOADBALANCER_TARGET, ipaddress.ip_address(target_address))

    @classmethod
    def nat(cls, target_address: Union[IPAddress, str], port_from: int, port_to: int) -> "NextHop":
        return cls(
            NextHopType.NAT,
            ipaddress.ip_address(target_address),
            nat_port_range_from=port_from,
            nat_port_range_to=port_to,
        )

    def __str__(self) -> str:
        if self.type is NextHopType.NAT:
            return (
                f"{self.type.value} {self.target_address} "
                f"[{self.nat_port_range_from}, {self.nat_port_range_to})"
            )
        if self.target_vni is not None:
            return f"{self.type.value} {self.target_vni}/{self.target_address}"
        return f"{self.type.value} {self.target_address}"


@dataclass(frozen=True)
class Destination:
    """Destination prefix of a route event with its explicit IP version.

    ``host`` keeps the address the route was announced with when it carries
    host bits (``10.0.1.5/16``); ``prefix`` is always the enclosing network.
    """

    ip_version: IPVersion
    prefix: IPNetwork
    host: Optional[IPAddress] = None

    def __post_init__(self) -> None:
        expected = IPVersion.IPV4 if self.prefix.version == 4 else IPVersion.IPV6
        if self.ip_version != expected:
            raise ValueError(
                f"destination {self.prefix} does not match ip version {self.ip_version.name}"
            )
        if self.host is not None and self.host not in self.prefix:
            raise ValueError(f"destination host {self.host} is outside {self.prefix}")

    @classmethod
    def from_prefix(cls, prefix: Union[IPNetwork, str]) -> "Destination":
        if isinstance(prefix, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
            return cls(IPVersion.IPV4 if prefix.version == 4 else IPVersion.IPV6, prefix)
        interface = ipaddress.ip_interface(prefix)
        network = interface.network
        version = IPVersion.IPV4 if network.version == 4 else IPVersion.IPV6
        host = interface.ip if interface.ip != network.network_address else None
        return cls(ip_version=version, prefix=network, host=host)

    @property
    def address(self) -> IPAddress:
        """Announced address: ``host`` when set, else the network address."""
        return self.host if self.host is not None else self.prefix.network_address

    def __str__(self) -> str:
        return str(self.prefix)


@dataclass(frozen=True)
class ClientOptions:
    """Policy knobs of :class:`~metalnet_routes.client.MetalnetClient`.

    Attributes
    ----------
    ipv4_only:
        Reject route events for non-IPv4 destinations with an error before
        any dataplane call.
    preferred_network:
        When set, load balancer targets whose next hop address lies outside
        this subnet are skipped without error.
    """

    ipv4_only: bool = False
    preferred_network: Optional[IPNetwork] = None
