import ipaddress

import pytest

from metalnet_dpdk import errors
from metalnet_dpdk.client import DataplaneClient
from metalnet_dpdk.memory import InMemoryDataplane
from metalnet_dpdk.proto import IPVersion
from metalnet_dpdk.types import Route, RouteMetadata, RouteNextHop, RouteSpec
from metalnet_routes import (
    AggregateRouteError,
    ClientOptions,
    Destination,
    IPv4OnlyError,
    LoadBalancerNotRegisteredError,
    MetalnetCache,
    MetalnetClient,
    NextHop,
    RouteError,
)

HOP = NextHop.standard("fc00::1")


def build_client(options=None, dataplane=None):
    dataplane = dataplane or InMemoryDataplane(record_calls=True)
    cache = MetalnetCache()
    client = MetalnetClient(DataplaneClient(dataplane), cache, options)
    return dataplane, cache, client


def installed(dataplane, vni):
    return DataplaneClient(dataplane).list_routes(vni)


def installed_prefixes(dataplane, vni):
    return {str(route.spec.prefix) for route in installed(dataplane, vni)}


def called_vnis(dataplane, method):
    return {request.vni.vni for name, request in dataplane.calls if name == method}


def build_peered_topology(cache):
    cache.set_peer_vnis(100, [200, 300])
    cache.set_peered_prefixes(100, 300, ["10.0.0.0/24"])


class FlakyDataplane(InMemoryDataplane):
    """Dataplane whose transport breaks for one VNI."""

    def __init__(self, broken_vni):
        super().__init__(record_calls=True)
        self.broken_vni = broken_vni

    def AddRoute(self, request):
        if request.vni.vni == self.broken_vni:
            raise ConnectionError("connection reset")
        return super().AddRoute(request)

    def ListRoutes(self, request):
        if request.vni == self.broken_vni:
            raise ConnectionError("connection reset")
        return super().ListRoutes(request)


def test_add_then_remove_leaves_no_route():
    dataplane, cache, client = build_client()
    build_peered_topology(cache)
    destination = Destination.from_prefix("10.0.0.5/32")

    client.add_route(100, destination, HOP)
    client.remove_route(100, destination, HOP)

    for vni in (100, 200, 300):
        assert installed(dataplane, vni) == []


def test_repeated_add_installs_single_route():
    dataplane, _, client = build_client()
    destination = Destination.from_prefix("10.0.0.0/24")

    client.add_route(100, destination, HOP)
    client.add_route(100, destination, HOP)

    assert len(installed(dataplane, 100)) == 1


def test_repeated_remove_is_harmless():
    dataplane, cache, client = build_client()
    cache.set_peer_vnis(100, [200])
    destination = Destination.from_prefix("10.0.0.0/24")

    client.remove_route(100, destination, HOP)
    client.add_route(100, destination, HOP)
    client.remove_route(100, destination, HOP)
    client.remove_route(100, destination, HOP)

    assert installed(dataplane, 100) == []
    assert installed(dataplane, 200) == []


def test_fan_out_respects_peer_prefix_filters():
    dataplane, cache, client = build_client()
    build_peered_topology(cache)

    client.add_route(100, Destination.from_prefix("10.0.0.5/32"), HOP)
    client.add_route(100, Destination.from_prefix("192.168.1.1/32"), HOP)

    assert installed_prefixes(dataplane, 100) == {"10.0.0.5/32", "192.168.1.1/32"}
    assert installed_prefixes(dataplane, 200) == {"10.0.0.5/32", "192.168.1.1/32"}
    assert installed_prefixes(dataplane, 300) == {"10.0.0.5/32"}


def test_peer_routes_point_back_to_announcing_network():
    dataplane, cache, client = build_client()
    cache.set_peer_vnis(100, [200])

    client.add_route(100, Destination.from_prefix("10.0.0.0/24"), HOP)

    [route] = installed(dataplane, 200)
    assert route.spec.next_hop.vni == 100
    assert route.spec.next_hop.address == ipaddress.ip_address("fc00::1")


def test_explicit_target_vni_is_used_as_next_hop():
    dataplane, _, client = build_client()

    client.add_route(100, Destination.from_prefix("10.0.0.0/24"), NextHop.standard("fc00::1", target_vni=700))

    [route] = installed(dataplane, 100)
    assert route.spec.next_hop.vni == 700


def test_remove_ignores_peer_filters():
    dataplane, cache, client = build_client()
    build_peered_topology(cache)
    destination = Destination.from_prefix("192.168.1.1/32")
    client.add_route(100, destination, HOP)
    dataplane.reset_calls()

    client.remove_route(100, destination, HOP)

    assert called_vnis(dataplane, "DeleteRoute") == {100, 200, 300}
    assert installed(dataplane, 200) == []


def test_filtered_peer_receives_no_add_call():
    dataplane, cache, client = build_client()
    build_peered_topology(cache)

    client.add_route(100, Destination.from_prefix("192.168.1.1/32"), HOP)

    assert called_vnis(dataplane, "AddRoute") == {100, 200}


def test_unregistered_load_balancer_is_an_error():
    dataplane, cache, client = build_client()
    cache.set_peer_vnis(100, [200])

    with pytest.raises(AggregateRouteError) as excinfo:
        client.add_route(100, Destination.from_prefix("10.0.0.100/32"), NextHop.load_balancer_target("fc00::10"))

    [error] = excinfo.value.errors
    assert isinstance(error, LoadBalancerNotRegisteredError)
    assert "vni 100 and ip 10.0.0.100" in str(excinfo.value)
    assert dataplane.calls == []


def test_load_balancer_target_lifecycle():
    dataplane, cache, client = build_client()
    cache.set_peer_vnis(100, [200])
    cache.add_load_balancer_server(100, "10.0.0.100", "lb-1")
    dataplane.create_load_balancer("lb-1")
    destination = Destination.from_prefix("10.0.0.100/32")
    hop = NextHop.load_balancer_target("fc00::10")

    client.add_route(100, destination, hop)
    client.add_route(100, destination, hop)
    assert dataplane.load_balancer_targets("lb-1") == {"fc00::10"}
    assert [name for name, _ in dataplane.calls].count("AddLoadBalancerTarget") == 2

    client.remove_route(100, destination, hop)
    client.remove_route(100, destination, hop)
    assert dataplane.load_balancer_targets("lb-1") == set()
    assert installed(dataplane, 200) == []


def test_load_balancer_target_outside_preferred_network_is_skipped():
    options = ClientOptions(preferred_network=ipaddress.ip_network("fc00:1::/64"))
    dataplane, cache, client = build_client(options)
    cache.add_load_balancer_server(100, "10.0.0.100", "lb-1")
    dataplane.create_load_balancer("lb-1")
    destination = Destination.from_prefix("10.0.0.100/32")

    client.add_route(100, destination, NextHop.load_balancer_target("fc00::10"))
    assert dataplane.calls == []

    client.add_route(100, destination, NextHop.load_balancer_target("fc00:1::10"))
    assert dataplane.load_balancer_targets("lb-1") == {"fc00:1::10"}


def test_ipv4_only_rejects_ipv6_before_any_call():
    dataplane, cache, client = build_client(ClientOptions(ipv4_only=True))
    cache.set_peer_vnis(100, [200])
    destination = Destination.from_prefix("2001:db8::/64")

    with pytest.raises(AggregateRouteError) as excinfo:
        client.add_route(100, destination, HOP)
    assert all(isinstance(e, IPv4OnlyError) for e in excinfo.value.errors)

    with pytest.raises(AggregateRouteError):
        client.remove_route(100, destination, HOP)

    assert dataplane.calls == []


def test_ipv6_routes_allowed_by_default():
    dataplane, _, client = build_client()

    client.add_route(100, Destination.from_prefix("2001:db8::/64"), HOP)

    assert installed_prefixes(dataplane, 100) == {"2001:db8::/64"}


def test_nat_lifecycle_stays_local():
    dataplane, cache, client = build_client()
    cache.set_peer_vnis(100, [200])
    destination = Destination.from_prefix("45.86.6.2/32")
    hop = NextHop.nat("fc00::20", 1024, 2048)

    client.add_route(100, destination, hop)
    client.add_route(100, destination, hop)

    [nat] = dataplane.neighbor_nats()
    assert nat.vni == 100
    assert nat.nat_vip_ip == b"45.86.6.2"
    assert (nat.min_port, nat.max_port) == (1024, 2048)
    assert nat.underlay_route == b"fc00::20"
    assert [name for name, _ in dataplane.calls] == ["AddNeighborNAT", "AddNeighborNAT"]

    client.remove_route(100, destination, hop)
    client.remove_route(100, destination, hop)
    assert dataplane.neighbor_nats() == []


def test_partial_failure_keeps_other_networks():
    dataplane, cache, client = build_client()
    cache.set_peer_vnis(100, [200, 300])
    dataplane.fail_vni(300, errors.LIMIT_REACHED, "table full")

    with pytest.raises(AggregateRouteError) as excinfo:
        client.add_route(100, Destination.from_prefix("10.0.0.0/24"), HOP)

    [error] = excinfo.value.errors
    assert isinstance(error, RouteError)
    assert "vni 300" in str(error)
    assert "table full" in str(error)
    assert installed_prefixes(dataplane, 100) == {"10.0.0.0/24"}
    assert installed_prefixes(dataplane, 200) == {"10.0.0.0/24"}


def test_every_failure_is_reported():
    dataplane, cache, client = build_client()
    cache.set_peer_vnis(100, [200, 300])
    dataplane.fail_vni(200, errors.LIMIT_REACHED)
    dataplane.fail_vni(300, errors.LIMIT_REACHED)

    with pytest.raises(AggregateRouteError) as excinfo:
        client.add_route(100, Destination.from_prefix("10.0.0.0/24"), HOP)

    assert len(excinfo.value.errors) == 2
    lines = str(excinfo.value).split("\n")
    assert "vni 200" in lines[0]
    assert "vni 300" in lines[1]


def test_transport_failure_is_collected_unwrapped():
    dataplane, cache, client = build_client(dataplane=FlakyDataplane(broken_vni=200))
    cache.set_peer_vnis(100, [200, 300])

    with pytest.raises(AggregateRouteError) as excinfo:
        client.add_route(100, Destination.from_prefix("10.0.0.0/24"), HOP)

    [error] = excinfo.value.errors
    assert isinstance(error, ConnectionError)
    assert installed_prefixes(dataplane, 300) == {"10.0.0.0/24"}


def build_route(vni, next_hop_vni, prefix):
    return Route(
        metadata=RouteMetadata(vni=vni),
        spec=RouteSpec(
            prefix=ipaddress.ip_network(prefix),
            next_hop=RouteNextHop(vni=next_hop_vni, address=ipaddress.ip_address("fc00::1")),
        ),
    )


def test_cleanup_removes_only_unpeered_routes():
    dataplane, cache, client = build_client()
    cache.set_peer_vnis(100, [200])
    seed = DataplaneClient(dataplane)
    seed.create_route(build_route(100, 100, "10.0.0.0/24"))
    seed.create_route(build_route(100, 200, "10.2.0.0/24"))
    seed.create_route(build_route(100, 400, "10.4.0.0/24"))

    removed = client.cleanup_not_peered_routes(100)

    assert removed == 1
    assert {r.spec.next_hop.vni for r in installed(dataplane, 100)} == {100, 200}


def test_cleanup_without_peers_keeps_local_routes_only():
    dataplane, _, client = build_client()
    seed = DataplaneClient(dataplane)
    seed.create_route(build_route(100, 100, "10.0.0.0/24"))
    seed.create_route(build_route(100, 200, "10.2.0.0/24"))

    assert client.cleanup_not_peered_routes(100) == 1
    assert installed_prefixes(dataplane, 100) == {"10.0.0.0/24"}
    assert client.cleanup_not_peered_routes(100) == 0


def test_cleanup_reports_delete_failures():
    dataplane, _, client = build_client()
    DataplaneClient(dataplane).create_route(build_route(100, 200, "10.2.0.0/24"))
    dataplane.fail_vni(100, errors.LIMIT_REACHED)

    with pytest.raises(AggregateRouteError) as excinfo:
        client.cleanup_not_peered_routes(100)

    assert "10.2.0.0/24" in str(excinfo.value)


def test_cleanup_propagates_transport_failure():
    _, _, client = build_client(dataplane=FlakyDataplane(broken_vni=100))

    with pytest.raises(ConnectionError):
        client.cleanup_not_peered_routes(100)


def test_destination_version_must_match_prefix():
    with pytest.raises(ValueError):
        Destination(IPVersion.IPV6, ipaddress.ip_network("10.0.0.0/24"))


def test_peer_filter_uses_announced_host_address():
    dataplane, cache, client = build_client()
    cache.set_peer_vnis(100, [300])
    cache.set_peered_prefixes(100, 300, ["10.0.1.0/24"])
    destination = Destination.from_prefix("10.0.1.5/16")

    assert destination.address == ipaddress.ip_address("10.0.1.5")
    assert str(destination.prefix) == "10.0.0.0/16"

    client.add_route(100, destination, HOP)

    assert installed_prefixes(dataplane, 300) == {"10.0.0.0/16"}


def test_load_balancer_lookup_uses_announced_host_address():
    dataplane, cache, client = build_client()
    cache.add_load_balancer_server(100, "10.0.1.5", "lb-1")
    dataplane.create_load_balancer("lb-1")

    client.add_route(100, Destination.from_prefix("10.0.1.5/16"), NextHop.load_balancer_target("fc00::10"))

    assert dataplane.load_balancer_targets("lb-1") == {"fc00::10"}


def test_destination_host_must_lie_in_prefix():
    try:
        Destination(IPVersion.IPV4, ipaddress.ip_network("10.0.0.0/24"), ipaddress.ip_address("10.0.1.5"))
    except ValueError as exc:
        assert "outside 10.0.0.0/24" in str(exc)
    else:
        raise AssertionError("expected ValueError")
