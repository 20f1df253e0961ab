import ipaddress

import grpc
import pytest

from metalnet_dpdk import errors, proto
from metalnet_dpdk.client import DataplaneClient
from metalnet_dpdk.errors import StatusError
from metalnet_dpdk.memory import InMemoryDataplane
from metalnet_dpdk.rpc import GrpcDataplane, dpdk_pb2, from_message, serve, to_message
from metalnet_dpdk.types import Interface, InterfaceMetadata, InterfaceSpec
from metalnet_routes import Destination, MetalnetCache, MetalnetClient, NextHop


@pytest.fixture
def backend():
    return InMemoryDataplane(record_calls=True)


@pytest.fixture
def grpc_server(backend):
    server, port = serve(backend, max_workers=1)
    yield f"localhost:{port}"
    server.stop(0)


@pytest.fixture
def dataplane(grpc_server):
    stub = GrpcDataplane(grpc_server, timeout=5.0)
    yield stub
    stub.close()


def build_route_request(vni=200, prefix="10.0.0.0", length=24):
    return proto.VNIRouteMsg(
        vni=proto.VNIMsg(vni),
        route=proto.RouteMsg(
            ip_version=proto.IPVersion.IPV6,
            prefix=proto.PrefixMsg(proto.IPVersion.IPV4, prefix.encode(), length),
            nexthop_vni=100,
            nexthop_address=b"fc00::1",
        ),
    )


def test_route_message_converts_both_ways():
    request = build_route_request()

    message = to_message(request)

    assert isinstance(message, dpdk_pb2.VNIRouteMsg)
    assert message.vni.vni == 200
    assert message.route.prefix.address == b"10.0.0.0"
    assert message.route.weight == proto.DEFAULT_ROUTE_WEIGHT
    assert message.route.ip_version == dpdk_pb2.IPV6
    assert from_message(message) == request


def test_unset_nested_message_keeps_default():
    request = proto.CreateInterfaceRequest(
        interface_type=proto.InterfaceType.VIRTUAL_INTERFACE,
        interface_id=b"iface-1",
        vni=100,
        ipv4_config=proto.IPConfig(proto.IPVersion.IPV4, b"10.0.0.1"),
    )

    message = to_message(request)
    assert message.HasField("ipv4_config")
    assert not message.HasField("ipv6_config")

    converted = from_message(message)
    assert converted.ipv6_config is None
    assert converted.ipv4_config.ip_version is proto.IPVersion.IPV4
    assert converted == request


def test_repeated_messages_become_tuples():
    response = proto.RoutesResponse(routes=(build_route_request().route, build_route_request(prefix="10.1.0.0").route))

    converted = from_message(to_message(response))

    assert isinstance(converted.routes, tuple)
    assert converted == response


def test_requests_reach_backend_over_grpc(backend, dataplane):
    client = DataplaneClient(dataplane)
    iface = Interface(
        metadata=InterfaceMetadata(uid="iface-1"),
        spec=InterfaceSpec(vni=100, device="net_tap2", primary_ipv4_address=ipaddress.ip_address("10.0.0.1")),
    )

    created = client.create_interface(iface)
    fetched = client.get_interface("iface-1")

    assert created.status.underlay_route == ipaddress.ip_address("fc00::1")
    assert fetched.spec.primary_ipv4_address == ipaddress.ip_address("10.0.0.1")
    assert fetched.spec.primary_ipv6_address is None
    method, request = backend.calls[0]
    assert method == "CreateInterface"
    assert request.interface_id == b"iface-1"
    assert request.ipv6_config is None


def test_status_codes_cross_the_wire(dataplane):
    client = DataplaneClient(dataplane)

    with pytest.raises(StatusError) as excinfo:
        client.get_interface("missing")

    assert excinfo.value.code == errors.NOT_FOUND
    assert client.get_interface("missing", ignore=errors.ignore(errors.NOT_FOUND)) is None


def test_route_engine_over_grpc(backend, dataplane):
    cache = MetalnetCache()
    cache.set_peer_vnis(100, [200])
    client = MetalnetClient(DataplaneClient(dataplane), cache)
    destination = Destination.from_prefix("10.0.0.0/24")

    client.add_route(100, destination, NextHop.standard("fc00::1"))
    client.add_route(100, destination, NextHop.standard("fc00::1"))

    routes = DataplaneClient(backend).list_routes(200)
    assert [str(r.spec.prefix) for r in routes] == ["10.0.0.0/24"]
    assert routes[0].spec.next_hop.vni == 100

    client.remove_route(100, destination, NextHop.standard("fc00::1"))
    assert DataplaneClient(dataplane).list_routes(200) == []


def test_unreachable_service_raises_rpc_error():
    server, port = serve(InMemoryDataplane(), max_workers=1)
    server.stop(0).wait()
    stub = GrpcDataplane(f"localhost:{port}", timeout=1.0)
    try:
        with pytest.raises(grpc.RpcError):
            DataplaneClient(stub).list_routes(100)
    finally:
        stub.close()
