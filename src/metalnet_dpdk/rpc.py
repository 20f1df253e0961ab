"""gRPC transport for the dataplane service.

The service definition lives next to this module in ``dpdk.proto`` and is
compiled on import through :func:`grpc.protos_and_services`.  Its message and
field names mirror :mod:`metalnet_dpdk.proto`, so conversion in both
directions is mechanical: :func:`to_message` turns a message dataclass into
its protobuf counterpart and :func:`from_message` does the reverse.

:class:`GrpcDataplane` is the client side and satisfies
:class:`~metalnet_dpdk.proto.DataplaneStub`.  :class:`DataplaneServicer`
serves any ``DataplaneStub`` implementation (typically
:class:`~metalnet_dpdk.memory.InMemoryDataplane`) over gRPC for lab setups.
"""

from __future__ import annotations

import dataclasses
import logging
from concurrent import futures
from typing import Any, Tuple

import grpc

from . import proto

LOG = logging.getLogger(__name__)

PROTO_PATH = "metalnet_dpdk/dpdk.proto"
DEFAULT_ADDRESS = "localhost:1337"
DEFAULT_TIMEOUT = 10.0

dpdk_pb2, dpdk_pb2_grpc = grpc.protos_and_services(PROTO_PATH)


def to_message(value: Any) -> Any:
    """Build the protobuf message for a :mod:`metalnet_dpdk.proto` dataclass."""

    message = getattr(dpdk_pb2, type(value).__name__)()
    for field in dataclasses.fields(value):
        item = getattr(value, field.name)
        if item is None:
            continue
        if dataclasses.is_dataclass(item):
            nested = getattr(message, field.name)
            nested.CopyFrom(to_message(item))
            nested.SetInParent()
        elif isinstance(item, (list, tuple)):
            getattr(message, field.name).extend(to_message(entry) for entry in item)
        else:
            setattr(message, field.name, item)
    return message


def from_message(message: Any) -> Any:
    """Build the :mod:`metalnet_dpdk.proto` dataclass for a protobuf message."""

    descriptor = message.DESCRIPTOR
    kwargs = {}
    for field in descriptor.fields:
        value = getattr(message, field.name)
        if field.message_type is not None:
            if field.label == field.LABEL_REPEATED:
                value = tuple(from_message(entry) for entry in value)
            elif message.HasField(field.name):
                value = from_message(value)
            else:
                # unset sub-message: leave the dataclass default
                continue
        elif field.enum_type is not None:
            value = getattr(proto, field.enum_type.name)(value)
        kwargs[field.name] = value
    return getattr(proto, descriptor.name)(**kwargs)


class GrpcDataplane:
    """:class:`~metalnet_dpdk.proto.DataplaneStub` talking to a remote service.

    The channel is created lazily by gRPC; nothing is sent until the first
    RPC.  Transport failures surface as :class:`grpc.RpcError`.
    """

    def __init__(self, address: str = DEFAULT_ADDRESS, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._address = address
        self._timeout = timeout
        self._channel = grpc.insecure_channel(address)
        self._stub = dpdk_pb2_grpc.DataplaneStub(self._channel)
        LOG.info("Dataplane channel to %s created", address)

    @property
    def address(self) -> str:
        return self._address

    def close(self) -> None:
        self._channel.close()

    def _call(self, method: str, request: Any) -> Any:
        response = getattr(self._stub, method)(to_message(request), timeout=self._timeout)
        return from_message(response)

    def GetInterface(self, request: proto.InterfaceIDMsg) -> proto.GetInterfaceResponse:
        return self._call("GetInterface", request)

    def CreateInterface(self, request: proto.CreateInterfaceRequest) -> proto.CreateInterfaceResponse:
        return self._call("CreateInterface", request)

    def DeleteInterface(self, request: proto.InterfaceIDMsg) -> proto.StatusResponse:
        return self._call("DeleteInterface", request)

    def GetInterfaceVIP(self, request: proto.InterfaceIDMsg) -> proto.InterfaceVIPResponse:
        return self._call("GetInterfaceVIP", request)

    def AddInterfaceVIP(self, request: proto.InterfaceVIPMsg) -> proto.StatusResponse:
        return self._call("AddInterfaceVIP", request)

    def DeleteInterfaceVIP(self, request: proto.InterfaceIDMsg) -> proto.StatusResponse:
        return self._call("DeleteInterfaceVIP", request)

    def ListInterfacePrefixes(self, request: proto.InterfaceIDMsg) -> proto.PrefixesResponse:
        return self._call("ListInterfacePrefixes", request)

    def AddInterfacePrefix(self, request: proto.InterfacePrefixMsg) -> proto.StatusResponse:
        return self._call("AddInterfacePrefix", request)

    def DeleteInterfacePrefix(self, request: proto.InterfacePrefixMsg) -> proto.StatusResponse:
        return self._call("DeleteInterfacePrefix", request)

    def AddRoute(self, request: proto.VNIRouteMsg) -> proto.StatusResponse:
        return self._call("AddRoute", request)

    def DeleteRoute(self, request: proto.VNIRouteMsg) -> proto.StatusResponse:
        return self._call("DeleteRoute", request)

    def ListRoutes(self, request: proto.VNIMsg) -> proto.RoutesResponse:
        return self._call("ListRoutes", request)

    def AddNeighborNAT(self, request: proto.NeighborNATMsg) -> proto.StatusResponse:
        return self._call("AddNeighborNAT", request)

    def DeleteNeighborNAT(self, request: proto.NeighborNATMsg) -> proto.StatusResponse:
        return self._call("DeleteNeighborNAT", request)

    def AddLoadBalancerTarget(self, request: proto.LoadBalancerTargetMsg) -> proto.StatusResponse:
        return self._call("AddLoadBalancerTarget", request)

    def DeleteLoadBalancerTarget(self, request: proto.LoadBalancerTargetMsg) -> proto.StatusResponse:
        return self._call("DeleteLoadBalancerTarget", request)


class DataplaneServicer(dpdk_pb2_grpc.DataplaneServicer):
    """Expose a :class:`~metalnet_dpdk.proto.DataplaneStub` over gRPC."""

    def __init__(self, backend: proto.DataplaneStub) -> None:
        self._backend = backend

    def _serve(self, method: str, request: Any) -> Any:
        return to_message(getattr(self._backend, method)(from_message(request)))

    def GetInterface(self, request, context):
        return self._serve("GetInterface", request)

    def CreateInterface(self, request, context):
        return self._serve("CreateInterface", request)

    def DeleteInterface(self, request, context):
        return self._serve("DeleteInterface", request)

    def GetInterfaceVIP(self, request, context):
        return self._serve("GetInterfaceVIP", request)

    def AddInterfaceVIP(self, request, context):
        return self._serve("AddInterfaceVIP", request)

    def DeleteInterfaceVIP(self, request, context):
        return self._serve("DeleteInterfaceVIP", request)

    def ListInterfacePrefixes(self, request, context):
        return self._serve("ListInterfacePrefixes", request)

    def AddInterfacePrefix(self, request, context):
        return self._serve("AddInterfacePrefix", request)

    def DeleteInterfacePrefix(self, request, context):
        return self._serve("DeleteInterfacePrefix", request)

    def AddRoute(self, request, context):
        return self._serve("AddRoute", request)

    def DeleteRoute(self, request, context):
        return self._serve("DeleteRoute", request)

    def ListRoutes(self, request, context):
        return self._serve("ListRoutes", request)

    def AddNeighborNAT(self, request, context):
        return self._serve("AddNeighborNAT", request)

    def DeleteNeighborNAT(self, request, context):
        return self._serve("DeleteNeighborNAT", request)

    def AddLoadBalancerTarget(self, request, context):
        return self._serve("AddLoadBalancerTarget", request)

    def DeleteLoadBalancerTarget(self, request, context):
        return self._serve("DeleteLoadBalancerTarget", request)


def serve(
    backend: proto.DataplaneStub,
    address: str = "[::]:0",
    max_workers: int = 4,
) -> Tuple[grpc.Server, int]:
    """Start a gRPC server for ``backend``; returns the server and bound port."""

    server = grpc.server(futures.ThreadPoolExecutor(max_workers=max_workers))
    dpdk_pb2_grpc.add_DataplaneServicer_to_server(DataplaneServicer(backend), server)
    port = server.add_insecure_port(address)
    server.start()
    LOG.info("Serving dataplane on port %d", port)
    return server, port
