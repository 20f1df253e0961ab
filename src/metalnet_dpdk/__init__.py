"""Typed access to the local dataplane service.

This package maps the control plane's network objects (interfaces, virtual
IPs, alias prefixes, overlay routes, NAT mappings and load balancer targets)
onto the request/response messages of the dataplane RPC service and back.
It owns address validation and the translation of backend status codes into
:class:`~metalnet_dpdk.errors.StatusError`.

:class:`~metalnet_dpdk.memory.InMemoryDataplane` implements the same RPC
surface in memory so the route engine can be exercised without a running
dataplane.
"""

from .client import DataplaneClient  # noqa: F401
from .errors import (  # noqa: F401
    DataplaneError,
    ResponseParseError,
    StatusError,
    ValidationError,
)
from .memory import InMemoryDataplane  # noqa: F401

__all__ = [
    "DataplaneClient",
    "DataplaneError",
    "InMemoryDataplane",
    "ResponseParseError",
    "StatusError",
    "ValidationError",
]
