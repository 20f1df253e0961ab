"""Error types and status codes reported by the dataplane service."""

from __future__ import annotations

from typing import FrozenSet

# Status codes as reported in ``Status.error``.  Zero means success; the rest
# are backend-defined and only a handful are given names here because the
# route engine needs to tolerate them on replay.
OK = 0
BAD_REQUEST = 101
NOT_FOUND = 201
ALREADY_EXISTS = 202
WRONG_TYPE = 203
BAD_IPVER = 204
NO_VM = 205
NO_VNI = 206
ITERATOR = 207
OUT_OF_MEMORY = 208
LIMIT_REACHED = 209
ROUTE_EXISTS = 301
ROUTE_NOT_FOUND = 302
ROUTE_INSERT = 303
ROUTE_BAD_PORT = 304
NO_BACKIP = 421
NO_LB = 422

STATUS_NAMES = {
    BAD_REQUEST: "BAD_REQUEST",
    NOT_FOUND: "NOT_FOUND",
    ALREADY_EXISTS: "ALREADY_EXISTS",
    WRONG_TYPE: "WRONG_TYPE",
    BAD_IPVER: "BAD_IPVER",
    NO_VM: "NO_VM",
    NO_VNI: "NO_VNI",
    ITERATOR: "ITERATOR",
    OUT_OF_MEMORY: "OUT_OF_MEMORY",
    LIMIT_REACHED: "LIMIT_REACHED",
    ROUTE_EXISTS: "ROUTE_EXISTS",
    ROUTE_NOT_FOUND: "ROUTE_NOT_FOUND",
    ROUTE_INSERT: "ROUTE_INSERT",
    ROUTE_BAD_PORT: "ROUTE_BAD_PORT",
    NO_BACKIP: "NO_BACKIP",
    NO_LB: "NO_LB",
}


class DataplaneError(Exception):
    """Base class for errors raised by :mod:`metalnet_dpdk`."""


class ValidationError(DataplaneError, ValueError):
    """A request field was rejected before any RPC was issued."""


class ResponseParseError(DataplaneError):
    """The dataplane answered with a value that could not be parsed."""


class StatusError(DataplaneError):
    """The RPC went through but the dataplane reported a non-zero status."""

    def __init__(self, code: int, message: str = "") -> None:
        self.code = code
        self.message = message
        super().__init__(str(self))

    @property
    def name(self) -> str:
        return STATUS_NAMES.get(self.code, "UNKNOWN")

    def __str__(self) -> str:
        text = f"[error code {self.code} ({self.name})]"
        if self.message:
            text = f"{text} {self.message}"
        return text


def ignore(*codes: int) -> FrozenSet[int]:
    """Build the set of status codes a call should treat as success."""

    return frozenset(codes)
