"""Errors raised while realizing route events."""

from __future__ import annotations

from typing import List, Sequence


class RouteError(Exception):
    """Base class for route realization failures."""


class IPv4OnlyError(RouteError):
    """A non-IPv4 destination was received while running in IPv4-only mode."""


class LoadBalancerNotRegisteredError(RouteError):
    """No load balancer is registered for the destination of a target hop."""

    def __init__(self, vni: int, address: str) -> None:
        self.vni = vni
        self.address = address
        super().__init__(
            f"no registered LoadBalancer on this client for vni {vni} and ip {address}"
        )


class AggregateRouteError(RouteError):
    """One or more networks failed while fanning a route event out.

    The message joins every failure on its own line; :attr:`errors` keeps the
    original exceptions.
    """

    def __init__(self, errors: Sequence[BaseException]) -> None:
        self.errors: List[BaseException] = list(errors)
        super().__init__("\n".join(str(e) for e in self.errors))
