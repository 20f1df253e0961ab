"""File-based topology watcher feeding :class:`MetalnetCache`."""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from pathlib import Path
from threading import Event, Thread
from typing import Any, Dict, Set, Tuple

from metalnet_dpdk.types import IPNetwork
from metalnet_routes.cache import MetalnetCache

from ..events import PeeringChanged
from ..registry import HandlerRegistry
from .utils import parse_vni, read_json

LOG = logging.getLogger(__name__)

LoadBalancerKey = Tuple[int, str, str]


@dataclass
class TopologySnapshot:
    peerings: Dict[int, Set[int]] = field(default_factory=dict)
    peered_prefixes: Dict[int, Dict[int, Tuple[IPNetwork, ...]]] = field(default_factory=dict)
    load_balancers: Set[LoadBalancerKey] = field(default_factory=set)


def _extract_topology(payload: Any) -> TopologySnapshot:
    if not isinstance(payload, dict):
        raise ValueError("topology file must contain a mapping")

    snapshot = TopologySnapshot()
    for vni, peers in (payload.get("peerings") or {}).items():
        if not isinstance(peers, list):
            raise ValueError(f"peers of vni {vni} must be a list")
        snapshot.peerings[parse_vni(vni)] = {parse_vni(p) for p in peers}

    for vni, filters in (payload.get("peered_prefixes") or {}).items():
        if not isinstance(filters, dict):
            raise ValueError(f"peered prefixes of vni {vni} must be a mapping")
        snapshot.peered_prefixes[parse_vni(vni)] = {
            parse_vni(peer): tuple(ipaddress.ip_network(p, strict=False) for p in prefixes)
            for peer, prefixes in filters.items()
        }

    for entry in payload.get("load_balancers") or []:
        if not isinstance(entry, dict):
            raise ValueError(f"malformed load balancer entry {entry!r}")
        try:
            key = (parse_vni(entry["vni"]), str(ipaddress.ip_address(entry["ip"])), str(entry["id"]))
        except KeyError as exc:
            raise ValueError(f"load balancer entry missing {exc}") from exc
        snapshot.load_balancers.add(key)
    return snapshot


class FileTopologyWatcher(Thread):
    """Poll a JSON topology file and mirror it into the topology cache.

    Whenever a VNI loses peers a :class:`PeeringChanged` event is published so
    routes installed through the revoked peering get cleaned up.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        cache: MetalnetCache,
        path: Path,
        interval: float,
        stop_event: Event,
    ) -> None:
        super().__init__(daemon=True, name="FileTopologyWatcher")
        self._registry = registry
        self._cache = cache
        self._path = Path(path)
        self._interval = interval
        self._stop_event = stop_event
        self._state = TopologySnapshot()

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:  # pragma: no cover - logged below
                LOG.exception("topology watcher encountered an error")
            self._stop_event.wait(self._interval)

    def poll(self) -> None:
        payload = read_json(self._path)
        if payload is None:
            return

        try:
            desired = _extract_topology(payload)
        except ValueError as exc:
            LOG.warning("invalid topology file %s: %s", self._path, exc)
            return

        self._apply_load_balancers(desired)
        self._apply_peered_prefixes(desired)
        shrunk = self._apply_peerings(desired)
        self._state = desired

        for vni in sorted(shrunk):
            try:
                self._registry.handle(PeeringChanged(vni))
            except Exception as exc:
                # vni stays in known_vnis() until a sweep succeeds
                LOG.warning("cleanup after peering change of vni %d failed: %s", vni, exc)

    def _apply_load_balancers(self, desired: TopologySnapshot) -> None:
        for vni, ip, lb_id in self._state.load_balancers - desired.load_balancers:
            LOG.info("load balancer %s no longer serves %s in vni %d", lb_id, ip, vni)
            self._cache.remove_load_balancer_server(vni, ip)
        for vni, ip, lb_id in desired.load_balancers - self._state.load_balancers:
            LOG.info("load balancer %s serves %s in vni %d", lb_id, ip, vni)
            self._cache.add_load_balancer_server(vni, ip, lb_id)

    def _apply_peered_prefixes(self, desired: TopologySnapshot) -> None:
        for vni, filters in self._state.peered_prefixes.items():
            for peer in filters:
                if peer not in desired.peered_prefixes.get(vni, {}):
                    self._cache.remove_peered_prefixes(vni, peer)
        for vni, filters in desired.peered_prefixes.items():
            for peer, prefixes in filters.items():
                if self._state.peered_prefixes.get(vni, {}).get(peer) != prefixes:
                    LOG.info(
                        "vni %d accepts %s from peer %d",
                        vni,
                        ", ".join(str(p) for p in prefixes) or "nothing",
                        peer,
                    )
                    self._cache.set_peered_prefixes(vni, peer, prefixes)

    def _apply_peerings(self, desired: TopologySnapshot) -> Set[int]:
        shrunk: Set[int] = set()
        for vni in set(self._state.peerings) | set(desired.peerings):
            removed = self._cache.set_peer_vnis(vni, desired.peerings.get(vni, set()))
            if removed:
                shrunk.add(vni)
        return shrunk
