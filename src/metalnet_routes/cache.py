"""Read contract of the topology cache plus a simple in-memory implementation."""

from __future__ import annotations

import ipaddress
import logging
from threading import Lock
from typing import Dict, Iterable, Mapping, Optional, Protocol, Sequence, Set, Tuple, Union

from metalnet_dpdk.types import IPAddress, IPNetwork

LOG = logging.getLogger(__name__)


class TopologyCache(Protocol):
    """Peering relationships and load balancer registrations per VNI.

    Every read is a point-in-time snapshot; nothing guarantees that two reads
    in a row observe the same topology.
    """

    def get_peer_vnis(self, vni: int) -> Set[int]:
        """Return the VNIs peered with ``vni`` (empty if ``vni`` is unknown)."""

    def get_peered_prefixes(self, vni: int) -> Mapping[int, Sequence[IPNetwork]]:
        """Return per-peer prefix allow-lists; a missing peer key means unfiltered."""

    def get_load_balancer_server(self, vni: int, address: str) -> Optional[str]:
        """Return the id of the load balancer serving ``address`` in ``vni``."""


class MetalnetCache:
    """Lock-protected in-memory :class:`TopologyCache`.

    Readers always receive copies so callers can iterate without holding the
    lock.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._peers: Dict[int, Set[int]] = {}
        self._peered_prefixes: Dict[int, Dict[int, Tuple[IPNetwork, ...]]] = {}
        self._load_balancers: Dict[Tuple[int, str], str] = {}
        self._unswept: Set[int] = set()

    # ------------------------------------------------------------------
    # TopologyCache
    # ------------------------------------------------------------------
    def get_peer_vnis(self, vni: int) -> Set[int]:
        with self._lock:
            return set(self._peers.get(vni, ()))

    def get_peered_prefixes(self, vni: int) -> Mapping[int, Sequence[IPNetwork]]:
        with self._lock:
            return dict(self._peered_prefixes.get(vni, {}))

    def get_load_balancer_server(self, vni: int, address: str) -> Optional[str]:
        with self._lock:
            return self._load_balancers.get((vni, str(ipaddress.ip_address(address))))

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------
    def set_peer_vnis(self, vni: int, peers: Iterable[int]) -> Set[int]:
        """Replace the peer set of ``vni`` and return the peers that were dropped."""

        desired = {int(p) for p in peers if int(p) != vni}
        with self._lock:
            previous = self._peers.get(vni, set())
            if desired:
                self._peers[vni] = desired
            else:
                self._peers.pop(vni, None)
            removed = previous - desired
            if removed:
                # swept until cleanup_done() confirms it
                self._unswept.add(vni)
                self._unswept.update(removed)
        if desired != previous:
            LOG.info("Peer set of vni %d changed: %s -> %s", vni, sorted(previous), sorted(desired))
        return removed

    def set_peered_prefixes(
        self, vni: int, peer: int, prefixes: Iterable[Union[IPNetwork, str]]
    ) -> None:
        networks = tuple(ipaddress.ip_network(p, strict=False) for p in prefixes)
        with self._lock:
            self._peered_prefixes.setdefault(vni, {})[peer] = networks

    def remove_peered_prefixes(self, vni: int, peer: Optional[int] = None) -> None:
        with self._lock:
            if peer is None:
                self._peered_prefixes.pop(vni, None)
                return
            filters = self._peered_prefixes.get(vni)
            if filters is not None:
                filters.pop(peer, None)
                if not filters:
                    del self._peered_prefixes[vni]

    def add_load_balancer_server(self, vni: int, address: Union[IPAddress, str], load_balancer_id: str) -> None:
        with self._lock:
            self._load_balancers[(vni, str(ipaddress.ip_address(address)))] = load_balancer_id

    def remove_load_balancer_server(self, vni: int, address: Union[IPAddress, str]) -> None:
        with self._lock:
            self._load_balancers.pop((vni, str(ipaddress.ip_address(address))), None)

    def known_vnis(self) -> Set[int]:
        """Every VNI in the cache, including shrunk peerings not yet swept."""

        with self._lock:
            vnis = set(self._peers)
            for peers in self._peers.values():
                vnis.update(peers)
            vnis.update(self._peered_prefixes)
            vnis.update(vni for vni, _ in self._load_balancers)
            vnis.update(self._unswept)
            return vnis

    def cleanup_done(self, vni: int) -> None:
        """Forget a shrunk peering of ``vni`` once its unpeered routes are gone."""

        with self._lock:
            self._unswept.discard(vni)
