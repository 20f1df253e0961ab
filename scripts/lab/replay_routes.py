#!/usr/bin/env python3
"""Replay topology and route files against the in-memory dataplane."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from threading import Event
from typing import Any, Dict, List

REPO_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from metalnet_agent import HandlerRegistry  # noqa: E402
from metalnet_agent.watchers import FileRouteWatcher, FileTopologyWatcher  # noqa: E402
from metalnet_dpdk.client import DataplaneClient  # noqa: E402
from metalnet_dpdk.memory import InMemoryDataplane  # noqa: E402
from metalnet_routes import ClientOptions, MetalnetCache, MetalnetClient  # noqa: E402


LOG = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--topology",
        type=Path,
        required=True,
        help="Path to the topology JSON (peerings, peered_prefixes, load_balancers)",
    )
    parser.add_argument(
        "--routes",
        type=Path,
        required=True,
        help="Path to the routes JSON",
    )
    parser.add_argument(
        "--ipv4-only",
        action="store_true",
        help="Reject non-IPv4 destinations",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args()


def dump_tables(dataplane: InMemoryDataplane, vnis: List[int]) -> Dict[str, Any]:
    client = DataplaneClient(dataplane)
    tables: Dict[str, Any] = {}
    for vni in vnis:
        tables[str(vni)] = [
            {
                "prefix": str(route.spec.prefix),
                "next_hop_vni": route.spec.next_hop.vni,
                "next_hop": str(route.spec.next_hop.address),
            }
            for route in client.list_routes(vni)
        ]
    return tables


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    dataplane = InMemoryDataplane()
    cache = MetalnetCache()
    registry = HandlerRegistry()
    registry.register(
        "metalnet",
        MetalnetClient(DataplaneClient(dataplane), cache, ClientOptions(ipv4_only=args.ipv4_only)),
    )

    stop_event = Event()
    topology = FileTopologyWatcher(registry, cache, args.topology, 1.0, stop_event)
    routes = FileRouteWatcher(registry, args.routes, 1.0, stop_event)
    topology.poll()
    routes.poll()

    pending = len(json.loads(args.routes.read_text()).get("routes", [])) - len(routes.delivered)
    if pending > 0:
        LOG.warning("%d routes were not delivered (see log above)", pending)

    vnis = sorted(cache.known_vnis() | {vni for vni, _, _ in routes.delivered})
    print(json.dumps(dump_tables(dataplane, vnis), indent=2))


if __name__ == "__main__":
    main()
