from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

from metalnet_routes.config import Destination, NextHop, NextHopType

LOG = logging.getLogger(__name__)

RouteKey = Tuple[int, Destination, NextHop]

NEXT_HOP_TYPES = {t.value: t for t in NextHopType}


def read_json(path: Path) -> Optional[Any]:
    """Load ``path``; ``None`` if it is missing or not valid JSON."""

    if not path.exists():
        LOG.debug("file %s does not exist yet", path)
        return None
    try:
        return json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        LOG.warning("failed to parse %s: %s", path, exc)
        return None


def parse_vni(value: Any) -> int:
    vni = int(value)
    if not 0 <= vni <= 0xFFFFFFFF:
        raise ValueError(f"vni {value!r} out of range")
    return vni


def parse_next_hop(entry: Mapping[str, Any]) -> NextHop:
    type_raw = str(entry.get("type", NextHopType.STANDARD.value)).lower()
    hop_type = NEXT_HOP_TYPES.get(type_raw)
    if hop_type is None:
        raise ValueError(f"unsupported next hop type '{type_raw}'")

    target = entry.get("target_address")
    if not target:
        raise ValueError("next hop requires 'target_address'")

    if hop_type is NextHopType.NAT:
        port_range = entry.get("port_range")
        if not isinstance(port_range, (list, tuple)) or len(port_range) != 2:
            raise ValueError("nat next hop requires 'port_range: [from, to]'")
        return NextHop.nat(target, int(port_range[0]), int(port_range[1]))
    if hop_type is NextHopType.LOADBALANCER_TARGET:
        return NextHop.load_balancer_target(target)

    target_vni = entry.get("target_vni")
    return NextHop.standard(target, None if target_vni is None else parse_vni(target_vni))


def parse_route_entry(entry: Mapping[str, Any]) -> RouteKey:
    if not isinstance(entry, Mapping) or not isinstance(entry.get("next_hop"), Mapping):
        raise ValueError(f"malformed route entry {entry!r}")
    if "vni" not in entry or "destination" not in entry or "next_hop" not in entry:
        raise ValueError("route entries need 'vni', 'destination' and 'next_hop'")
    return (
        parse_vni(entry["vni"]),
        Destination.from_prefix(str(entry["destination"])),
        parse_next_hop(entry["next_hop"]),
    )
