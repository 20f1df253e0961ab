"""File-based route announcement watcher."""

from __future__ import annotations

import logging
from pathlib import Path
from threading import Event, Thread
from typing import Any, Dict, List, Set

from ..events import RouteAdded, RouteRemoved
from ..registry import HandlerRegistry
from .utils import RouteKey, parse_route_entry, read_json

LOG = logging.getLogger(__name__)


def _extract_routes(payload: Any) -> List[RouteKey]:
    if not isinstance(payload, dict):
        raise ValueError("routes file must contain a mapping")
    entries = payload.get("routes")
    if entries is None:
        raise ValueError("routes file missing 'routes' key")
    if not isinstance(entries, list):
        raise ValueError("'routes' must be a list")
    # dict keeps file order while dropping duplicates
    return list(dict.fromkeys(parse_route_entry(entry) for entry in entries))


class FileRouteWatcher(Thread):
    """Poll a JSON routes file and publish route announcements/withdrawals.

    Only routes whose handlers succeeded are remembered as delivered, so a
    failed announcement or withdrawal is published again on the next poll.
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        path: Path,
        interval: float,
        stop_event: Event,
    ) -> None:
        super().__init__(daemon=True, name="FileRouteWatcher")
        self._registry = registry
        self._path = Path(path)
        self._interval = interval
        self._stop_event = stop_event
        self._delivered: Set[RouteKey] = set()

    @property
    def delivered(self) -> Set[RouteKey]:
        return set(self._delivered)

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:  # pragma: no cover - logged below
                LOG.exception("route watcher encountered an error")
            self._stop_event.wait(self._interval)

    def poll(self) -> None:
        payload = read_json(self._path)
        if payload is None:
            return

        try:
            desired = _extract_routes(payload)
        except ValueError as exc:
            LOG.warning("invalid routes file %s: %s", self._path, exc)
            return

        failures: Dict[str, int] = {"add": 0, "remove": 0}
        for key in desired:
            if key in self._delivered:
                continue
            vni, destination, next_hop = key
            try:
                self._registry.handle(RouteAdded(vni, destination, next_hop))
            except Exception as exc:
                failures["add"] += 1
                LOG.warning("failed to add route %s (%s) in vni %d: %s", destination, next_hop, vni, exc)
                continue
            self._delivered.add(key)

        wanted = set(desired)
        for key in list(self._delivered):
            if key in wanted:
                continue
            vni, destination, next_hop = key
            try:
                self._registry.handle(RouteRemoved(vni, destination, next_hop))
            except Exception as exc:
                failures["remove"] += 1
                LOG.warning("failed to remove route %s (%s) from vni %d: %s", destination, next_hop, vni, exc)
                continue
            self._delivered.discard(key)

        if failures["add"] or failures["remove"]:
            LOG.info(
                "route poll left %d adds and %d removals for retry",
                failures["add"],
                failures["remove"],
            )
