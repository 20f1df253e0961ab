"""Periodic sweep removing routes of revoked peerings."""

from __future__ import annotations

import logging
from threading import Event, Thread

from metalnet_routes.base import RouteHandler
from metalnet_routes.cache import MetalnetCache

LOG = logging.getLogger(__name__)


class PeriodicCleanup(Thread):
    """Run :meth:`RouteHandler.cleanup_not_peered_routes` for every known VNI.

    Route events only add and remove routes incrementally, so a peering that
    disappears while no events flow would leave its routes behind.  This
    sweep catches up on that independently of any event.
    """

    def __init__(
        self,
        handler: RouteHandler,
        cache: MetalnetCache,
        interval: float,
        stop_event: Event,
    ) -> None:
        super().__init__(daemon=True, name="PeriodicCleanup")
        self._handler = handler
        self._cache = cache
        self._interval = interval
        self._stop_event = stop_event

    @property
    def interval(self) -> float:
        return self._interval

    def run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self.sweep()
            except Exception:  # pragma: no cover - logged below
                LOG.exception("cleanup sweep encountered an error")

    def sweep(self) -> int:
        removed = 0
        for vni in sorted(self._cache.known_vnis()):
            try:
                removed += self._handler.cleanup_not_peered_routes(vni)
            except Exception as exc:
                LOG.warning("cleanup of vni %d failed: %s", vni, exc)
                continue
            self._cache.cleanup_done(vni)
        if removed:
            LOG.info("cleanup sweep removed %d unpeered routes", removed)
        return removed
