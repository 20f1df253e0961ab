"""Entry point for the standalone metalnet agent."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from threading import Event, Thread
from typing import List

from metalnet_dpdk.client import DataplaneClient
from metalnet_dpdk.proto import DataplaneStub
from metalnet_routes.cache import MetalnetCache
from metalnet_routes.client import MetalnetClient

from .cleanup import PeriodicCleanup
from .config import AgentConfig, load_config
from .registry import HandlerRegistry
from .watchers import FileRouteWatcher, FileTopologyWatcher

LOG = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def build_stub(config: AgentConfig) -> DataplaneStub:
    factory = config.dataplane.load_factory()
    LOG.info("Using dataplane stub %s", config.dataplane.stub)
    return factory(**config.dataplane.options)


def build_client(config: AgentConfig, cache: MetalnetCache, stub: DataplaneStub) -> MetalnetClient:
    return MetalnetClient(
        DataplaneClient(stub),
        cache,
        config.client.to_client_options(),
    )


def build_watchers(
    config: AgentConfig,
    registry: HandlerRegistry,
    cache: MetalnetCache,
    stop_event: Event,
) -> List[Thread]:
    watchers: List[Thread] = []
    for watcher_cfg in config.watchers:
        if watcher_cfg.type == "routes":
            watcher: Thread = FileRouteWatcher(
                registry=registry,
                path=watcher_cfg.path,
                interval=watcher_cfg.interval,
                stop_event=stop_event,
            )
        elif watcher_cfg.type == "topology":
            watcher = FileTopologyWatcher(
                registry=registry,
                cache=cache,
                path=watcher_cfg.path,
                interval=watcher_cfg.interval,
                stop_event=stop_event,
            )
        else:
            raise ValueError(f"unsupported watcher type '{watcher_cfg.type}'")
        watchers.append(watcher)
    # topology first so the first route poll already sees peerings
    watchers.sort(key=lambda w: not isinstance(w, FileTopologyWatcher))
    return watchers


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the metalnet route agent")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("/etc/metalnet/agent.yaml"),
        help="Path to the agent configuration file",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    config = load_config(args.config)

    cache = MetalnetCache()
    stub = build_stub(config)
    client = build_client(config, cache, stub)

    registry = HandlerRegistry()
    registry.register("metalnet", client)

    stop_event = Event()
    threads = build_watchers(config, registry, cache, stop_event)
    for watcher in threads:
        # Perform an initial poll so we react immediately
        try:
            watcher.poll()  # type: ignore[attr-defined]
        except Exception:  # pragma: no cover - logged inside watcher
            LOG.exception("initial poll failed for watcher %s", watcher.name)
        watcher.start()

    if not threads:
        LOG.warning("no watchers configured; agent will idle")

    if config.cleanup.enabled:
        cleanup = PeriodicCleanup(client, cache, config.cleanup.interval, stop_event)
        cleanup.start()
        threads.append(cleanup)

    def _shutdown(signum, frame):  # pragma: no cover - signal handler
        LOG.info("received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        while not stop_event.is_set():
            stop_event.wait(1.0)
    except KeyboardInterrupt:  # pragma: no cover - fallback if signal not set
        stop_event.set()

    for thread in threads:
        thread.join()

    close = getattr(stub, "close", None)
    if close is not None:
        close()

    LOG.info("metalnet agent stopped")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
