"""YAML configuration loader for the metalnet agent."""

from __future__ import annotations

import importlib
import ipaddress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Sequence

import yaml

from metalnet_dpdk.types import IPNetwork
from metalnet_routes.config import ClientOptions

DEFAULT_STUB = "metalnet_dpdk.rpc:GrpcDataplane"
WATCHER_TYPES = ("routes", "topology")


@dataclass
class ClientConfig:
    ipv4_only: bool = False
    preferred_network: Optional[IPNetwork] = None

    def to_client_options(self) -> ClientOptions:
        return ClientOptions(
            ipv4_only=self.ipv4_only,
            preferred_network=self.preferred_network,
        )


@dataclass
class DataplaneConfig:
    stub: str = DEFAULT_STUB
    options: dict = field(default_factory=dict)

    def load_factory(self) -> Callable[..., Any]:
        """Resolve ``stub`` (``module:attribute``) to a callable."""

        module_name, sep, attribute = self.stub.partition(":")
        if not sep or not module_name or not attribute:
            raise ValueError(f"dataplane stub '{self.stub}' must look like 'module:attribute'")
        module = importlib.import_module(module_name)
        return getattr(module, attribute)


@dataclass
class CleanupConfig:
    interval: float = 60.0
    enabled: bool = True


@dataclass
class WatcherConfig:
    type: str
    path: Path
    interval: float = 5.0


@dataclass
class AgentConfig:
    client: ClientConfig = field(default_factory=ClientConfig)
    dataplane: DataplaneConfig = field(default_factory=DataplaneConfig)
    cleanup: CleanupConfig = field(default_factory=CleanupConfig)
    watchers: Sequence[WatcherConfig] = field(default_factory=list)


def _section(data: dict, name: str) -> dict:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' section must be a mapping")
    return section


def _parse_client(section: dict) -> ClientConfig:
    preferred_raw = section.get("preferred_network")
    preferred = None
    if preferred_raw:
        preferred = ipaddress.ip_network(str(preferred_raw), strict=False)
    return ClientConfig(
        ipv4_only=bool(section.get("ipv4_only", False)),
        preferred_network=preferred,
    )


def _parse_dataplane(section: dict) -> DataplaneConfig:
    options = section.get("options", {})
    if not isinstance(options, dict):
        raise ValueError("dataplane 'options' must be a mapping if provided")
    return DataplaneConfig(stub=str(section.get("stub", DEFAULT_STUB)), options=options)


def _parse_cleanup(section: dict) -> CleanupConfig:
    interval = float(section.get("interval", 60.0))
    if interval <= 0:
        raise ValueError("cleanup 'interval' must be positive")
    return CleanupConfig(interval=interval, enabled=bool(section.get("enabled", True)))


def _parse_watchers(entries: Iterable[dict]) -> List[WatcherConfig]:
    watchers: List[WatcherConfig] = []
    for entry in entries:
        watcher_type = str(entry["type"])
        if watcher_type not in WATCHER_TYPES:
            raise ValueError(f"unsupported watcher type '{watcher_type}'")
        watchers.append(
            WatcherConfig(
                type=watcher_type,
                path=Path(entry["path"]),
                interval=float(entry.get("interval", 5.0)),
            )
        )
    return watchers


def load_config(path: Path) -> AgentConfig:
    data = yaml.safe_load(path.read_text())
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Agent configuration must be a mapping")

    watchers_section = data.get("watchers", [])
    if not isinstance(watchers_section, list):
        raise ValueError("'watchers' section must be a list")

    return AgentConfig(
        client=_parse_client(_section(data, "client")),
        dataplane=_parse_dataplane(_section(data, "dataplane")),
        cleanup=_parse_cleanup(_section(data, "cleanup")),
        watchers=_parse_watchers(watchers_section),
    )
