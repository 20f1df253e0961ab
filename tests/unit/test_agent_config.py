import ipaddress
from pathlib import Path
from threading import Event

import pytest

from metalnet_agent import HandlerRegistry
from metalnet_agent.config import load_config
from metalnet_agent.main import build_client, build_stub, build_watchers
from metalnet_agent.watchers import FileRouteWatcher, FileTopologyWatcher
from metalnet_dpdk.memory import InMemoryDataplane
from metalnet_dpdk.rpc import GrpcDataplane
from metalnet_routes import MetalnetCache


def test_load_config(tmp_path: Path):
    config_path = tmp_path / "agent.yaml"
    config_path.write_text(
        """
client:
  ipv4_only: true
  preferred_network: 10.0.0.0/8
dataplane:
  stub: metalnet_dpdk.memory:InMemoryDataplane
  options:
    underlay_prefix: fd00::/64
cleanup:
  interval: 30
  enabled: false
watchers:
  - type: routes
    path: /var/lib/metalnet/routes.json
    interval: 2
  - type: topology
    path: /var/lib/metalnet/topology.json
"""
    )

    cfg = load_config(config_path)

    assert cfg.client.ipv4_only is True
    assert cfg.client.preferred_network == ipaddress.ip_network("10.0.0.0/8")
    options = cfg.client.to_client_options()
    assert options.ipv4_only is True
    assert options.preferred_network == ipaddress.ip_network("10.0.0.0/8")
    assert cfg.dataplane.load_factory() is InMemoryDataplane
    assert cfg.dataplane.options == {"underlay_prefix": "fd00::/64"}
    assert cfg.cleanup.interval == pytest.approx(30.0)
    assert cfg.cleanup.enabled is False
    assert len(cfg.watchers) == 2
    watcher = cfg.watchers[0]
    assert watcher.type == "routes"
    assert watcher.path == Path("/var/lib/metalnet/routes.json")
    assert watcher.interval == pytest.approx(2.0)
    assert cfg.watchers[1].type == "topology"
    assert cfg.watchers[1].interval == pytest.approx(5.0)


def test_empty_config_uses_defaults(tmp_path: Path):
    config_path = tmp_path / "agent.yaml"
    config_path.write_text("")

    cfg = load_config(config_path)

    assert cfg.client.ipv4_only is False
    assert cfg.client.preferred_network is None
    assert cfg.dataplane.load_factory() is GrpcDataplane
    assert cfg.dataplane.options == {}
    assert cfg.cleanup.enabled is True
    assert cfg.cleanup.interval == pytest.approx(60.0)
    assert list(cfg.watchers) == []


@pytest.mark.parametrize(
    "content",
    [
        "- just a list\n",
        "watchers:\n  - type: ovn\n    path: /tmp/x\n",
        "watchers: {}\n",
        "cleanup:\n  interval: 0\n",
        "client: [1, 2]\n",
        "dataplane:\n  options: [1]\n",
    ],
)
def test_invalid_config_rejected(tmp_path: Path, content):
    config_path = tmp_path / "agent.yaml"
    config_path.write_text(content)

    with pytest.raises(ValueError):
        load_config(config_path)


def test_malformed_stub_reference(tmp_path: Path):
    config_path = tmp_path / "agent.yaml"
    config_path.write_text("dataplane:\n  stub: metalnet_dpdk.memory\n")

    cfg = load_config(config_path)

    with pytest.raises(ValueError):
        cfg.dataplane.load_factory()


def test_agent_wiring(tmp_path: Path):
    config_path = tmp_path / "agent.yaml"
    config_path.write_text(
        f"""
dataplane:
  stub: metalnet_dpdk.memory:InMemoryDataplane
  options:
    underlay_prefix: fd00::/64
watchers:
  - type: routes
    path: {tmp_path / "routes.json"}
  - type: topology
    path: {tmp_path / "topology.json"}
"""
    )
    cfg = load_config(config_path)
    cache = MetalnetCache()

    stub = build_stub(cfg)
    client = build_client(cfg, cache, stub)
    watchers = build_watchers(cfg, HandlerRegistry(), cache, stop_event=Event())

    assert isinstance(stub, InMemoryDataplane)
    assert client.options.ipv4_only is False
    assert isinstance(watchers[0], FileTopologyWatcher)
    assert isinstance(watchers[1], FileRouteWatcher)


def test_default_stub_opens_grpc_channel(tmp_path: Path):
    config_path = tmp_path / "agent.yaml"
    config_path.write_text("dataplane:\n  options:\n    address: dpservice.local:1337\n    timeout: 2.5\n")

    stub = build_stub(load_config(config_path))
    try:
        assert isinstance(stub, GrpcDataplane)
        assert stub.address == "dpservice.local:1337"
    finally:
        stub.close()
