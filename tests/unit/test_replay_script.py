import importlib.util
import json
import sys
from pathlib import Path

import pytest

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "lab" / "replay_routes.py"


def load_script():
    spec = importlib.util.spec_from_file_location("replay_routes", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_input_files_are_required(monkeypatch):
    script = load_script()
    monkeypatch.setattr(sys, "argv", ["replay_routes.py"])

    with pytest.raises(SystemExit):
        script.parse_args()


def test_replay_prints_route_tables(tmp_path: Path, monkeypatch, capsys):
    topology = tmp_path / "topology.json"
    routes = tmp_path / "routes.json"
    topology.write_text(json.dumps({"peerings": {"100": [200]}}))
    routes.write_text(
        json.dumps(
            {"routes": [{"vni": 100, "destination": "10.0.0.0/24", "next_hop": {"type": "standard", "target_address": "fc00::1"}}]}
        )
    )
    script = load_script()
    monkeypatch.setattr(sys, "argv", ["replay_routes.py", "--topology", str(topology), "--routes", str(routes)])

    script.main()

    tables = json.loads(capsys.readouterr().out)
    assert [entry["prefix"] for entry in tables["200"]] == ["10.0.0.0/24"]
    assert tables["200"][0]["next_hop_vni"] == 100
