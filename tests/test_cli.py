from __future__ import annotations

import json
from pathlib import Path

import pytest

from dvsim.cli.main import main

REPO_ROOT = Path(__file__).resolve().parents[1]
SQUARE_CFG = REPO_ROOT / "configs" / "square.yaml"


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_run_prints_converged_rows(capsys) -> None:
    rc = main(["run", "--config", str(SQUARE_CFG), "--seed", "3"])
    out = json.loads(capsys.readouterr().out)

    assert rc == 0
    assert out["name"] == "square"
    assert out["seed"] == 3
    assert out["converged"] is True
    assert out["self_rows"]["0"] == [0, 1, 2, 4]
    assert out["self_rows"]["2"] == [2, 1, 0, 2]
    assert out["table_updates"] > 0


def test_run_live_in_process(tmp_path: Path, capsys) -> None:
    cfg = _write(
        tmp_path / "live.yaml",
        "name: live\nmode: live\ntopology:\n  type: ring\n  n_nodes: 6\n"
        "live:\n  channel: inprocess\n  recv_timeout: 0.05\n  quiet_period: 0.3\n  max_runtime: 10\n",
    )
    rc = main(["run", "--config", str(cfg)])
    out = json.loads(capsys.readouterr().out)

    assert rc == 0
    assert out["mode"] == "live"
    assert out["steps"] is None
    assert out["self_rows"]["0"] == [0, 1, 2, 3, 2, 1]


def test_run_writes_artifacts(tmp_path: Path, capsys) -> None:
    cfg = _write(
        tmp_path / "traced.yaml",
        f"name: traced\ntrace: 3\noutput_dir: {tmp_path / 'out'}\n"
        "topology:\n  edges:\n    - [0, 1, 2]\n    - [1, 2, 2]\n",
    )
    rc = main(["run", "--config", str(cfg)])
    out = json.loads(capsys.readouterr().out)
    run_dir = Path(out["run_dir"])

    assert rc == 0
    assert run_dir.parent == tmp_path / "out"
    assert run_dir.name.startswith("traced_")
    saved = json.loads((run_dir / "result.json").read_text(encoding="utf-8"))
    assert saved["tables_hash"] == out["tables_hash"]
    effective = json.loads((run_dir / "config.effective.json").read_text(encoding="utf-8"))
    assert effective["trace"] == 3

    events = [json.loads(line) for line in (run_dir / "events.jsonl").read_text(encoding="utf-8").splitlines()]
    kinds = {e["event"] for e in events}
    assert {"deliver", "to_layer2", "receive"} <= kinds


def test_reference_prints_shortest_paths(capsys) -> None:
    rc = main(["reference", "--config", str(SQUARE_CFG)])
    out = json.loads(capsys.readouterr().out)

    assert rc == 0
    assert out["costs"]["0"] == [0, 1, 2, 4]
    assert out["infinity"] == 2 * (1 + 3 + 7 + 1 + 2) + 1
    assert [0, 3, 7] in out["links"]
    assert len(out["links"]) == 5


def test_validate_ok_and_errors(tmp_path: Path, capsys) -> None:
    assert main(["validate", "--config", str(SQUARE_CFG)]) == 0
    assert json.loads(capsys.readouterr().out) == {"ok": True}

    bad = _write(tmp_path / "bad.yaml", "mode: turbo\n")
    assert main(["validate", "--config", str(bad)]) == 1
    errors = json.loads(capsys.readouterr().out)["errors"]
    assert len(errors) == 2


def test_run_rejects_invalid_topology(tmp_path: Path, capsys) -> None:
    cfg = _write(tmp_path / "neg.yaml", "topology:\n  adjacency:\n    0: {1: -2}\n    1: {0: 1}\n")
    rc = main(["run", "--config", str(cfg)])
    captured = capsys.readouterr()

    assert rc == 2
    assert captured.out == ""
    assert "\"ok\": false" in captured.err


def test_run_rejects_invalid_config(tmp_path: Path, capsys) -> None:
    cfg = _write(tmp_path / "bad.yaml", "topology:\n  type: ring\nmax_steps: -4\n")
    assert main(["run", "--config", str(cfg)]) == 2
    assert "max_steps" in capsys.readouterr().err


def test_validate_builds_the_topology(tmp_path: Path, capsys) -> None:
    cfg = _write(tmp_path / "neg.yaml", "topology:\n  adjacency:\n    0: {1: -2}\n    1: {0: 1}\n")

    assert main(["validate", "--config", str(cfg)]) == 1
    errors = json.loads(capsys.readouterr().out)["errors"]
    assert errors == ["Edge 0-1 cost must be positive, got -2"]
    assert main(["run", "--config", str(cfg)]) == 2


def test_validate_reports_unreadable_files(tmp_path: Path, capsys) -> None:
    cfg = _write(tmp_path / "list.yaml", "- 1\n- 2\n")
    assert main(["validate", "--config", str(cfg)]) == 1
    assert "must be a mapping" in json.loads(capsys.readouterr().out)["errors"][0]


@pytest.mark.parametrize(
    "text",
    [
        "topology:\n  adjacency: [1, 2]\n",
        "topology:\n  edges: 5\n",
        "seed: abc\ntopology:\n  type: ring\n",
        "topology:\n  type: ring\n  n_nodes: many\n",
        "topology:\n  type: er\n  max_metric: lots\n",
        "- 1\n- 2\n",
    ],
)
def test_malformed_configs_exit_with_config_error(tmp_path: Path, capsys, text: str) -> None:
    cfg = _write(tmp_path / "bad.yaml", text)
    assert main(["run", "--config", str(cfg)]) == 2
    assert main(["validate", "--config", str(cfg)]) == 1
    assert "\"ok\": false" in capsys.readouterr().err
