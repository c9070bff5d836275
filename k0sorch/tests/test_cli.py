import json

import yaml
from typer.testing import CliRunner

from k0sorch.cli import app
from k0sorch.config import Config

runner = CliRunner()


def write_cluster(tmp_path, hosts):
    path = tmp_path / "cluster.yaml"
    path.write_text(yaml.safe_dump({
        "name": "edge",
        "version": "v1.28.4+k0s.0",
        "hosts": hosts,
    }))
    return path


def test_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("apply", "reset", "status", "kubeconfig"):
        assert command in result.stdout


def test_apply_help():
    result = runner.invoke(app, ["apply", "cluster", "--help"])
    assert "--concurrency" in result.stdout
    assert "--restore-from" in result.stdout


def test_apply_missing_config(tmp_path):
    result = runner.invoke(app, ["apply", "cluster", "--config", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 1


def test_apply_malformed_config(tmp_path, ssh_fleet):
    path = tmp_path / "cluster.yaml"
    path.write_text("hosts: [\n  - address: 10.0.0.1\n")
    result = runner.invoke(app, ["apply", "cluster", "--config", str(path)])
    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "Invalid cluster definition" in result.output
    assert not ssh_fleet.log


def test_apply_rejects_zero_concurrency(tmp_path, ssh_fleet):
    path = write_cluster(tmp_path, [{"address": "10.0.0.1", "role": "controller"}])
    result = runner.invoke(app, ["apply", "cluster", "--config", str(path), "--concurrency", "0"])
    assert result.exit_code == 1
    assert not ssh_fleet.log


def test_apply_records_run_and_writes_kubeconfig(tmp_path, ssh_fleet):
    path = write_cluster(tmp_path, [
        {"address": "10.0.0.1", "role": "controller"},
        {"address": "10.0.0.2", "role": "worker"},
    ])
    ssh_fleet.add("10.0.0.1")
    ssh_fleet.add("10.0.0.2")
    out = tmp_path / "admin.conf"

    result = runner.invoke(app, ["apply", "cluster", "--config", str(path), "--kubeconfig-out", str(out)])

    assert result.exit_code == 0, result.output
    assert "https://10.0.0.1:6443" in out.read_text()
    registry = json.loads(Config.REGISTRY_PATH.read_text())
    assert registry["edge"]["status"] == "ok"
    assert registry["edge"]["leader"] == "10.0.0.1"

    shown = runner.invoke(app, ["kubeconfig", "show", "--name", "edge"])
    assert "https://10.0.0.1:6443" in shown.stdout

    status = runner.invoke(app, ["status", "cluster", "--name", "edge"])
    assert "10.0.0.2:22 worker v1.28.4+k0s.0" in status.stdout


def test_apply_failure_exits_non_zero(tmp_path, ssh_fleet):
    path = write_cluster(tmp_path, [{"address": "10.0.0.1", "role": "controller"}])
    ssh_fleet.add("10.0.0.1").failures["k0s install controller"] = "boom"

    result = runner.invoke(app, ["apply", "cluster", "--config", str(path)])

    assert result.exit_code == 1
    registry = json.loads(Config.REGISTRY_PATH.read_text())
    assert registry["edge"]["status"] == "failed"
    assert "Initialize the k0s cluster" in registry["edge"]["error"]


def test_reset_requires_confirmation(tmp_path, ssh_fleet):
    path = write_cluster(tmp_path, [{"address": "10.0.0.1", "role": "controller"}])
    ssh_fleet.add("10.0.0.1", version=ssh_fleet.release, running=True, role="controller")

    result = runner.invoke(app, ["reset", "cluster", "--config", str(path)], input="n\n")
    assert result.exit_code == 1
    assert ssh_fleet.machines["10.0.0.1"].binary == ssh_fleet.release

    result = runner.invoke(app, ["reset", "cluster", "--config", str(path), "--force"])
    assert result.exit_code == 0, result.output
    assert ssh_fleet.machines["10.0.0.1"].binary is None


def test_kubeconfig_unknown_cluster():
    result = runner.invoke(app, ["kubeconfig", "show", "--name", "missing"])
    assert result.exit_code == 1
