from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from cloudpane.cli import main as cli_main
from cloudpane.config.schema import CloudpaneConfig
from cloudpane.modules.catalog import RESOURCE_SPECS

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("CLOUDPANE_CONFIG", "CLOUDPANE_PROJECT", "CLOUDPANE_DEBUG"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("cloudpane.config.loader.USER_CONFIG_PATH", tmp_path / "absent.toml")


def test_modules_lists_catalog() -> None:
    result = runner.invoke(cli_main.app, ["modules"])
    assert result.exit_code == 0
    assert "overview" in result.output
    assert "gce" in result.output


def test_modules_respects_enabled_list(tmp_path: Path) -> None:
    path = tmp_path / "c.toml"
    path.write_text('[modules]\nenabled = ["redis"]\n', encoding="utf-8")

    result = runner.invoke(cli_main.app, ["--config", str(path), "modules"])
    assert result.exit_code == 0
    assert "redis" in result.output
    assert "gke" not in result.output


def test_bad_config_exits_with_error(tmp_path: Path) -> None:
    result = runner.invoke(cli_main.app, ["--config", str(tmp_path / "missing.toml"), "modules"])
    assert result.exit_code == 1
    assert "Error" in result.output


def test_version() -> None:
    result = runner.invoke(cli_main.app, ["version"])
    assert result.exit_code == 0
    assert "cloudpane" in result.output


def test_build_runtime_registers_everything() -> None:
    runtime = cli_main.build_runtime(CloudpaneConfig())
    assert runtime.registry.keys()[0] == "overview"
    assert len(runtime.registry.keys()) == len(RESOURCE_SPECS) + 1
    assert runtime.gateway.limiter.capacity == 20
    assert runtime.gateway.policy.max_attempts == 4
    assert runtime.projects.cache is runtime.cache


def test_version_ignores_broken_config(tmp_path: Path) -> None:
    path = tmp_path / "broken.toml"
    path.write_text("[ui\nnot toml", encoding="utf-8")

    result = runner.invoke(cli_main.app, ["--config", str(path), "version"])
    assert result.exit_code == 0
    assert "cloudpane" in result.output

    result = runner.invoke(cli_main.app, ["--config", str(path), "modules"])
    assert result.exit_code == 1
