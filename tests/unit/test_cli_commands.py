"""Unit tests for the CLI: command registration, exit codes, dry-run builds."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from cudalis.cli.app import app

INDEX_HTML = """\
<a href="cu110/torch-1.7.1%2Bcu110-cp38-cp38-linux_x86_64.whl">torch</a>
<a href="cu102/torch-1.7.1-cp38-cp38-linux_x86_64.whl">torch</a>
<a href="cpu/torch-1.7.1%2Bcpu-cp38-cp38-linux_x86_64.whl">torch</a>
<a href="cu92/torch-1.7.1%2Bcu92-cp38-cp38-linux_x86_64.whl">torch</a>
"""

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_state(monkeypatch, tmp_path):
    """Keep step caches and .env lookups inside the test's temp dir."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CUDALIS_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("CUDALIS_CPU_ONLY_ON_MACOS", "false")


# ---------------------------------------------------------------------------
# Test: CLI help and registration
# ---------------------------------------------------------------------------


class TestCliApp:
    """The CLI must register all expected commands and show help."""

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        # Typer's no_args_is_help may exit with 0 or 2 depending on version
        assert result.exit_code in (0, 2)
        assert "Usage" in result.output or "usage" in result.output.lower()

    def test_help_flag(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for name in ("build", "resolve", "plan", "catalog"):
            assert name in result.output

    @pytest.mark.parametrize("command", [["build"], ["resolve"], ["plan"], ["catalog", "list"]])
    def test_command_help(self, command):
        result = runner.invoke(app, [*command, "--help"])
        assert result.exit_code == 0


# ---------------------------------------------------------------------------
# Test: resolve / plan
# ---------------------------------------------------------------------------


class TestResolveCommand:
    def test_resolves_greatest_cuda(self):
        result = runner.invoke(app, ["resolve", "-p", "3.8", "-t", "1.7.1"])
        assert result.exit_code == 0
        assert "cu11.0" in result.output

    def test_cpu_only(self):
        result = runner.invoke(app, ["resolve", "-t", "2.5.1", "-c", "cpu"])
        assert result.exit_code == 0
        assert "cpu" in result.output

    def test_unknown_version_exit_1(self):
        result = runner.invoke(app, ["resolve", "-c", "9.2"])
        assert result.exit_code == 1
        assert "Unknown version" in result.output

    def test_no_compatible_exit_1(self):
        result = runner.invoke(app, ["resolve", "-p", "3.8", "-t", "2.5.1"])
        assert result.exit_code == 1
        assert "No compatible versions" in result.output

    def test_invalid_version_exit_1(self):
        result = runner.invoke(app, ["resolve", "-t", "one.two"])
        assert result.exit_code == 1
        assert "Invalid version" in result.output

    def test_broken_catalog_exit_2(self, tmp_path: Path):
        broken = tmp_path / "broken.json"
        broken.write_text("{", encoding="utf-8")
        result = runner.invoke(app, ["resolve", "--catalog", str(broken)])
        assert result.exit_code == 2
        assert "Catalog error" in result.output


class TestPlanCommand:
    def test_plan_lists_steps(self):
        result = runner.invoke(app, ["plan", "-p", "3.10", "-t", "2.1.2", "-c", "12.1"])
        assert result.exit_code == 0
        assert "python_runtime" in result.output
        assert "cudalis:py3.10-torch2.1.2-cu12.1" in result.output


# ---------------------------------------------------------------------------
# Test: build
# ---------------------------------------------------------------------------


class TestBuildCommand:
    def test_dry_run_succeeds(self):
        result = runner.invoke(app, ["build", "-p", "3.8", "-t", "1.7.1", "--dry-run"])
        assert result.exit_code == 0, result.output
        assert "Build succeeded" in result.output

    def test_dry_run_does_not_touch_state_dir(self, tmp_path: Path):
        runner.invoke(app, ["build", "--dry-run"])
        assert not (tmp_path / "state" / "steps.db").exists()

    def test_unknown_version_never_builds(self):
        result = runner.invoke(app, ["build", "-t", "0.4.1", "--dry-run"])
        assert result.exit_code == 1
        assert "Build succeeded" not in result.output


# ---------------------------------------------------------------------------
# Test: catalog
# ---------------------------------------------------------------------------


class TestCatalogCommands:
    def test_list_filters(self):
        result = runner.invoke(app, ["catalog", "list", "-t", "2.5.1", "-c", "cpu"])
        assert result.exit_code == 0
        assert "2.5.1" in result.output
        assert "3.12" in result.output

    def test_list_no_matches(self):
        result = runner.invoke(app, ["catalog", "list", "-p", "3.6", "-t", "2.5.1"])
        assert result.exit_code == 0
        assert "No matching" in result.output

    def test_import(self, tmp_path: Path):
        index = tmp_path / "torch_stable.html"
        index.write_text(INDEX_HTML, encoding="utf-8")
        output = tmp_path / "out" / "catalog.json"
        result = runner.invoke(app, ["catalog", "import", str(index), "-o", str(output)])
        assert result.exit_code == 0, result.output
        assert "Dropped CUDA 9.2" in result.output
        document = json.loads(output.read_text(encoding="utf-8"))
        assert document["rows"][0]["torch"] == "1.7.1"

        resolved = runner.invoke(app, ["resolve", "--catalog", str(output)])
        assert resolved.exit_code == 0
        assert "cu11.0" in resolved.output

    def test_import_missing_file(self, tmp_path: Path):
        result = runner.invoke(app, ["catalog", "import", str(tmp_path / "nope.html")])
        assert result.exit_code == 1
