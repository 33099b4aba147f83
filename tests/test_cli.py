"""Tests for the shared CLI helpers and the umbrella app."""

import json
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from varbuild.cli import error_exit, get_config, json_print
from varbuild.main import app

runner = CliRunner()


class TestErrorExit:
    def test_raises_exit(self) -> None:
        with pytest.raises(typer.Exit) as exc_info:
            error_exit("boom")
        assert exc_info.value.exit_code == 1

    def test_custom_code(self) -> None:
        with pytest.raises(typer.Exit) as exc_info:
            error_exit("boom", code=3)
        assert exc_info.value.exit_code == 3

    def test_json_mode(self, capsys) -> None:
        with pytest.raises(typer.Exit):
            error_exit("bad [variant]", json_mode=True)
        assert json.loads(capsys.readouterr().out) == {"error": "bad [variant]"}

    def test_markup_is_escaped(self, capsys) -> None:
        with pytest.raises(typer.Exit):
            error_exit("missing [bold]x[/bold]")
        assert "[bold]x[/bold]" in capsys.readouterr().err


class TestGetConfig:
    def test_loads(self, tmp_path: Path) -> None:
        (tmp_path / "varbuild.toml").write_text('[project]\nname = "halfix"\n')
        assert get_config(tmp_path).project_name == "halfix"

    def test_missing_exits(self, tmp_path: Path) -> None:
        with pytest.raises(typer.Exit):
            get_config(tmp_path)

    def test_invalid_exits(self, tmp_path: Path) -> None:
        (tmp_path / "varbuild.toml").write_text("[compiler]\njobs = -2\n")
        with pytest.raises(typer.Exit):
            get_config(tmp_path)


def test_json_print(capsys) -> None:
    json_print({"entries": 1})
    assert json.loads(capsys.readouterr().out) == {"entries": 1}


class TestUmbrellaApp:
    def test_help_lists_commands(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for name in ("build", "redep", "clean", "variants", "init", "cache"):
            assert name in result.output

    def test_build_help(self) -> None:
        result = runner.invoke(app, ["build", "--help"])
        assert result.exit_code == 0
        assert "--release" in result.output

    def test_variants_via_umbrella(self, tmp_path: Path) -> None:
        (tmp_path / "varbuild.toml").write_text('[project]\nname = "halfix"\n')
        result = runner.invoke(app, ["variants", "--json", "--root", str(tmp_path)])
        assert result.exit_code == 0
        assert "native" in {r["name"] for r in json.loads(result.output)}
