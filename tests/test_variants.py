"""Tests for varbuild.variants: initial flag planning and the variants command."""

import json
from pathlib import Path
from types import SimpleNamespace

import pytest
from typer.testing import CliRunner

from varbuild.config import ProjectConfig, Variant
from varbuild.variants import (
    BuildOptions,
    app,
    flags_from_command,
    optimization_flag,
    plan_build,
)

runner = CliRunner()


def _cfg(tmp_path: Path, **kwargs) -> ProjectConfig:
    kwargs.setdefault("project_name", "halfix")
    return ProjectConfig(root=tmp_path, **kwargs)


class TestOptimizationFlag:
    @pytest.mark.parametrize(
        ("level", "expected"),
        [(None, "-O0"), ("0", "-O0"), ("2", "-O2"), ("3", "-O3"), ("", "-O"), ("s", "-O")],
    )
    def test_levels(self, level, expected) -> None:
        assert optimization_flag(level) == expected


class TestFlagsFromCommand:
    def test_splits_stdout(self, monkeypatch) -> None:
        monkeypatch.setattr(
            "varbuild.variants.subprocess.run",
            lambda cmd, **kw: SimpleNamespace(
                returncode=0, stdout="-I/usr/include/gtk-3.0 -pthread\n", stderr=""
            ),
        )
        assert flags_from_command("pkg-config --cflags gtk+-3.0") == [
            "-I/usr/include/gtk-3.0",
            "-pthread",
        ]

    def test_nonzero_exit(self, monkeypatch) -> None:
        monkeypatch.setattr(
            "varbuild.variants.subprocess.run",
            lambda cmd, **kw: SimpleNamespace(returncode=1, stdout="", stderr="no gtk"),
        )
        with pytest.raises(RuntimeError, match="no gtk"):
            flags_from_command("pkg-config --libs gtk+-3.0")

    def test_missing_tool(self, monkeypatch) -> None:
        def boom(cmd, **kw):
            raise FileNotFoundError("pkg-config")

        monkeypatch.setattr("varbuild.variants.subprocess.run", boom)
        with pytest.raises(RuntimeError, match="Could not run"):
            flags_from_command("pkg-config --libs gtk+-3.0")


class TestPlanBuild:
    def test_native_defaults(self, tmp_path: Path) -> None:
        plan = plan_build(_cfg(tmp_path), BuildOptions())
        assert plan.flags.tokens == ("-Wall", "-g3", "-DNATIVE_BUILD", "-O0")
        assert plan.flags.build_type == "native"
        assert plan.cc == "gcc"
        assert plan.fincc == "gcc"
        assert plan.output == tmp_path / "halfix"
        assert plan.jobs is None
        assert plan.timeout is None

    def test_release_drops_debug(self, tmp_path: Path) -> None:
        plan = plan_build(_cfg(tmp_path), BuildOptions(release=True))
        assert "-g3" not in plan.flags.tokens
        assert plan.flags.tokens[-1] == "-O3"

    def test_disable_debug(self, tmp_path: Path) -> None:
        plan = plan_build(_cfg(tmp_path), BuildOptions(debug=False, optimization="2"))
        assert plan.flags.tokens == ("-Wall", "-DNATIVE_BUILD", "-O2")

    def test_switches(self, tmp_path: Path) -> None:
        opts = BuildOptions(bits=32, instrument=True, profile=True, output="out/app")
        plan = plan_build(_cfg(tmp_path), opts)
        assert "-m32" in plan.flags.tokens
        assert "-DINSTRUMENT" in plan.flags.tokens
        assert "-pg" in plan.end_flags
        assert plan.output == tmp_path / "out" / "app"

    def test_cc_sets_both_tools(self, tmp_path: Path) -> None:
        plan = plan_build(_cfg(tmp_path), BuildOptions(cc="clang"))
        assert plan.cc == "clang"
        assert plan.fincc == "clang"
        assert plan.flags.compiler == "clang"

    def test_fincc_only_changes_final_tool(self, tmp_path: Path) -> None:
        plan = plan_build(_cfg(tmp_path), BuildOptions(fincc="ar"))
        assert plan.cc == "gcc"
        assert plan.fincc == "ar"

    def test_win32(self, tmp_path: Path) -> None:
        plan = plan_build(_cfg(tmp_path, ldflags=["-lm"]), BuildOptions(variant="win32"))
        assert plan.end_flags == ["-lm", "-lgdi32", "-lcomdlg32"]
        assert "-DWIN32_BUILD" in plan.flags.tokens

    def test_libcpu(self, tmp_path: Path) -> None:
        plan = plan_build(_cfg(tmp_path), BuildOptions(variant="libcpu"))
        assert plan.flags.tokens == (
            "-Wall", "-g3", "-fPIC", "-shared", "-DLIBCPU", "-DLIBCPU_BUILD", "-O0",
        )

    def test_libcpu_js_output(self, tmp_path: Path) -> None:
        plan = plan_build(_cfg(tmp_path), BuildOptions(variant="libcpu", output="libcpu.js"))
        assert "-shared" not in plan.flags.tokens
        assert plan.flags.tokens[-4:-2] == ("-s", "STANDALONE_WASM=1")

    def test_libcpu_wasm(self, tmp_path: Path) -> None:
        plan = plan_build(_cfg(tmp_path), BuildOptions(variant="libcpu-wasm"))
        assert plan.cc == "emcc"
        assert plan.flags.build_type == "libcpu"
        assert plan.flags.tokens.count("-s") == 1
        assert "SIDE_MODULE=1" in plan.flags.tokens
        assert plan.output == tmp_path / "libcpu.wasm"

    def test_emscripten(self, tmp_path: Path) -> None:
        cfg = _cfg(tmp_path, cflags=["-Wall", "-std=c99"], ldflags=["-lSDLmain", "-lz", "-lm"])
        plan = plan_build(cfg, BuildOptions(variant="emscripten", wasm=True))
        assert "-std=gnu99" in plan.flags.tokens
        assert "-std=c99" not in plan.flags.tokens
        assert plan.end_flags == [
            "-lm", "-s", "NO_FILESYSTEM=1", "-s", "TOTAL_MEMORY=256MB", "-s", "WASM=1",
        ]
        assert plan.output == tmp_path / "halfix.js"
        assert plan.fincc == "emcc"

    def test_emscripten_without_wasm(self, tmp_path: Path) -> None:
        plan = plan_build(_cfg(tmp_path), BuildOptions(variant="emscripten"))
        assert plan.end_flags[-2:] == ["-s", "WASM=0"]

    def test_gtk_runs_pkg_config(self, tmp_path: Path, monkeypatch) -> None:
        calls = []

        def fake_run(cmd, **kw):
            calls.append(cmd)
            out = "-I/gtk" if "--cflags" in cmd else "-lgtk-3"
            return SimpleNamespace(returncode=0, stdout=out, stderr="")

        monkeypatch.setattr("varbuild.variants.subprocess.run", fake_run)
        plan = plan_build(_cfg(tmp_path), BuildOptions(variant="gtk"))
        assert len(calls) == 2
        assert "-I/gtk" in plan.flags.tokens
        assert "-lgtk-3" in plan.end_flags
        assert "-DGTK_BUILD" in plan.flags.tokens

    def test_skip_manifests_and_jobs(self, tmp_path: Path) -> None:
        cfg = _cfg(tmp_path, jobs=8, timeout=30)
        cfg.variants["tiny"] = Variant(name="tiny", skip_manifests=["display"])
        plan = plan_build(cfg, BuildOptions(variant="tiny"))
        assert plan.skip_manifests == ["display"]
        assert plan.jobs == 8
        assert plan.timeout == 30.0
        assert plan_build(cfg, BuildOptions(variant="tiny", jobs=2)).jobs == 2

    def test_unknown_variant(self, tmp_path: Path) -> None:
        with pytest.raises(KeyError):
            plan_build(_cfg(tmp_path), BuildOptions(variant="amiga"))


class TestVariantsCommand:
    def test_table(self, tmp_path: Path) -> None:
        (tmp_path / "varbuild.toml").write_text('[project]\nname = "halfix"\n')
        result = runner.invoke(app, ["--root", str(tmp_path)])
        assert result.exit_code == 0
        assert "emscripten" in result.output
        assert "libcpu" in result.output

    def test_json(self, tmp_path: Path) -> None:
        (tmp_path / "varbuild.toml").write_text('[project]\nname = "halfix"\n')
        result = runner.invoke(app, ["--json", "--root", str(tmp_path)])
        assert result.exit_code == 0
        rows = {r["name"]: r for r in json.loads(result.output)}
        assert rows["emscripten"]["output"] == "halfix.js"
        assert rows["libcpu-wasm"]["build_type"] == "libcpu"

    def test_missing_config(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["--root", str(tmp_path)])
        assert result.exit_code == 1
