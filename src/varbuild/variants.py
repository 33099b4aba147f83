"""Turn a variant name and command-line options into an initial build plan.

The plan carries everything the later stages need: the starting
:class:`~varbuild.flags.FlagSet`, the trailing link flags, the final tool
and the artifact path.  Order of the compiler tokens follows the project
config first, then the variant, then per-invocation switches, and finally
``-D<BUILD_TYPE>_BUILD`` and the optimization level.
"""

from __future__ import annotations

import shlex
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from varbuild.cli import RootOption, get_config, json_print
from varbuild.config import ProjectConfig, Variant
from varbuild.flags import FlagSet

console = Console(stderr=True)

_WEB_SUFFIXES = (".js", ".wasm")


@dataclass
class BuildOptions:
    """Per-invocation switches (mirrors the ``varbuild build`` options)."""

    variant: str = "native"
    # None keeps the default -O0; "" means bare -O
    optimization: str | None = None
    output: str | None = None
    bits: int | None = None
    debug: bool = True
    release: bool = False
    instrument: bool = False
    profile: bool = False
    wasm: bool = False
    cc: str | None = None
    fincc: str | None = None
    jobs: int | None = None
    verbose: bool = False


@dataclass
class BuildPlan:
    """Resolved starting point for one build invocation."""

    variant: Variant
    flags: FlagSet
    cc: str
    fincc: str
    output: Path
    end_flags: list[str] = field(default_factory=list)
    fincc_flags: list[str] = field(default_factory=list)
    skip_manifests: list[str] = field(default_factory=list)
    jobs: int | None = None
    timeout: float | None = None


def flags_from_command(cmd: str) -> list[str]:
    """Run *cmd* (e.g. ``pkg-config --cflags gtk+-3.0``) and split its output.

    Raises:
        RuntimeError: if the command cannot run or exits nonzero.
    """
    try:
        r = subprocess.run(shlex.split(cmd), capture_output=True, text=True, check=False)
    except OSError as exc:
        raise RuntimeError(f"Could not run '{cmd}': {exc}") from exc
    if r.returncode != 0:
        raise RuntimeError(f"'{cmd}' failed ({r.returncode}): {r.stderr.strip()}")
    return r.stdout.split()


def optimization_flag(level: str | None) -> str:
    if level is None:
        return "-O0"
    level = level.strip()
    if not level.isdigit():
        # Non-numeric levels ("", "s", "fast") collapse to plain -O
        return "-O"
    return f"-O{level}"


def _remove_first(tokens: list[str], token: str) -> None:
    if token in tokens:
        tokens.remove(token)


def plan_build(cfg: ProjectConfig, opts: BuildOptions) -> BuildPlan:
    """Build the initial flag set and link settings for *opts*.

    Raises:
        KeyError: unknown variant.
        RuntimeError: a variant flag command (pkg-config) failed.
    """
    variant = cfg.variant(opts.variant)

    tokens = list(cfg.cflags)
    end_flags = list(cfg.ldflags)

    if sys.byteorder == "big":
        console.print(
            "[yellow]warning:[/yellow] this code base has not been tested on "
            "big-endian hosts and may not work."
        )
        tokens.append("-DCFG_BIG_ENDIAN")

    # --- variant ---
    if variant.cflags_cmd:
        tokens += flags_from_command(variant.cflags_cmd)
    if variant.ldflags_cmd:
        end_flags += flags_from_command(variant.ldflags_cmd)
    tokens += variant.cflags
    end_flags += variant.ldflags
    cc = variant.cc or cfg.cc
    fincc = variant.fincc or (variant.cc if variant.cc else cfg.fincc)

    # --- switches ---
    optimization = opts.optimization
    debug = opts.debug
    if opts.release:
        optimization = "3"
        debug = False
    if opts.bits == 32:
        tokens.append("-m32")
    elif opts.bits == 64:
        tokens.append("-m64")
    if opts.instrument:
        tokens.append("-DINSTRUMENT")
    if opts.profile:
        end_flags.append("-pg")
    if opts.cc:
        cc = fincc = opts.cc
    if opts.fincc:
        fincc = opts.fincc
    if not debug:
        _remove_first(tokens, cfg.debug_flag)

    output = opts.output or cfg.output_for(variant)

    if variant.wasm_switch:
        end_flags += ["-s", f"WASM={1 if opts.wasm else 0}"]
    if variant.cflag_replace:
        tokens = [variant.cflag_replace.get(t, t) for t in tokens]

    if output.endswith(".js") and variant.build_type == "libcpu":
        tokens = [t for t in tokens if t != "-shared"]
        tokens += ["-s", "STANDALONE_WASM=1"]
    if output.endswith(_WEB_SUFFIXES):
        for lib in cfg.web_drop_ldflags:
            _remove_first(end_flags, lib)

    tokens.append(f"-D{variant.build_type.upper().replace('-', '_')}_BUILD")
    tokens.append(optimization_flag(optimization))

    flags = FlagSet(
        tokens=tuple(tokens),
        build_type=variant.build_type,
        compiler=cc,
        groups=tuple(cfg.exclusive_groups),
    )
    output_path = Path(output)
    if not output_path.is_absolute():
        output_path = cfg.root / output_path

    jobs = opts.jobs if opts.jobs is not None else cfg.jobs
    return BuildPlan(
        variant=variant,
        flags=flags,
        cc=cc,
        fincc=fincc,
        output=output_path,
        end_flags=end_flags,
        fincc_flags=list(cfg.fincc_flags),
        skip_manifests=list(variant.skip_manifests),
        jobs=jobs or None,
        timeout=float(cfg.timeout) if cfg.timeout else None,
    )


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="List the variants this project can build.",
    rich_markup_mode="rich",
    epilog="""\
[bold]Examples:[/bold]

varbuild variants                   Table of built-in and configured variants

varbuild variants --json            Machine-readable list

[dim]Add or override variants with \\[variants.<name>] tables in varbuild.toml;
set skip_manifests there to leave whole manifest sets out (e.g. the front-end
sets for libcpu).[/dim]""",
)


def variant_to_dict(cfg: ProjectConfig, variant: Variant) -> dict[str, Any]:
    return {
        "name": variant.name,
        "description": variant.description,
        "build_type": variant.build_type,
        "cc": variant.cc or cfg.cc,
        "fincc": variant.fincc or variant.cc or cfg.fincc,
        "cflags": list(variant.cflags),
        "ldflags": list(variant.ldflags),
        "output": cfg.output_for(variant),
        "skip_manifests": list(variant.skip_manifests),
    }


@app.callback(invoke_without_command=True)
def main(
    json_output: bool = typer.Option(False, "--json", help="Output results as JSON"),
    root: Path | None = RootOption,
) -> None:
    """List known variants."""
    cfg = get_config(root, json_mode=json_output)
    rows = [variant_to_dict(cfg, v) for _, v in sorted(cfg.variants.items())]
    if json_output:
        json_print(rows)
        return

    tbl = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    tbl.add_column("Variant")
    tbl.add_column("Build type", style="dim")
    tbl.add_column("Compiler")
    tbl.add_column("Output")
    tbl.add_column("Description", style="dim")
    for row in rows:
        tbl.add_row(row["name"], row["build_type"], row["cc"], row["output"], row["description"])
    Console().print(tbl)


def main_entry() -> None:
    app()


if __name__ == "__main__":
    main_entry()
