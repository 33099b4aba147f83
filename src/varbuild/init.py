"""Initialize a new varbuild project directory.

Usage:
    varbuild init [--name NAME] [--cc CC] [--manifest NAME]
"""

import json
from pathlib import Path

import typer

from varbuild.cli import error_exit
from varbuild.config import CONFIG_NAME

app = typer.Typer(
    help="Initialize a new varbuild project directory.",
    rich_markup_mode="rich",
    epilog="""\
[bold]Examples:[/bold]

varbuild init                                  Defaults (gcc, one 'main' manifest)

varbuild init --name halfix --cc clang         Name the artifact, use clang

varbuild init --manifest core --manifest cpu   Start with two manifest sets

[bold]What it creates:[/bold]

varbuild.toml                Project configuration (compiler, flags, variants)

build/files.json             Ordered list of manifest sets

build/<name>-files.json      One empty manifest per set

build/objs/                  Shared object cache

[dim]Add source entries to the manifests, then run 'varbuild redep' and 'varbuild build'.[/dim]""",
)

DEFAULT_VARBUILD_TOML = """# varbuild project configuration
# Every command reads its settings from this file.

[project]
name = "{project_name}"
# Default artifact; "{{name}}" expands to the project name.
output = "{{name}}"

[build]
dir = "build"
objects = "build/objs"
index = "files.json"

[compiler]
cc = "{cc}"
fincc = "{cc}"
cflags = ["-Wall", "-Wextra", "-g3", "-std=c99"]
ldflags = ["-lm"]
depscan = "{cc} -MM"
# Parallel compiles; 0 starts one process per stale file.
jobs = 0
# Per-process limit in seconds; 0 waits forever.
timeout = 0
# Abort the build when a pre-build task exits nonzero.
check_tasks = false
exclusive_groups = [["-m32", "-m64"]]

# Override a built-in variant or add a new one.  The library variants
# build only the emulator core, so leave out the front-end and program
# entry sets:
#
# [variants.libcpu]
# skip_manifests = ["frontend", "main"]
#
# [variants.libcpu-wasm]
# skip_manifests = ["frontend", "main"]
"""

MANIFEST_TEMPLATE = {
    "description": "Source files for the {name} manifest set",
}


def _manifest_body(name: str) -> dict[str, str]:
    return {k: v.format(name=name) for k, v in MANIFEST_TEMPLATE.items()}


@app.callback(invoke_without_command=True)
def main(
    project_name: str | None = typer.Option(
        None, "--name", "-n", help="Project / artifact name (default: directory name)."
    ),
    cc: str = typer.Option("gcc", "--cc", help="C compiler to configure."),
    manifests: list[str] | None = typer.Option(
        None, "--manifest", "-m", help="Manifest set to create (repeatable, default: main)."
    ),
) -> None:
    """
    Initialize a new varbuild project in the current directory.

    Creates varbuild.toml, the manifest index, one empty manifest per set,
    and the object cache directory.
    """
    cwd = Path.cwd()
    toml_path = cwd / CONFIG_NAME

    if toml_path.exists():
        error_exit(f"A {CONFIG_NAME} already exists in {cwd}")

    names = manifests or ["main"]
    if len(set(names)) != len(names):
        error_exit(f"Duplicate manifest names: {names}")

    # 1. Write varbuild.toml
    toml_path.write_text(
        DEFAULT_VARBUILD_TOML.format(project_name=project_name or cwd.name, cc=cc),
        encoding="utf-8",
    )
    typer.secho(f"Created {toml_path.name}", fg=typer.colors.GREEN)

    # 2. Manifest index and empty manifests
    build_dir = cwd / "build"
    build_dir.mkdir(exist_ok=True)
    index_path = build_dir / "files.json"
    if not index_path.exists():
        index_path.write_text(json.dumps(names, indent=4) + "\n", encoding="utf-8")
        typer.secho("Created build/files.json", fg=typer.colors.GREEN)
    for name in names:
        path = build_dir / f"{name}-files.json"
        if path.exists():
            continue
        path.write_text(json.dumps(_manifest_body(name), indent=4) + "\n", encoding="utf-8")
        typer.secho(f"Created build/{path.name}", fg=typer.colors.GREEN)

    # 3. Object cache
    (build_dir / "objs").mkdir(exist_ok=True)
    typer.secho("Created build/objs/", fg=typer.colors.GREEN)

    typer.secho("\nInitialization complete! Next steps:", fg=typer.colors.CYAN, bold=True)
    typer.echo("1. Add source entries to the build/*-files.json manifests")
    typer.echo("2. Run 'varbuild redep' to fill in header dependencies")
    typer.echo("3. Run 'varbuild build' (or 'varbuild variants' to see targets)")


def main_entry() -> None:
    """Run the Typer CLI application."""
    app()


if __name__ == "__main__":
    main_entry()
