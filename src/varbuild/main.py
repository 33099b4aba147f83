"""Umbrella ``varbuild`` command.

Each subcommand lives in its own module with its own Typer app.  Modules
with a single entry point are mounted as plain commands so that options
and the positional variant parse the same way as when the module's app is
run alone; ``cache`` has several commands and is mounted as a group.
"""

import importlib

import typer

app = typer.Typer(
    help="Incremental, variant-aware build orchestrator for C projects.",
    rich_markup_mode="rich",
    no_args_is_help=True,
    epilog="""\
[bold]Typical workflow:[/bold]
  varbuild init                Create varbuild.toml and empty manifests
  varbuild redep               Rescan header dependencies
  varbuild build               Native build (recompiles only stale files)
  varbuild build gtk           Switch variant without cleaning
  varbuild clean               Delete every cached object

[dim]All commands read project settings from varbuild.toml.
Run 'varbuild <cmd> --help' for details.[/dim]""",
)

# (command name, module, function, help)
COMMANDS: list[tuple[str, str, str, str]] = [
    ("build", "varbuild.build", "main", "Build a variant, recompiling only stale objects."),
    ("redep", "varbuild.redep", "main", "Recalculate source dependencies in every manifest."),
    ("clean", "varbuild.cache_cli", "clear", "Remove all cached object files."),
    ("variants", "varbuild.variants", "main", "List the variants this project can build."),
    ("init", "varbuild.init", "main", "Initialize a new varbuild project."),
]

# (group name, module, help)
GROUPS: list[tuple[str, str, str]] = [
    ("cache", "varbuild.cache_cli", "Manage the shared object cache."),
]


def _module_epilog(mod) -> str | None:
    epilog = getattr(mod.app.info, "epilog", None)
    return epilog if isinstance(epilog, str) else None


for _name, _module, _func, _help in COMMANDS:
    _mod = importlib.import_module(_module)
    app.command(name=_name, help=_help, epilog=_module_epilog(_mod))(getattr(_mod, _func))

for _name, _module, _help in GROUPS:
    app.add_typer(importlib.import_module(_module).app, name=_name, help=_help)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
