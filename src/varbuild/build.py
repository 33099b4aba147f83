"""build.py – Incremental, variant-aware build of the whole project.

Pipeline: plan the variant's flags → load manifests → resolve which files
are included and which are stale (restarting when ``@use`` grows the flag
set) → compile stale files in parallel → link or archive every included
object.  The link step always runs once compilation succeeded, so the
artifact is rebuilt even when every object was reused.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn

from varbuild.cli import RootOption, error_exit, get_config, json_print
from varbuild.compile import CompileResult, compile_all
from varbuild.config import ProjectConfig
from varbuild.link import link, link_command
from varbuild.manifest import ManifestError, load_manifests
from varbuild.object_cache import ObjectCache
from varbuild.resolve import CompileTask, ResolutionError, TaskError, TaskRunner, resolve
from varbuild.variants import BuildOptions, plan_build


@dataclass
class BuildSummary:
    """What one build invocation did."""

    variant: str
    output: Path
    flags: list[str] = field(default_factory=list)
    included: list[str] = field(default_factory=list)
    compiled: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)
    linked: bool = False
    link_returncode: int | None = None

    @property
    def ok(self) -> bool:
        return not self.failures and self.link_returncode == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "variant": self.variant,
            "output": str(self.output),
            "ok": self.ok,
            "flags": self.flags,
            "included": self.included,
            "compiled": self.compiled,
            "failures": self.failures,
            "linked": self.linked,
            "link_returncode": self.link_returncode,
        }


def run_build(
    cfg: ProjectConfig,
    opts: BuildOptions,
    *,
    console: Console | None = None,
    show_progress: bool = True,
) -> BuildSummary:
    """Run the full build pipeline for *opts*.

    Raises:
        KeyError: unknown variant.
        ManifestError: malformed manifest or directive.
        ResolutionError: cyclic ``@use`` requirements.
        TaskError: a pre-build task failed with ``check_tasks`` enabled.
        RuntimeError: a variant flag command failed.
    """
    console = console or Console(stderr=True)
    verbose = opts.verbose

    plan = plan_build(cfg, opts)
    manifests = load_manifests(cfg.build_dir, cfg.index)
    cache = ObjectCache(cfg.objects_dir, tuple(cfg.tracked_flags))
    # a quiet console means stdout is reserved for the JSON summary
    runner = TaskRunner(
        cfg.root,
        check=cfg.check_tasks,
        verbose=verbose,
        capture=console.quiet,
        out=console,
    )

    outcome, flags = resolve(
        manifests,
        plan.flags,
        cache,
        root=cfg.root,
        run_tasks=runner,
        skip_manifests=plan.skip_manifests,
        verbose=verbose,
    )

    summary = BuildSummary(
        variant=plan.variant.name,
        output=plan.output,
        flags=list(flags.tokens),
        included=list(outcome.included_files),
        compiled=[t.source for t in outcome.to_compile],
    )

    tasks = outcome.to_compile
    if not tasks:
        console.print("No files to compile")
    else:
        cache.ensure()
        with Progress(
            TextColumn("[bold blue]Compiling"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[dim]{task.description}"),
            console=console,
            disable=not show_progress,
        ) as progress:
            bar = progress.add_task("", total=len(tasks))

            def _started(task: CompileTask, cmd: list[str]) -> None:
                if verbose:
                    progress.console.print(escape(" ".join(cmd)), highlight=False)

            def _finished(result: CompileResult) -> None:
                progress.update(bar, advance=1, description=result.source)
                if result.output.strip():
                    progress.console.print(escape(result.output.rstrip()), highlight=False)
                if not result.ok:
                    progress.console.print(
                        f"[red]Failed to compile:[/red] {escape(result.source)}"
                    )

            report = compile_all(
                tasks,
                flags,
                plan.cc,
                root=cfg.root,
                jobs=plan.jobs,
                timeout=plan.timeout,
                on_start=_started,
                on_complete=_finished,
            )
        summary.failures = list(report.failures)
        console.print(f"{report.succeeded}/{report.completed} compiled successfully!")
        errored = ", ".join(report.failures) if report.failures else "NONE"
        console.print(f"Files that errored: {escape(errored)}")

    if summary.failures:
        return summary

    if verbose:
        cmd = link_command(
            outcome.object_files,
            flags,
            plan.fincc,
            plan.output,
            end_flags=plan.end_flags,
            fincc_flags=plan.fincc_flags,
        )
        console.print(escape(" ".join(cmd)), highlight=False)
    code, text = link(
        outcome.object_files,
        flags,
        plan.fincc,
        plan.output,
        root=cfg.root,
        end_flags=plan.end_flags,
        fincc_flags=plan.fincc_flags,
        timeout=plan.timeout,
    )
    summary.linked = True
    summary.link_returncode = code
    if text.strip():
        console.print(escape(text.rstrip()), highlight=False)
    if code != 0:
        console.print("[red]Link failed.[/red] See output above for details.")
    else:
        console.print(f"[green]Built[/green] {escape(str(plan.output))}")
    return summary


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="Build a variant, recompiling only stale objects.",
    rich_markup_mode="rich",
    epilog="""\
[bold]Examples:[/bold]

varbuild build                              Native debug build

varbuild build gtk                          GTK front end

varbuild build emscripten --enable-wasm     Browser build (WebAssembly)

varbuild build --release                    -O3, no debug info

varbuild build -O 2 --bits 32 -o out/app    32-bit -O2 build to out/app

varbuild build --json                       Machine-readable summary

[dim]Objects for every variant share build/objs without clobbering each other,
so switching variants never needs 'varbuild clean'.[/dim]""",
)


@app.callback(invoke_without_command=True)
def main(
    variant: str = typer.Argument("native", help="Variant to build (see 'varbuild variants')."),
    optimization: str | None = typer.Option(
        None,
        "--optimization-level",
        "-O",
        help="Optimization level n (-On); a non-numeric value gives plain -O.",
    ),
    output: str | None = typer.Option(None, "--output", "-o", help="Output artifact path."),
    bits: int | None = typer.Option(None, "--bits", help="Architecture width: 32 or 64."),
    disable_debug: bool = typer.Option(
        False, "--disable-debug", help="Compile without debugging information."
    ),
    release: bool = typer.Option(False, "--release", help="Shorthand for -O 3 --disable-debug."),
    instrument: bool = typer.Option(
        False, "--instrument", help="Enable instrumentation callbacks (-DINSTRUMENT)."
    ),
    profile: bool = typer.Option(False, "--profile", help="Link with -pg."),
    enable_wasm: bool = typer.Option(
        False, "--enable-wasm", help="Emit WebAssembly for the emscripten variant."
    ),
    cc: str | None = typer.Option(None, "--cc", help="Compiler (also used as final tool)."),
    fincc: str | None = typer.Option(None, "--fincc", help="Final link/archive tool."),
    jobs: int | None = typer.Option(
        None, "--jobs", "-j", help="Maximum parallel compiles (default: unbounded)."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Explain every decision."),
    json_output: bool = typer.Option(False, "--json", help="Print a JSON build summary."),
    root: Path | None = RootOption,
) -> None:
    """Build VARIANT, recompiling only files whose objects are stale."""
    if bits not in (None, 32, 64):
        error_exit(f"--bits must be 32 or 64, got {bits}", json_mode=json_output)
    if jobs is not None and jobs < 1:
        error_exit("--jobs must be at least 1", json_mode=json_output)

    cfg = get_config(root, json_mode=json_output)
    opts = BuildOptions(
        variant=variant,
        optimization=optimization,
        output=output,
        bits=bits,
        debug=not disable_debug,
        release=release,
        instrument=instrument,
        profile=profile,
        wasm=enable_wasm,
        cc=cc,
        fincc=fincc,
        jobs=jobs,
        verbose=verbose,
    )

    try:
        summary = run_build(
            cfg,
            opts,
            console=Console(stderr=True, quiet=json_output),
            show_progress=not json_output,
        )
    except (KeyError, ManifestError, ResolutionError, TaskError, RuntimeError) as exc:
        msg = exc.args[0] if isinstance(exc, KeyError) and exc.args else str(exc)
        error_exit(msg, json_mode=json_output)

    if json_output:
        json_print(summary.to_dict())
    if not summary.ok:
        raise typer.Exit(code=1)


def main_entry() -> None:
    app()


if __name__ == "__main__":
    main_entry()
