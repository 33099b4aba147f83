"""Selection engine: decide which files are built and which must be recompiled.

One *attempt* walks every manifest entry in declared order under a fixed
:class:`~varbuild.flags.FlagSet` snapshot and returns either

``Stable(outcome)``
    every directive was satisfied; ``outcome`` lists the files to link and
    the compile tasks to run, or

``Restart(flags, token)``
    an ``@use`` directive needs a flag that is not active yet.  Nothing from
    the attempt is kept; :func:`resolve` starts again from the first file of
    the first manifest with the grown flag set, so every file is judged under
    the final flags.

Each restart adds one flag that was not present before.  A configuration
whose ``@use`` flags keep evicting each other through an exclusive group
would never settle; :func:`resolve` detects a repeated flag set and raises
:class:`ResolutionError` instead.
"""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from rich.console import Console
from rich.markup import escape

from varbuild.flags import FlagSet
from varbuild.manifest import (
    FileEntry,
    FlagsDirective,
    Manifest,
    OptionsDirective,
    RawArg,
    UseDirective,
)
from varbuild.object_cache import ObjectCache
from varbuild.utils import mtime_ns

console = Console(stderr=True)


class ResolutionError(RuntimeError):
    """Flag resolution would loop forever (cyclic ``@use`` requirements)."""


class TaskError(RuntimeError):
    """A pre-build task exited nonzero while task checking is enabled."""


@dataclass
class CompileTask:
    """One queued compilation: consumed once by the parallel compiler."""

    source: str
    object_path: Path
    args: list[str] = field(default_factory=list)
    include_paths: list[str] = field(default_factory=list)
    manifest: str = ""


@dataclass
class ResolutionOutcome:
    included_files: list[str] = field(default_factory=list)
    object_files: list[Path] = field(default_factory=list)
    to_compile: list[CompileTask] = field(default_factory=list)


@dataclass(frozen=True)
class Stable:
    outcome: ResolutionOutcome
    flags: FlagSet


@dataclass(frozen=True)
class Restart:
    flags: FlagSet
    token: str
    source: str


Attempt = Union[Stable, Restart]


# ---------------------------------------------------------------------------
# Staleness
# ---------------------------------------------------------------------------


def stale_reason(source: Path, obj: Path, dependencies: Iterable[Path]) -> str | None:
    """Return why *obj* must be rebuilt, or ``None`` if it is up to date.

    The first failing check decides; later ones are not evaluated.
    A missing source or dependency counts as newer than the object so the
    compiler gets to report it.
    """
    obj_mtime = mtime_ns(obj)
    if obj_mtime is None:
        return f"object file {obj.name} does not exist"
    src_mtime = mtime_ns(source)
    if src_mtime is None or obj_mtime < src_mtime:
        return f"the object file ({obj.name}) is older than {source.name}"
    for dep in dependencies:
        dep_mtime = mtime_ns(dep)
        if dep_mtime is None or dep_mtime > obj_mtime:
            return f"dependency {dep} changed"
    return None


# ---------------------------------------------------------------------------
# Pre-build tasks
# ---------------------------------------------------------------------------


class TaskRunner:
    """Run each entry's pre-build commands at most once per invocation.

    With ``capture`` set, a task's stdout and stderr are collected and
    echoed through *out* instead of being inherited, so nothing a task
    prints reaches the process's stdout.
    """

    def __init__(
        self,
        root: Path,
        *,
        check: bool = False,
        verbose: bool = False,
        capture: bool = False,
        out: Console | None = None,
    ) -> None:
        self.root = root
        self.check = check
        self.verbose = verbose
        self.capture = capture
        self.out = out if out is not None else console
        self._done: set[tuple[str, str]] = set()

    def _run(self, cmd: str) -> int:
        if not self.capture:
            return subprocess.run(cmd, shell=True, cwd=self.root, check=False).returncode
        r = subprocess.run(
            cmd,
            shell=True,
            cwd=self.root,
            check=False,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
        if r.stdout:
            self.out.print(escape(r.stdout.rstrip()), highlight=False)
        return r.returncode

    def __call__(self, manifest: str, entry: FileEntry) -> None:
        key = (manifest, entry.source)
        if key in self._done or not entry.tasks:
            return
        self._done.add(key)
        for cmd in entry.tasks:
            if self.verbose:
                self.out.print(f"[dim]task:[/dim] {escape(cmd)}")
            code = self._run(cmd)
            if code == 0:
                continue
            msg = f"pre-build task for {entry.source} exited with {code}: {cmd}"
            if self.check:
                raise TaskError(msg)
            self.out.print(f"[yellow]warning:[/yellow] {escape(msg)}")


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def _note(verbose: bool, msg: str) -> None:
    if verbose:
        console.print(f"[dim]{escape(msg)}[/dim]")


def resolve_once(
    manifests: list[Manifest],
    flags: FlagSet,
    cache: ObjectCache,
    *,
    root: Path,
    run_tasks: Callable[[str, FileEntry], None] | None = None,
    skip_manifests: Iterable[str] = (),
    verbose: bool = False,
) -> Attempt:
    """Run one resolution attempt under a fixed flag snapshot."""
    skipped = set(skip_manifests)
    flags = flags.pruned()
    outcome = ResolutionOutcome()

    for manifest in manifests:
        if manifest.name in skipped:
            continue
        for entry in manifest:
            extra_args: list[str] = []
            excluded = False
            for directive in entry.directives:
                if isinstance(directive, RawArg):
                    extra_args.append(directive.text)
                elif isinstance(directive, FlagsDirective):
                    if not directive.matches(flags.build_type):
                        _note(verbose, f"Skipping file {entry.source} because build type is "
                                       f"\"{flags.build_type}\"")
                        excluded = True
                        break
                elif isinstance(directive, OptionsDirective):
                    flags = flags.pruned()
                    missing = directive.missing(flags.tokens)
                    forbidden = directive.forbidden(flags.tokens)
                    if missing is not None:
                        _note(verbose, f"Skipping file {entry.source} because build does not "
                                       f"include flag \"{missing}\"")
                        excluded = True
                        break
                    if forbidden is not None:
                        _note(verbose, f"Skipping file {entry.source} because build includes "
                                       f"flag \"{forbidden}\"")
                        excluded = True
                        break
                elif isinstance(directive, UseDirective):
                    if not flags.has(directive.token):
                        _note(verbose, f"Recomputing files to compile to account for "
                                       f"{directive.token} (needed by {entry.source})")
                        grown = flags.add(directive.token).pruned()
                        return Restart(grown, directive.token, entry.source)
            if excluded:
                continue

            obj = cache.path_for(entry.source, flags)
            outcome.included_files.append(entry.source)
            outcome.object_files.append(obj)

            reason = stale_reason(
                root / entry.source, obj, (root / dep for dep in entry.dependencies)
            )
            if reason is None:
                continue
            _note(verbose, f"Rebuilding {entry.source} because {reason}")
            if run_tasks is not None:
                run_tasks(manifest.name, entry)
            outcome.to_compile.append(
                CompileTask(
                    source=entry.source,
                    object_path=obj,
                    args=extra_args,
                    include_paths=list(entry.include_paths),
                    manifest=manifest.name,
                )
            )

    return Stable(outcome, flags.pruned())


def resolve(
    manifests: list[Manifest],
    flags: FlagSet,
    cache: ObjectCache,
    *,
    root: Path,
    run_tasks: Callable[[str, FileEntry], None] | None = None,
    skip_manifests: Iterable[str] = (),
    verbose: bool = False,
) -> tuple[ResolutionOutcome, FlagSet]:
    """Repeat :func:`resolve_once` until no ``@use`` directive adds a flag.

    Returns:
        The stable outcome and the final flag set it was computed under.

    Raises:
        ResolutionError: a restart produced a flag set already tried.
    """
    skip = tuple(skip_manifests)
    seen = {flags.pruned().tokens}
    while True:
        attempt = resolve_once(
            manifests,
            flags,
            cache,
            root=root,
            run_tasks=run_tasks,
            skip_manifests=skip,
            verbose=verbose,
        )
        if isinstance(attempt, Stable):
            return attempt.outcome, attempt.flags
        if attempt.flags.tokens in seen:
            raise ResolutionError(
                f"'@use={attempt.token}' in {attempt.source} brings back a flag set that "
                "was already tried; the @use requirements of the manifests form a cycle"
            )
        seen.add(attempt.flags.tokens)
        flags = attempt.flags
