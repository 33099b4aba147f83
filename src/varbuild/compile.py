"""Parallel compilation of queued compile tasks.

Every :class:`~varbuild.resolve.CompileTask` becomes one compiler process.
By default all of them start at once (one worker per task); ``jobs`` caps
the number of concurrent processes.

A failing task never cancels its siblings.  The report lists every failing
source, in the order the tasks were submitted, so a single run shows the
complete set of broken files.

Bookkeeping (progress callback, failure list, counters) happens only on the
calling thread; worker threads just run the subprocess and return its result.
"""

import subprocess
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

from varbuild.flags import FlagSet
from varbuild.resolve import CompileTask


@dataclass
class CompileResult:
    """Outcome of one compiler process."""

    source: str
    command: list[str]
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclass
class CompileReport:
    completed: int = 0
    failures: list[str] = field(default_factory=list)
    results: list[CompileResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def succeeded(self) -> int:
        return self.completed - len(self.failures)


# ---------------------------------------------------------------------------
# Command construction
# ---------------------------------------------------------------------------


def compile_command(task: CompileTask, flags: FlagSet, cc: str) -> list[str]:
    """Build the compiler command line for *task*.

    Layout: ``cc <flags> <source> <extra args> -c -o <object> -I<path>...``
    """
    cmd = [cc, *flags.tokens, task.source, *task.args, "-c", "-o", str(task.object_path)]
    cmd += [f"-I{inc}" for inc in task.include_paths]
    return [c for c in cmd if c]


def run_compile(
    source: str, cmd: list[str], cwd: Path, timeout: float | None = None
) -> CompileResult:
    """Run one compiler process and capture its output."""
    try:
        r = subprocess.run(cmd, capture_output=True, cwd=cwd, timeout=timeout)
    except subprocess.TimeoutExpired:
        return CompileResult(source, cmd, -1, f"Compile timed out after {timeout}s")
    except FileNotFoundError as e:
        return CompileResult(source, cmd, -1, f"Compiler not found: {e}")
    except OSError as e:
        return CompileResult(source, cmd, -1, f"Failed to run compiler: {e}")
    output = (r.stdout + r.stderr).decode("utf-8", errors="replace")
    return CompileResult(source, cmd, r.returncode, output)


# ---------------------------------------------------------------------------
# Parallel driver
# ---------------------------------------------------------------------------


def compile_all(
    tasks: list[CompileTask],
    flags: FlagSet,
    cc: str,
    *,
    root: Path,
    jobs: int | None = None,
    timeout: float | None = None,
    on_start: Callable[[CompileTask, list[str]], None] | None = None,
    on_complete: Callable[[CompileResult], None] | None = None,
) -> CompileReport:
    """Compile every task concurrently and wait for all of them.

    Args:
        jobs: Maximum concurrent processes; ``None`` runs every task at once.
        timeout: Per-process limit in seconds; ``None`` waits forever.
        on_start: Called with each task and its command before submission.
        on_complete: Called as each process finishes (completion order).

    Returns:
        A :class:`CompileReport` with ``failures`` in submission order.
    """
    report = CompileReport()
    if not tasks:
        return report

    for task in tasks:
        task.object_path.parent.mkdir(parents=True, exist_ok=True)

    workers = jobs if jobs else len(tasks)
    futures: list[Future[CompileResult]] = []
    with ThreadPoolExecutor(max_workers=workers) as executor:
        for task in tasks:
            cmd = compile_command(task, flags, cc)
            if on_start is not None:
                on_start(task, cmd)
            futures.append(executor.submit(run_compile, task.source, cmd, root, timeout))
        for fut in as_completed(futures):
            report.completed += 1
            if on_complete is not None:
                on_complete(fut.result())

    for fut in futures:
        result = fut.result()
        report.results.append(result)
        if not result.ok:
            report.failures.append(result.source)
    return report
