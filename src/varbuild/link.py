"""Final link / archive step.

Runs after every compile task succeeded, and on every such invocation,
even when nothing was recompiled.  The final tool decides the mode:

archive
    ``ar`` (or a cross ``*-ar`` / ``llvm-ar``) writes a fresh archive holding
    exactly the included objects: ``ar rv <output> <objects...>``.  Any
    previous archive is removed first.
link
    anything else is treated as a compiler driver:
    ``fincc <fincc flags> <flags> -o <output> <objects...> <end flags>``.
"""

import subprocess
from pathlib import Path

from varbuild.flags import FlagSet


def is_archiver(tool: str) -> bool:
    name = Path(tool).name
    return name == "ar" or name.endswith("-ar")


def link_command(
    objects: list[Path],
    flags: FlagSet,
    fincc: str,
    output: Path,
    *,
    end_flags: list[str] | None = None,
    fincc_flags: list[str] | None = None,
) -> list[str]:
    """Build the archive or link command line."""
    objs = [str(o) for o in objects]
    if is_archiver(fincc):
        return [fincc, "rv", str(output), *objs]
    cmd = [fincc, *(fincc_flags or []), *flags.tokens, "-o", str(output), *objs]
    cmd += end_flags or []
    return [c for c in cmd if c]


def link(
    objects: list[Path],
    flags: FlagSet,
    fincc: str,
    output: Path,
    *,
    root: Path,
    end_flags: list[str] | None = None,
    fincc_flags: list[str] | None = None,
    timeout: float | None = None,
) -> tuple[int, str]:
    """Produce the final artifact.

    Returns:
        ``(returncode, output_text)``; a nonzero code means the build failed.
    """
    cmd = link_command(
        objects, flags, fincc, output, end_flags=end_flags, fincc_flags=fincc_flags
    )
    target = root / output
    target.parent.mkdir(parents=True, exist_ok=True)
    if is_archiver(fincc):
        # ar only adds or replaces members; start from an empty archive
        target.unlink(missing_ok=True)
    try:
        r = subprocess.run(cmd, capture_output=True, cwd=root, timeout=timeout)
    except subprocess.TimeoutExpired:
        return -1, f"Link timed out after {timeout}s"
    except FileNotFoundError as e:
        return -1, f"Linker not found: {e}"
    except OSError as e:
        return -1, f"Failed to run linker: {e}"
    return r.returncode, (r.stdout + r.stderr).decode("utf-8", errors="replace")
