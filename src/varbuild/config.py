"""Centralised project configuration loader for varbuild.

Reads ``varbuild.toml`` from the project root and exposes every setting as
simple attributes so that the build commands never hardcode compiler names,
flag lists or directory layout.

The configuration supports **multiple variants**.  Each variant adds its own
flags, link libraries, compiler and default output on top of the shared
``[compiler]`` settings.  Built-in presets cover the usual targets; a
``[variants.<name>]`` table overrides a preset field by field or defines a
new variant.

Usage::

    from varbuild.config import load_config

    cfg = load_config()
    cfg.objects_dir            # Path, e.g. <root>/build/objs
    cfg.variant("gtk").ldflags_cmd
"""

from __future__ import annotations

import shlex
import sys
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from varbuild.flags import ExclusiveGroup

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

CONFIG_NAME = "varbuild.toml"

# ---------------------------------------------------------------------------
# Variant presets
# ---------------------------------------------------------------------------


@dataclass
class Variant:
    """One named build target configuration."""

    name: str
    description: str = ""
    # Name matched by @flags directives and hashed into object names
    build_type: str = ""
    cc: Optional[str] = None
    fincc: Optional[str] = None
    cflags: List[str] = field(default_factory=list)
    ldflags: List[str] = field(default_factory=list)
    # Shell commands whose output is appended to cflags / ldflags (pkg-config)
    cflags_cmd: Optional[str] = None
    ldflags_cmd: Optional[str] = None
    # Default artifact; "{name}" expands to the project name
    output: Optional[str] = None
    skip_manifests: List[str] = field(default_factory=list)
    # Append "-s WASM=0|1" to the link flags (emscripten)
    wasm_switch: bool = False
    cflag_replace: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.build_type:
            self.build_type = self.name


_VARIANT_PRESETS: Dict[str, Variant] = {
    "native": Variant(name="native", description="Native executable"),
    "gtk": Variant(
        name="gtk",
        description="Native executable with the GTK 3 front end",
        cflags_cmd="pkg-config --cflags gtk+-3.0",
        ldflags_cmd="pkg-config --libs gtk+-3.0",
    ),
    "win32": Variant(
        name="win32",
        description="Windows executable",
        ldflags=["-lgdi32", "-lcomdlg32"],
    ),
    "libcpu": Variant(
        name="libcpu",
        description="CPU core as a shared library",
        cflags=["-fPIC", "-shared", "-DLIBCPU"],
    ),
    "libcpu-wasm": Variant(
        name="libcpu-wasm",
        description="CPU core as a WebAssembly side module",
        build_type="libcpu",
        cc="emcc",
        fincc="emcc",
        cflags=["-fPIC", "-s", "SIDE_MODULE=1", "-DLIBCPU"],
        output="libcpu.wasm",
    ),
    "emscripten": Variant(
        name="emscripten",
        description="Browser build via Emscripten",
        cc="emcc",
        fincc="emcc",
        ldflags=["-s", "NO_FILESYSTEM=1", "-s", "TOTAL_MEMORY=256MB"],
        output="{name}.js",
        wasm_switch=True,
        cflag_replace={"-std=c99": "-std=gnu99"},
    ),
}


@dataclass
class ProjectConfig:
    """Parsed project configuration with computed paths."""

    # Root directory (where varbuild.toml lives)
    root: Path

    # --- [project] ---
    project_name: str = "a.out"
    output: str = "{name}"

    # --- [build] ---
    build_dir: Path = field(default_factory=lambda: Path("build"))
    objects_dir: Path = field(default_factory=lambda: Path("build/objs"))
    index: str = "files.json"

    # --- [compiler] ---
    cc: str = "gcc"
    fincc: str = "gcc"
    cflags: List[str] = field(default_factory=lambda: ["-Wall", "-g3"])
    ldflags: List[str] = field(default_factory=list)
    fincc_flags: List[str] = field(default_factory=list)
    debug_flag: str = "-g3"
    depscan: str = "gcc -MM"
    jobs: int = 0  # 0 = one process per file
    timeout: int = 0  # 0 = wait forever
    check_tasks: bool = False
    exclusive_groups: List[ExclusiveGroup] = field(
        default_factory=lambda: [ExclusiveGroup("arch", ("-m32", "-m64"))]
    )
    tracked_flags: List[str] = field(default_factory=list)
    web_drop_ldflags: List[str] = field(default_factory=lambda: ["-lSDLmain", "-lz"])

    # --- [variants] (presets merged with the file) ---
    variants: Dict[str, Variant] = field(default_factory=lambda: dict(_VARIANT_PRESETS))

    def variant(self, name: str) -> Variant:
        """Return the variant called *name*.

        Raises:
            KeyError: if no such variant is defined.
        """
        if name not in self.variants:
            raise KeyError(f"Unknown variant '{name}'. Known variants: {sorted(self.variants)}")
        return self.variants[name]

    def output_for(self, variant: Variant) -> str:
        template = variant.output or self.output
        return template.format(name=self.project_name)


def _resolve(root: Path, rel: Optional[str]) -> Optional[Path]:
    """Resolve a path relative to project root."""
    if rel is None:
        return None
    p = Path(rel)
    if p.is_absolute():
        return p
    return root / p


def _as_list(value: Any, key: str) -> List[str]:
    """Accept either a shell-style string or a list of strings."""
    if isinstance(value, str):
        return shlex.split(value)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ValueError(f"'{key}' must be a string or a list of strings")


def _find_root(start: Optional[Path] = None) -> Path:
    """Walk up from *start* (or cwd) to find varbuild.toml.

    The package is usually installed into site-packages, so ``__file__``
    says nothing about the project.  Search from the current working
    directory upward, similar to how ``git`` locates ``.git/``.
    """
    if start is not None:
        return start
    candidate = Path.cwd().resolve()
    while candidate != candidate.parent:
        if (candidate / CONFIG_NAME).exists():
            return candidate
        candidate = candidate.parent
    raise FileNotFoundError(
        f"Could not find {CONFIG_NAME} in any parent of the current directory. "
        f"Run varbuild from within a project that contains {CONFIG_NAME}, "
        "or create one with 'varbuild init'."
    )


_LIST_VARIANT_FIELDS = {"cflags", "ldflags", "skip_manifests"}


def _parse_variant(name: str, raw: Dict[str, Any], base: Optional[Variant]) -> Variant:
    known = {f.name for f in fields(Variant)} - {"name"}
    unknown = set(raw) - known
    if unknown:
        raise ValueError(f"[variants.{name}] has unknown keys: {sorted(unknown)}")

    updates: Dict[str, Any] = {}
    for key, value in raw.items():
        if key in _LIST_VARIANT_FIELDS:
            updates[key] = _as_list(value, f"variants.{name}.{key}")
        elif key == "cflag_replace":
            if not isinstance(value, dict):
                raise ValueError(f"'variants.{name}.cflag_replace' must be a table")
            updates[key] = {str(k): str(v) for k, v in value.items()}
        elif key == "wasm_switch":
            updates[key] = bool(value)
        else:
            updates[key] = str(value)

    if base is None:
        return Variant(name=name, **updates)
    return replace(base, **updates)


def _parse_groups(raw: Any) -> List[ExclusiveGroup]:
    if not isinstance(raw, list):
        raise ValueError("'compiler.exclusive_groups' must be a list of lists")
    groups = []
    for i, members in enumerate(raw):
        groups.append(ExclusiveGroup(f"group{i}", tuple(_as_list(members, "exclusive_groups"))))
    return groups


def load_config(root: Optional[Path] = None) -> ProjectConfig:
    """Load varbuild.toml.

    Args:
        root: Project root directory.  Auto-detected if ``None``.
    """
    root = _find_root(root)
    toml_path = root / CONFIG_NAME
    if not toml_path.exists():
        raise FileNotFoundError(f"Config not found: {toml_path}")

    with open(toml_path, "rb") as f:
        try:
            raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            raise ValueError(f"{toml_path}: {exc}") from exc

    project = raw.get("project", {})
    build = raw.get("build", {})
    compiler = raw.get("compiler", {})

    variants = dict(_VARIANT_PRESETS)
    for name, body in raw.get("variants", {}).items():
        if not isinstance(body, dict):
            raise ValueError(f"[variants.{name}] must be a table")
        variants[name] = _parse_variant(name, body, variants.get(name))

    defaults = ProjectConfig(root=root)
    cfg = ProjectConfig(
        root=root,
        # project
        project_name=project.get("name", root.name),
        output=project.get("output", defaults.output),
        # build layout
        build_dir=_resolve(root, build.get("dir", "build")),
        objects_dir=_resolve(root, build.get("objects", "build/objs")),
        index=build.get("index", defaults.index),
        # compiler
        cc=compiler.get("cc", defaults.cc),
        fincc=compiler.get("fincc", compiler.get("cc", defaults.fincc)),
        cflags=_as_list(compiler.get("cflags", defaults.cflags), "compiler.cflags"),
        ldflags=_as_list(compiler.get("ldflags", defaults.ldflags), "compiler.ldflags"),
        fincc_flags=_as_list(compiler.get("fincc_flags", []), "compiler.fincc_flags"),
        debug_flag=compiler.get("debug_flag", defaults.debug_flag),
        depscan=compiler.get("depscan", defaults.depscan),
        jobs=int(compiler.get("jobs", 0)),
        timeout=int(compiler.get("timeout", 0)),
        check_tasks=bool(compiler.get("check_tasks", False)),
        tracked_flags=_as_list(compiler.get("tracked_flags", []), "compiler.tracked_flags"),
        web_drop_ldflags=_as_list(
            compiler.get("web_drop_ldflags", defaults.web_drop_ldflags),
            "compiler.web_drop_ldflags",
        ),
        variants=variants,
    )
    if "exclusive_groups" in compiler:
        cfg.exclusive_groups = _parse_groups(compiler["exclusive_groups"])
    if cfg.jobs < 0:
        raise ValueError("'compiler.jobs' must be >= 0")
    if cfg.timeout < 0:
        raise ValueError("'compiler.timeout' must be >= 0")

    return cfg
