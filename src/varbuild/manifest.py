"""Manifest store: per-file build metadata loaded from ``build/*-files.json``.

Layout on disk::

    build/files.json            ["core", "cpu", "display"]
    build/core-files.json       {"description": "...",
                                 "src/main.c": {"dependencies": [...],
                                                "additional_flags": [...],
                                                "include_paths": [...],
                                                "tasks": [...]}}

``description`` and ``archive`` are manifest-level markers, not file entries.

Directives inside ``additional_flags`` are parsed once, at load time, into
the tagged types below.  Anything not starting with ``@`` is a raw compiler
argument passed through to the compile command.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

from varbuild.utils import atomic_write_text

DIRECTIVE_SIGIL = "@"

# Manifest-level keys that are not source entries
RESERVED_KEYS = frozenset({"description", "archive"})

_ENTRY_FIELDS = ("dependencies", "additional_flags", "include_paths", "tasks")


class ManifestError(ValueError):
    """A manifest file or one of its entries is malformed."""


# ---------------------------------------------------------------------------
# Directives
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Group:
    """A ``|``-separated allow/deny list, e.g. ``gtk|win32|!libcpu``."""

    allowed: tuple[str, ...] = ()
    denied: tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> Group:
        allowed: list[str] = []
        denied: list[str] = []
        for part in text.split("|"):
            part = part.strip()
            if not part:
                continue
            if part.startswith("!"):
                denied.append(part[1:])
            else:
                allowed.append(part)
        return cls(tuple(allowed), tuple(denied))


@dataclass(frozen=True)
class FlagsDirective:
    """``@flags=group``: build only for matching variants."""

    group: Group

    def matches(self, build_type: str) -> bool:
        # No positive entries means every variant is allowed
        if self.group.allowed and build_type not in self.group.allowed:
            return False
        return build_type not in self.group.denied


@dataclass(frozen=True)
class OptionsDirective:
    """``@options=group``: build only when the flag set matches."""

    group: Group

    def missing(self, tokens: tuple[str, ...]) -> str | None:
        """Return the first required flag that is absent, or ``None``."""
        for tok in self.group.allowed:
            if tok not in tokens:
                return tok
        return None

    def forbidden(self, tokens: tuple[str, ...]) -> str | None:
        """Return the first denied flag that is present, or ``None``."""
        for tok in self.group.denied:
            if tok in tokens:
                return tok
        return None


@dataclass(frozen=True)
class UseDirective:
    """``@use=token``: the file needs *token* in the global flag set."""

    token: str


@dataclass(frozen=True)
class RawArg:
    """A plain extra compiler argument for this file only."""

    text: str


Directive = Union[FlagsDirective, OptionsDirective, UseDirective, RawArg]


def parse_directive(text: str) -> Directive:
    """Parse one ``additional_flags`` item.

    Raises:
        ManifestError: for an ``@`` item with an unknown keyword or no value.
    """
    if not text.startswith(DIRECTIVE_SIGIL):
        return RawArg(text)
    keyword, sep, value = text.partition("=")
    if keyword == "@flags":
        return FlagsDirective(Group.parse(value))
    if keyword == "@options":
        return OptionsDirective(Group.parse(value))
    if keyword == "@use":
        if not sep or not value:
            raise ManifestError(f"'@use' needs a flag, got {text!r}")
        return UseDirective(value)
    raise ManifestError(f"Unknown directive {keyword!r} in {text!r}")


# ---------------------------------------------------------------------------
# Entries and manifests
# ---------------------------------------------------------------------------


@dataclass
class FileEntry:
    """Build metadata for one source file."""

    source: str
    dependencies: list[str] = field(default_factory=list)
    additional_flags: list[str] = field(default_factory=list)
    include_paths: list[str] = field(default_factory=list)
    tasks: list[str] = field(default_factory=list)
    directives: tuple[Directive, ...] = ()

    @classmethod
    def from_dict(cls, source: str, raw: Any) -> FileEntry:
        if not isinstance(raw, dict):
            raise ManifestError(f"entry for {source!r} must be an object, got {type(raw).__name__}")
        values: dict[str, list[str]] = {}
        for name in _ENTRY_FIELDS:
            value = raw.get(name, [])
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ManifestError(f"{source!r}: '{name}' must be a list of strings")
            values[name] = list(value)
        try:
            directives = tuple(parse_directive(f) for f in values["additional_flags"])
        except ManifestError as exc:
            raise ManifestError(f"{source!r}: {exc}") from exc
        return cls(source=source, directives=directives, **values)

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "dependencies": list(self.dependencies),
            "additional_flags": list(self.additional_flags),
            "include_paths": list(self.include_paths),
            "tasks": list(self.tasks),
        }


@dataclass
class Manifest:
    """One named manifest set (``build/<name>-files.json``)."""

    name: str
    path: Path
    entries: dict[str, FileEntry] = field(default_factory=dict)
    # Manifest-level markers, written back untouched
    extras: dict[str, Any] = field(default_factory=dict)

    def __iter__(self):
        return iter(self.entries.values())

    def __len__(self) -> int:
        return len(self.entries)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extras)
        for source, entry in self.entries.items():
            data[source] = entry.to_dict()
        return data


def manifest_path(build_dir: Path, name: str) -> Path:
    return build_dir / f"{name}-files.json"


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ManifestError(f"Manifest not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ManifestError(f"{path}: invalid JSON ({exc})") from exc


def load_manifest(build_dir: Path, name: str) -> Manifest:
    """Load ``<build_dir>/<name>-files.json``."""
    path = manifest_path(build_dir, name)
    raw = _read_json(path)
    if not isinstance(raw, dict):
        raise ManifestError(f"{path}: top level must be an object")

    manifest = Manifest(name=name, path=path)
    for key, value in raw.items():
        if key in RESERVED_KEYS:
            manifest.extras[key] = value
            continue
        try:
            manifest.entries[key] = FileEntry.from_dict(key, value)
        except ManifestError as exc:
            raise ManifestError(f"{path}: {exc}") from exc
    return manifest


def load_manifests(build_dir: Path, index: str = "files.json") -> list[Manifest]:
    """Load every manifest set listed in ``<build_dir>/<index>``, in order."""
    index_path = build_dir / index
    names = _read_json(index_path)
    if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
        raise ManifestError(f"{index_path}: expected a list of manifest names")
    return [load_manifest(build_dir, name) for name in names]


def save_manifest(manifest: Manifest) -> None:
    """Write *manifest* back to its file (4-space indented JSON)."""
    atomic_write_text(manifest.path, json.dumps(manifest.to_dict(), indent=4) + "\n")
