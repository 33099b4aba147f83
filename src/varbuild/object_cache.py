"""Flag-aware object file cache.

Every variant compiles into the same flat directory (``build/objs`` by
default).  Object names encode the source location and the flags that
affect code generation, so switching from ``native`` to ``emscripten`` and
back never needs a clean: each configuration finds its own objects.

Object name
~~~~~~~~~~~
``<dirhash>-<stem>-<flag_id>.o`` where

- **dirhash**: first 8 hex digits of SHA-256 of the source's directory,
  so ``src/cpu/ops/misc.c`` and ``src/misc.c`` do not collide
- **stem**: source basename without ``.c``
- **flag_id**: base-36 bitmask, see :func:`flag_id`

Invalidation
~~~~~~~~~~~~
None here; staleness is decided by mtime in :mod:`varbuild.resolve`.
Use ``varbuild clean`` to delete every cached object.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any

from varbuild.flags import FlagSet
from varbuild.utils import to_base36

# One bit per flag that changes the generated object.
# Bits 11..30 hold the variant hash and bit 31 the 32-bit target.
TRACKED_FLAGS: dict[str, int] = {
    "-g3": 1 << 0,
    "-O0": 1 << 1,
    "-O1": 1 << 2,
    "-O2": 1 << 3,
    "-O3": 1 << 4,
    # bit 5 is the emcc compiler, see flag_id()
    "-pie": 1 << 6,
    "-DINSTRUMENT": 1 << 7,
    "-O": 1 << 8,
    "-DLIBCPU": 1 << 9,
    "SIDE_MODULE=1": 1 << 10,
}

EMCC_BIT = 1 << 5
VARIANT_SHIFT = 11
VARIANT_MASK = (1 << 20) - 1
ARCH32_BIT = 1 << 31
# Configured extra flags get bits from here upwards
EXTRA_SHIFT = 32

OBJECT_SUFFIX = ".o"


def variant_hash(build_type: str) -> int:
    """Small stable hash of the variant name (sum of code points xor length)."""
    x = sum(ord(c) for c in build_type)
    x ^= len(build_type)
    return x & VARIANT_MASK


def flag_id(flags: FlagSet, extra_tracked: tuple[str, ...] = ()) -> int:
    """Compute the bitmask identifying the code-affecting part of *flags*.

    Only membership matters, never token order, so the id is the same no
    matter how the flag set was assembled.
    """
    ident = 0
    for token, bit in TRACKED_FLAGS.items():
        if flags.has(token):
            ident |= bit
    if Path(flags.compiler).name.startswith("emcc"):
        ident |= EMCC_BIT
    ident |= variant_hash(flags.build_type) << VARIANT_SHIFT
    if flags.has("-m32"):
        ident |= ARCH32_BIT
    for i, token in enumerate(extra_tracked):
        if flags.has(token):
            ident |= 1 << (EXTRA_SHIFT + i)
    return ident


def directory_hash(source: str) -> str:
    dirname = str(Path(source).parent)
    return hashlib.sha256(dirname.encode("utf-8")).hexdigest()[:8]


def object_name(source: str, flags: FlagSet, extra_tracked: tuple[str, ...] = ()) -> str:
    """Return the cache file name for *source* compiled with *flags*."""
    base = Path(source).name
    stem = base[:-2] if base.endswith(".c") else base
    ident = to_base36(flag_id(flags, extra_tracked))
    return f"{directory_hash(source)}-{stem}-{ident}{OBJECT_SUFFIX}"


def object_path(
    objects_dir: Path, source: str, flags: FlagSet, extra_tracked: tuple[str, ...] = ()
) -> Path:
    return objects_dir / object_name(source, flags, extra_tracked)


class ObjectCache:
    """The flat directory holding every variant's object files."""

    def __init__(self, objects_dir: str | Path, extra_tracked: tuple[str, ...] = ()) -> None:
        self.root = Path(objects_dir)
        self.extra_tracked = extra_tracked

    def path_for(self, source: str, flags: FlagSet) -> Path:
        return object_path(self.root, source, flags, self.extra_tracked)

    def ensure(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def objects(self) -> list[Path]:
        if not self.root.is_dir():
            return []
        return sorted(p for p in self.root.iterdir() if p.suffix == OBJECT_SUFFIX and p.is_file())

    @property
    def count(self) -> int:
        """Number of cached object files."""
        return len(self.objects())

    @property
    def volume(self) -> int:
        """Total bytes used by cached objects."""
        return sum(p.stat().st_size for p in self.objects())

    def clear(self) -> int:
        """Delete all cached objects and return how many were removed."""
        removed = 0
        for obj in self.objects():
            obj.unlink()
            removed += 1
        return removed

    def stats(self) -> dict[str, Any]:
        """Return cache statistics as a dict."""
        volume = self.volume
        return {
            "directory": str(self.root),
            "entries": self.count,
            "volume_bytes": volume,
            "volume_mb": round(volume / (1024 * 1024), 2),
        }
