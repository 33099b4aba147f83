"""Compiler flag primitives.

ExclusiveGroup: mutually exclusive tokens (at most one may be active)
FlagSet:        the resolved, ordered flag tokens for one resolution attempt

A ``FlagSet`` is immutable.  Adding or pruning returns a new instance so
that each resolution attempt works on a stable snapshot and a restart
carries the grown set explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class ExclusiveGroup:
    """A set of mutually exclusive compiler flags (the last one added wins)."""

    id: str
    flags: tuple[str, ...]


ARCH_WIDTH = ExclusiveGroup(id="arch", flags=("-m32", "-m64"))


@dataclass(frozen=True)
class FlagSet:
    """Ordered compiler flag tokens plus the variant and compiler they apply to."""

    tokens: tuple[str, ...] = ()
    build_type: str = "native"
    compiler: str = "gcc"
    groups: tuple[ExclusiveGroup, ...] = field(default=(ARCH_WIDTH,))

    def has(self, token: str) -> bool:
        return token in self.tokens

    def add(self, token: str) -> FlagSet:
        """Return a copy with *token* appended, unless it is already present."""
        if token in self.tokens:
            return self
        return replace(self, tokens=self.tokens + (token,))

    def prune_exclusive(self, group: ExclusiveGroup) -> FlagSet:
        """Keep only the most recently appended member of *group*."""
        last = -1
        for i, tok in enumerate(self.tokens):
            if tok in group.flags:
                last = i
        if last == -1:
            return self
        kept = tuple(t for i, t in enumerate(self.tokens) if i == last or t not in group.flags)
        return replace(self, tokens=kept)

    def pruned(self) -> FlagSet:
        """Apply :meth:`prune_exclusive` for every declared group."""
        result = self
        for group in self.groups:
            result = result.prune_exclusive(group)
        return result
