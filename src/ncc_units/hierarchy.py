"""Heading stack, breadcrumb path and per-parent ordering."""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from ncc_units.unit_types import UnitRow

PATH_SEPARATOR = " > "


@dataclass(slots=True)
class _Frame:
    level: int
    label: str
    anchor_id: str


@dataclass(slots=True)
class HierarchyTracker:
    """Active heading stack plus dense order counters keyed by parent anchor."""
    _stack: list[_Frame] = field(default_factory=list[_Frame])
    _counters: dict[str, int] = field(default_factory=dict[str, int])

    @property
    def path(self) -> str:
        return PATH_SEPARATOR.join(f.label for f in self._stack if f.label)

    @property
    def parent_anchor(self) -> str:
        return self._stack[-1].anchor_id if self._stack else ""

    @property
    def depth(self) -> int:
        return len(self._stack)

    def pop_to_level(self, level: int) -> None:
        """Drop every frame at *level* or deeper."""
        while self._stack and self._stack[-1].level >= level:
            self._stack.pop()

    def push(self, level: int, label: str, anchor_id: str) -> None:
        self._stack.append(_Frame(level=level, label=label, anchor_id=anchor_id))

    def path_with(self, label: str) -> str:
        """Path the stack would have after pushing *label*."""
        return PATH_SEPARATOR.join(p for p in (self.path, label) if p)

    def next_order(self, parent_anchor: str | None = None) -> int:
        """Advance and return the 1-based counter for *parent_anchor*."""
        key = self.parent_anchor if parent_anchor is None else parent_anchor
        self._counters[key] = self._counters.get(key, 0) + 1
        return self._counters[key]


def renumber_order_in_parent(rows: Iterable[UnitRow]) -> list[UnitRow]:
    """Reassign dense 1-based ``order_in_parent`` per distinct parent, in row order.

    Later passes add and remove rows, so counters issued during
    accumulation can leave gaps.  This restores density.
    """
    counters: dict[str, int] = {}
    out: list[UnitRow] = []
    for row in rows:
        n = counters.get(row.parent_anchor_id, 0) + 1
        counters[row.parent_anchor_id] = n
        out.append(row if row.order_in_parent == n else replace(row, order_in_parent=n))
    return out
