"""Anchor-id construction and collision handling.

Anchors join volume, truncated path, unit type and label (or order) with
``::`` after slugging each part.  One :class:`AnchorRegistry` lives per
build; a collision is resolved with a numeric suffix (``_2``, ``_3``, ...)
and recorded as a build warning.  Ids are never silently overwritten.
"""
from __future__ import annotations

import logging
import re

log = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^A-Z0-9]+")

SLUG_MAX_LEN = 80
PATH_SLUG_MAX_LEN = 120


def slug(value: str, max_len: int = SLUG_MAX_LEN) -> str:
    """Uppercase, collapse non-alphanumeric runs to ``_``, trim, bound length."""
    out = _NON_ALNUM_RE.sub("_", value.upper()).strip("_")
    return out[:max_len].rstrip("_")


def anchor_base(volume: str, path: str, unit_type: str, key: str | int) -> str:
    """Build the un-deduplicated anchor for a unit."""
    return "::".join((
        slug(volume) or "NCC",
        slug(path, PATH_SLUG_MAX_LEN) or "ROOT",
        slug(unit_type),
        slug(str(key)) or "0",
    ))


class AnchorRegistry:
    """Issues unique anchor ids for one build."""

    def __init__(self) -> None:
        self._used: set[str] = set()
        self.warnings: list[str] = []

    def __contains__(self, anchor_id: object) -> bool:
        return anchor_id in self._used

    def __len__(self) -> int:
        return len(self._used)

    def assign(self, base: str) -> str:
        """Reserve *base*, or the first free ``base_N`` if it is taken."""
        if base not in self._used:
            self._used.add(base)
            return base
        n = 2
        while f"{base}_{n}" in self._used:
            n += 1
        resolved = f"{base}_{n}"
        self._used.add(resolved)
        message = f"Duplicate anchor_id encountered: {base} -> {resolved}"
        log.warning(message)
        self.warnings.append(message)
        return resolved

    def child(self, parent_anchor: str, suffix: str) -> str:
        """Reserve an anchor nested under *parent_anchor* (``parent::SUFFIX``)."""
        return self.assign(f"{parent_anchor}::{slug(suffix) or suffix}")

    def release(self, anchor_id: str) -> None:
        """Free an id whose row was dropped (merged away or chunked)."""
        self._used.discard(anchor_id)
