"""Bounded-length chunking of unit bodies.

A body longer than ``max_words`` is split into contiguous word runs.  The
tail is never shorter than ``min_words`` unless it is the only chunk: when
the run after a full chunk would leave an undersized tail, the current
chunk shrinks instead.

Chunk rows share all metadata with their source row except the anchor,
which gets a ``::cNN`` suffix, and a ``CHUNK_SPLIT`` warning.  Any row that
referenced the unchunked anchor is re-pointed at the first chunk.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace

from ncc_units.anchors import AnchorRegistry
from ncc_units.unit_types import PipelineOptions, UnitRow

log = logging.getLogger(__name__)

CHUNK_WARNING = "CHUNK_SPLIT"


def split_into_chunks(text: str, *, max_words: int = 600, min_words: int = 200) -> list[str]:
    """Split *text* into word runs of at most *max_words*.

    Concatenating the result with single spaces reproduces the
    whitespace-normalized input.
    """
    words = text.split()
    if len(words) <= max_words:
        return [" ".join(words)] if words else []
    chunks: list[str] = []
    i = 0
    n = len(words)
    while i < n:
        remaining = n - i
        take = min(remaining, max_words)
        if remaining > max_words and remaining - max_words < min_words:
            take = remaining - min_words
        chunks.append(" ".join(words[i:i + take]))
        i += take
    return chunks


def chunk_rows(
    rows: Iterable[UnitRow],
    registry: AnchorRegistry,
    options: PipelineOptions,
) -> list[UnitRow]:
    """Replace every over-long row with its chunk rows; re-point references."""
    out: list[UnitRow] = []
    remap: dict[str, str] = {}
    for row in rows:
        if len(row.text.split()) <= options.max_words:
            out.append(row)
            continue
        pieces = split_into_chunks(
            row.text, max_words=options.max_words, min_words=options.min_words,
        )
        registry.release(row.anchor_id)
        for idx, piece in enumerate(pieces, start=1):
            anchor = registry.assign(f"{row.anchor_id}::c{idx:02d}")
            if idx == 1:
                remap[row.anchor_id] = anchor
            chunk = replace(row, anchor_id=anchor, text=piece)
            out.append(chunk.with_warning(CHUNK_WARNING).with_rag_text())
        log.debug("Split %s into %d chunks", row.anchor_id, len(pieces))
    if not remap:
        return out
    return [_remap_references(r, remap) for r in out]


def _remap_references(row: UnitRow, remap: dict[str, str]) -> UnitRow:
    parent = remap.get(row.parent_anchor_id, row.parent_anchor_id)
    affects = remap.get(row.affects_anchor_id, row.affects_anchor_id)
    if parent == row.parent_anchor_id and affects == row.affects_anchor_id:
        return row
    return replace(row, parent_anchor_id=parent, affects_anchor_id=affects)
