"""Duplicate merge, core-text recovery and derived-field backfill.

Merging only joins rows with identical ``(unit_type, unit_label)``; a
clause whose type was reclassified keeps its own row.  Structural,
asset and jurisdiction rows never merge.

Backfill recomputes every field that is a pure function of a row's text
(references, sentence extracts, shall/must flags, variation base label)
so later passes can rely on them.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import replace

from ncc_units.anchors import AnchorRegistry
from ncc_units.html_utils import normalize_whitespace
from ncc_units.refs import (
    contains_must,
    contains_shall,
    external_refs,
    extract_conditions,
    extract_exception_clauses,
    extract_requirements,
    extract_standards,
    internal_refs,
    legacy_refs,
)
from ncc_units.unit_types import (
    ASSET_TYPES,
    CORE_TEXT_TYPES,
    JURISDICTION_TYPES,
    NORMATIVE_TYPES,
    STRUCTURAL_TYPES,
    UnitRow,
)
from ncc_units.variations import base_label_of

log = logging.getLogger(__name__)

_NO_MERGE_TYPES: frozenset[str] = frozenset(STRUCTURAL_TYPES + ASSET_TYPES + JURISDICTION_TYPES)

_TRIGGER_RE = re.compile(r"\b(?:if|where|unless|except)\b", re.IGNORECASE)
_SUBCLAUSE_RE = re.compile(r"\(\d+\)(?:\([a-z]\))?")
_LABEL_IN_TEXT_RE = re.compile(r"\b[A-Z]{1,2}\d+[A-Z]{1,2}\d+[A-Z]?\b")

WEAK_TITLE_MIN_CHARS = 4


# ---------------------------------------------------------------------------
# Duplicate merge
# ---------------------------------------------------------------------------


def _join(*parts: str) -> str:
    return "\n".join(p for p in parts if p)


def _merge_pair(kept: UnitRow, dup: UnitRow) -> UnitRow:
    merged = replace(
        kept,
        title=kept.title or dup.title,
        text=_join(kept.text, dup.text),
        raw_text=_join(kept.raw_text, dup.raw_text),
        notes=_join(kept.notes, dup.notes),
        exceptions=_join(kept.exceptions, dup.exceptions),
        para_start=min(kept.para_start, dup.para_start),
        para_end=max(kept.para_end, dup.para_end),
    )
    return merged.with_warning(*dup.warnings, "MERGED_DUPLICATE").with_rag_text()


def merge_duplicates(rows: Sequence[UnitRow], registry: AnchorRegistry) -> list[UnitRow]:
    """Fold later rows into the first row with the same type and label."""
    first_at: dict[tuple[str, str], int] = {}
    out: list[UnitRow] = []
    remap: dict[str, str] = {}
    for row in rows:
        if not row.unit_label or row.unit_type in _NO_MERGE_TYPES:
            out.append(row)
            continue
        key = (row.unit_type, row.unit_label)
        idx = first_at.get(key)
        if idx is None:
            first_at[key] = len(out)
            out.append(row)
            continue
        out[idx] = _merge_pair(out[idx], row)
        remap[row.anchor_id] = out[idx].anchor_id
        registry.release(row.anchor_id)
    if remap:
        log.info("Merged %d duplicate rows", len(remap))
        out = [
            replace(
                r,
                parent_anchor_id=remap.get(r.parent_anchor_id, r.parent_anchor_id),
                affects_anchor_id=remap.get(r.affects_anchor_id, r.affects_anchor_id),
            )
            for r in out
        ]
    return out


# ---------------------------------------------------------------------------
# Core-text recovery
# ---------------------------------------------------------------------------


def recover_core_text(row: UnitRow) -> UnitRow:
    """Fill empty core-clause bodies from raw text, then title, then notes."""
    if row.unit_type not in CORE_TEXT_TYPES or normalize_whitespace(row.text):
        return row
    for source in ("raw_text", "title", "notes"):
        candidate = normalize_whitespace(getattr(row, source))
        if candidate:
            recovered = replace(row, text=candidate, raw_text=row.raw_text or candidate)
            return recovered.with_warning(f"TEXT_RECOVERED_FROM_{source.upper()}").with_rag_text()
    return row.with_warning("MISSING_TEXT")


# ---------------------------------------------------------------------------
# Derived-field backfill
# ---------------------------------------------------------------------------


def variation_base_label(row: UnitRow) -> str:
    """Base clause label for a variation: affected label, own label, then text."""
    for candidate in (row.affected_unit_label, row.unit_label):
        label = base_label_of(candidate) if candidate else ""
        if label:
            return label
    m = _LABEL_IN_TEXT_RE.search(row.text)
    return m.group(0) if m else ""


def backfill_row(row: UnitRow) -> UnitRow:
    full = " ".join(p for p in (row.text, row.notes, row.exceptions) if p)
    refs_text = _join(row.text, row.notes)
    tags: list[str] = [f"LEGACY_REF:{ref}" for ref in legacy_refs(refs_text)]
    values: dict[str, object] = {
        "internal_refs": internal_refs(refs_text, row.unit_label),
        "external_refs": external_refs(full),
        "conditions": extract_conditions(full),
        "exception_clauses": extract_exception_clauses(full),
        "requirements": extract_requirements(row.text),
        "standards_referenced": extract_standards(full),
        "contains_shall": contains_shall(row.text),
        "contains_must": contains_must(row.text),
    }
    if _TRIGGER_RE.search(full) and not values["conditions"] and not values["exception_clauses"]:
        tags.append("CONDITION_NOT_EXTRACTED")

    if row.unit_type == "STATE_VARIATION":
        base = row.base_unit_label or variation_base_label(row)
        values["base_unit_label"] = base
        if not base:
            tags.append("UNLINKED_VARIATION")
        if not row.affected_subclause:
            m = _SUBCLAUSE_RE.search(row.affected_subparts or row.text)
            values["affected_subclause"] = m.group(0) if m else ""

    if (
        row.unit_type in NORMATIVE_TYPES
        and row.unit_label
        and len(row.title) < WEAK_TITLE_MIN_CHARS
    ):
        tags.append("WEAK_TITLE")

    return replace(row, **values).with_warning(*tags)


def enrich_rows(rows: Sequence[UnitRow]) -> list[UnitRow]:
    """Core-text recovery followed by derived-field backfill, per row."""
    out = [backfill_row(recover_core_text(r)) for r in rows]
    recovered = sum(1 for r in out if any(w.startswith("TEXT_RECOVERED_FROM_") for w in r.warnings))
    log.info("Backfilled %d rows (%d core bodies recovered)", len(out), recovered)
    return out
