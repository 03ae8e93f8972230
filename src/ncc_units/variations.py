"""Jurisdiction-variation extraction passes.

Four order-dependent ``rows -> rows`` passes re-materialize state and
territory amendments found inside national text as separate rows:

1. :func:`isolate_instruction_packs` splits a body at the start of an
   editorial instruction into a cleaned base row and a
   STATE_VARIATION_AMENDMENT row.
2. :func:`atomize_amendments` parses each amendment into
   ``(jurisdiction, label[, sub-part]) -> action`` tuples, one
   STATE_VARIATION row per tuple.
3. :func:`extract_embedded_markers` handles inline markers flagged during
   accumulation (including same-clause replacement sub-clauses such as
   ``NSW C4D12(5) (5) ...``); plain cross-references are left alone.
4. :func:`sweep_instruction_only_inserts` surfaces any remaining
   ``Insert subclause NSW C4D12(6)`` phrasing as payload-less rows.

Scans are capped by :class:`~ncc_units.unit_types.PipelineOptions`
(``max_scan_chars``, ``max_matches_per_unit``).
"""
from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace

from ncc_units.anchors import AnchorRegistry, anchor_base
from ncc_units.labels import (
    EDITORIAL_RE,
    JURISDICTION_RE,
    LABEL_WITH_SUBPART,
    STATE_ALT,
    STATE_MARKER_RE,
    has_jurisdiction,
    has_modification_language,
    is_reference_only,
)
from ncc_units.html_utils import normalize_whitespace
from ncc_units.unit_types import (
    ASSET_TYPES,
    JURISDICTION_TYPES,
    STRUCTURAL_TYPES,
    PipelineOptions,
    UnitRow,
    retype,
)

log = logging.getLogger(__name__)

PLACEHOLDER = "[State variation instruction extracted]"

_SKIP_TYPES: frozenset[str] = frozenset(STRUCTURAL_TYPES + ASSET_TYPES + JURISDICTION_TYPES)

_VERB_TARGET_RE: re.Pattern[str] = re.compile(
    r"\b(?i:delete|replace|substitute|insert|omit)\s+"
    r"(?:(?i:sub)?(?i:clause)\s+)?"
    rf"(?:({STATE_ALT})\s+)?{LABEL_WITH_SUBPART}"
)
_INSERT_SUBCLAUSE_RE: re.Pattern[str] = re.compile(
    rf"\b(?i:insert)\s+(?i:subclause)\s+({STATE_ALT})\s+([A-Z]\d+)\s*([A-Z]\d+)?\s*\((\d+)\)"
)
_REF_PRECEDING_RE: re.Pattern[str] = re.compile(
    r"(?:refer\s+to|see|in\s+accordance\s+with|under)\s*$", re.IGNORECASE,
)
_BASE_LABEL_RE: re.Pattern[str] = re.compile(r"^([A-Z]{1,2}\d+[A-Z]{1,2}\d+[A-Z]?)")

_NOT_APPLICABLE_RE = re.compile(
    r"\b(?:does|do)\s+not\s+apply\b|\bleft\s+blank\b|\bnot\s+applicable\b", re.IGNORECASE,
)
_DELETE_RE = re.compile(r"\b(?:delete|omit)", re.IGNORECASE)
_INSERT_RE = re.compile(r"\binsert", re.IGNORECASE)
_REPLACE_RE = re.compile(r"\b(?:replace|substitute)", re.IGNORECASE)

# Window after a bare jurisdiction token searched for editorial wording.
_INSTRUCTION_LOOKAHEAD = 200


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class VariationTarget:
    start: int
    state: str
    label: str                    # base label, e.g. "C4D12"
    subpart: str = ""             # e.g. "(4)"

    @property
    def full_label(self) -> str:
        return f"{self.label}{self.subpart}"


def parse_action(text: str) -> str:
    """Infer the amendment action from its verbs/phrases."""
    if _NOT_APPLICABLE_RE.search(text):
        return "NOT_APPLICABLE"
    has_delete = _DELETE_RE.search(text) is not None
    has_insert = _INSERT_RE.search(text) is not None
    if (has_delete and has_insert) or _REPLACE_RE.search(text):
        return "REPLACE"
    if has_delete:
        return "DELETE"
    if has_insert:
        return "INSERT"
    return "AMEND_PART"


def base_label_of(label: str) -> str:
    """``"C4D12(4)"`` -> ``"C4D12"``; ``"NSW C4D12(4)"`` -> ``"C4D12"``."""
    label = JURISDICTION_RE.sub("", label).strip()
    m = _BASE_LABEL_RE.match(label)
    return m.group(1) if m else ""


def _is_reference_at(text: str, start: int) -> bool:
    return _REF_PRECEDING_RE.search(text[max(0, start - 25):start]) is not None


def _nearest_state(text: str, pos: int, fallback: str) -> str:
    state = ""
    for m in JURISDICTION_RE.finditer(text, 0, pos):
        state = m.group(1)
    if state:
        return state
    m = JURISDICTION_RE.search(text)
    return m.group(1) if m else fallback


def extract_targets(
    text: str,
    *,
    default_state: str = "",
    max_matches: int = 50,
) -> list[VariationTarget]:
    """Find ``(jurisdiction, label[, sub-part])`` targets in document order.

    Verb-led targets (``Delete NSW C4D12(4)``) start at the verb; bare
    markers (``NSW C4D12(4)``) at the jurisdiction.  A verb target without
    an explicit jurisdiction takes the nearest preceding one.  Markers
    preceded by "refer to"/"see" are references, not targets.
    """
    found: list[VariationTarget] = []
    covered: list[tuple[int, int]] = []
    for m in _VERB_TARGET_RE.finditer(text):
        if len(found) >= max_matches:
            break
        state = m.group(1) or _nearest_state(text, m.start(), default_state)
        if not state:
            continue
        found.append(VariationTarget(m.start(), state, m.group(2), m.group(3) or ""))
        covered.append((m.start(), m.end()))
    for m in STATE_MARKER_RE.finditer(text):
        if len(found) >= max_matches:
            break
        if any(s <= m.start() < e for s, e in covered) or _is_reference_at(text, m.start()):
            continue
        found.append(VariationTarget(m.start(), m.group(1), m.group(2), m.group(3) or ""))
    found.sort(key=lambda t: t.start)
    seen: set[tuple[str, str]] = set()
    unique: list[VariationTarget] = []
    for target in found:
        key = (target.state, target.full_label)
        if key not in seen:
            seen.add(key)
            unique.append(target)
    return unique


def find_instruction_start(text: str) -> int | None:
    """Offset where jurisdiction instruction text begins, or None.

    The start is pulled back to the beginning of its sentence when that
    sentence already names the jurisdiction ("In NSW, delete ...").
    """
    candidates: list[int] = []
    m = _VERB_TARGET_RE.search(text)
    if m is not None:
        candidates.append(m.start())
    for m in STATE_MARKER_RE.finditer(text):
        if not _is_reference_at(text, m.start()):
            candidates.append(m.start())
            break
    if not candidates:
        for m in JURISDICTION_RE.finditer(text):
            window = text[m.start():m.start() + _INSTRUCTION_LOOKAHEAD]
            if EDITORIAL_RE.search(window) and not _is_reference_at(text, m.start()):
                candidates.append(m.start())
                break
    if not candidates:
        return None
    idx = min(candidates)
    stop = text.rfind(". ", 0, idx)
    sentence_start = max(stop + 2 if stop >= 0 else 0, text.rfind("\n", 0, idx) + 1)
    if sentence_start < idx and JURISDICTION_RE.search(text, sentence_start, idx):
        idx = sentence_start
    return idx


def _label_index(rows: Iterable[UnitRow]) -> dict[str, str]:
    """First anchor per label among non-variation rows."""
    index: dict[str, str] = {}
    for row in rows:
        if row.unit_label and row.unit_type not in JURISDICTION_TYPES:
            index.setdefault(row.unit_label, row.anchor_id)
    return index


def _variation_row(
    source: UnitRow,
    target: VariationTarget,
    *,
    action: str,
    text: str,
    registry: AnchorRegistry,
    index: dict[str, str],
    tags: Sequence[str],
) -> UnitRow:
    full = target.full_label
    affects = index.get(full) or index.get(target.label, "")
    warnings = [*tags]
    if not affects:
        warnings.append(f"UNRESOLVED_AFFECTS_ANCHOR:{full}")
        log.debug("No base unit found for %s %s", target.state, full)
    anchor = registry.assign(anchor_base(
        source.volume, source.path, "STATE_VARIATION", f"{target.state}_{full}",
    ))
    row = retype(
        source,
        "STATE_VARIATION",
        anchor_id=anchor,
        unit_label=f"{target.state} {full}",
        title=f"{target.state} {full}",
        text=text,
        raw_text=text,
        notes="",
        exceptions="",
        applies_state=target.state,
        variation_action=action,
        affected_unit_label=full,
        affected_subparts=target.subpart,
        affects_anchor_id=affects,
        base_unit_label=target.label,
        internal_refs=(),
        asset_type="NONE",
        asset_caption="",
        asset_id="",
        warnings=(),
    )
    return row.with_warning(*warnings)


def _scan_text(text: str, options: PipelineOptions) -> str:
    return text[:options.max_scan_chars]


def _is_candidate(row: UnitRow) -> bool:
    return row.unit_type not in _SKIP_TYPES and bool(row.text)


# ---------------------------------------------------------------------------
# Pass 1: instruction-pack isolation
# ---------------------------------------------------------------------------


def isolate_instruction_packs(
    rows: Sequence[UnitRow],
    registry: AnchorRegistry,
    options: PipelineOptions,
) -> list[UnitRow]:
    """Split editorial jurisdiction instructions out of national bodies."""
    out: list[UnitRow] = []
    split = 0
    for row in rows:
        text = _scan_text(row.text, options)
        if not (_is_candidate(row) and has_jurisdiction(text) and EDITORIAL_RE.search(text)):
            out.append(row)
            continue
        idx = find_instruction_start(text)
        if idx is None:
            out.append(row)
            continue
        base_text = normalize_whitespace(row.text[:idx])
        instruction = normalize_whitespace(row.text[idx:])
        state_match = JURISDICTION_RE.search(instruction)
        amendment_fields = {
            "text": instruction,
            "raw_text": instruction,
            "applies_state": state_match.group(1) if state_match else "",
            "affected_unit_label": row.unit_label,
        }
        tag = "STATE_INSTRUCTION_EXTRACTED_FROM_BASE"
        if not base_text and not (row.unit_label or row.title or row.notes):
            # Nothing national left: the row is the instruction.
            out.append(retype(row, "STATE_VARIATION_AMENDMENT", **amendment_fields).with_warning(tag))
            split += 1
            continue
        base = replace(row, text=base_text, raw_text=base_text).with_rag_text()
        anchor = registry.assign(anchor_base(
            row.volume, row.path, "STATE_VARIATION_AMENDMENT",
            f"{row.unit_label or 'P'}_{row.para_start}",
        ))
        amendment = retype(
            row,
            "STATE_VARIATION_AMENDMENT",
            anchor_id=anchor,
            unit_label="",
            title="",
            notes="",
            exceptions="",
            warnings=(),
            **amendment_fields,
        )
        out.append(base.with_warning(tag))
        out.append(amendment.with_warning(tag))
        split += 1
    log.info("Instruction-pack isolation: split %d rows", split)
    return out


# ---------------------------------------------------------------------------
# Pass 2: amendment atomization
# ---------------------------------------------------------------------------


def atomize_amendments(
    rows: Sequence[UnitRow],
    registry: AnchorRegistry,
    options: PipelineOptions,
) -> list[UnitRow]:
    """Replace each amendment row with one STATE_VARIATION row per target."""
    index = _label_index(rows)
    out: list[UnitRow] = []
    emitted = 0
    for row in rows:
        if row.unit_type != "STATE_VARIATION_AMENDMENT":
            out.append(row)
            continue
        text = _scan_text(row.raw_text or row.text, options)
        targets = extract_targets(
            text,
            default_state=row.applies_state,
            max_matches=options.max_matches_per_unit,
        )
        if not targets:
            out.append(row if row.affected_unit_label else row.with_warning("AMENDMENT_TARGET_NOT_FOUND"))
            continue
        registry.release(row.anchor_id)
        whole_action = parse_action(text)
        lead = text[:targets[0].start]
        for i, target in enumerate(targets):
            end = targets[i + 1].start if i + 1 < len(targets) else len(text)
            body = text[target.start:end]
            action = parse_action(body) if has_modification_language(body) else whole_action
            segment = normalize_whitespace(lead + body) or text
            out.append(_variation_row(
                row, target,
                action=action,
                text=segment,
                registry=registry,
                index=index,
                tags=(*row.warnings, "STATE_VARIATION_SPLIT"),
            ))
            emitted += 1
    log.info("Amendment atomization: emitted %d STATE_VARIATION rows", emitted)
    return out


# ---------------------------------------------------------------------------
# Pass 3: embedded-marker extraction
# ---------------------------------------------------------------------------


def _subpart_replacements(
    row: UnitRow,
    text: str,
    options: PipelineOptions,
) -> list[tuple[int, int, str, str]]:
    """``STATE <own label>(n) (n) ...`` blocks as (start, end, state, subpart)."""
    if not row.unit_label:
        return []
    pattern = re.compile(
        rf"\b({STATE_ALT})\s+{re.escape(row.unit_label)}\s?\((\d+)\)\s*\(\2\)"
    )
    hits = list(pattern.finditer(text))[:options.max_matches_per_unit]
    blocks: list[tuple[int, int, str, str]] = []
    for i, m in enumerate(hits):
        end = hits[i + 1].start() if i + 1 < len(hits) else len(text)
        blocks.append((m.start(), end, m.group(1), f"({m.group(2)})"))
    return blocks


def extract_embedded_markers(
    rows: Sequence[UnitRow],
    registry: AnchorRegistry,
    options: PipelineOptions,
) -> list[UnitRow]:
    """Lift inline jurisdiction amendments out of flagged national rows."""
    index = _label_index(rows)
    out: list[UnitRow] = []
    extracted = 0
    for row in rows:
        if not (_is_candidate(row) and "STATE_VARIATION_EMBEDDED" in row.warnings):
            out.append(row)
            continue
        text = _scan_text(row.text, options)
        spawned: list[UnitRow] = []

        blocks = _subpart_replacements(row, text, options)
        if blocks:
            base_text = text[:blocks[0][0]]
            for start, end, state, subpart in blocks:
                target = VariationTarget(start, state, row.unit_label, subpart)
                spawned.append(_variation_row(
                    row, target,
                    action="REPLACE",
                    text=normalize_whitespace(text[start:end]),
                    registry=registry,
                    index=index,
                    tags=("STATE_VARIATION_EMBEDDED",),
                ))
        else:
            kept: list[str] = []
            for line in text.split("\n"):
                if (
                    not has_jurisdiction(line)
                    or is_reference_only(line)
                    or not has_modification_language(line)
                ):
                    kept.append(line)
                    continue
                targets = extract_targets(
                    line,
                    default_state=row.applies_state,
                    max_matches=options.max_matches_per_unit,
                )
                if not targets and row.unit_label:
                    state = next(
                        (m.group(1) for m in JURISDICTION_RE.finditer(line)
                         if not _is_reference_at(line, m.start())),
                        "",
                    )
                    if state:
                        targets = [VariationTarget(
                            0, state, base_label_of(row.unit_label) or row.unit_label,
                        )]
                if not targets:
                    kept.append(line)
                    continue
                action = parse_action(line)
                for target in targets:
                    spawned.append(_variation_row(
                        row, target,
                        action=action,
                        text=normalize_whitespace(line),
                        registry=registry,
                        index=index,
                        tags=("STATE_VARIATION_EMBEDDED",),
                    ))
                kept.append(PLACEHOLDER)
            base_text = "\n".join(kept)

        if not spawned:
            out.append(row)
            continue
        base_text = normalize_whitespace(base_text + row.text[len(text):])
        out.append(replace(row, text=base_text, raw_text=base_text).with_rag_text())
        out.extend(spawned)
        extracted += len(spawned)
    log.info("Embedded-marker extraction: emitted %d STATE_VARIATION rows", extracted)
    return out


# ---------------------------------------------------------------------------
# Pass 4: instruction-only insert sweep
# ---------------------------------------------------------------------------


def sweep_instruction_only_inserts(
    rows: Sequence[UnitRow],
    registry: AnchorRegistry,
    options: PipelineOptions,
) -> list[UnitRow]:
    """Emit payload-less INSERT rows for uncaptured "Insert subclause" phrasing."""
    index = _label_index(rows)
    existing = {
        (r.applies_state, r.affected_unit_label)
        for r in rows if r.unit_type == "STATE_VARIATION"
    }
    out: list[UnitRow] = []
    swept = 0
    for row in rows:
        out.append(row)
        if row.unit_type in _SKIP_TYPES:
            continue
        haystack = _scan_text("\n".join(p for p in (row.text, row.notes, row.raw_text) if p), options)
        for m in list(_INSERT_SUBCLAUSE_RE.finditer(haystack))[:options.max_matches_per_unit]:
            state = m.group(1)
            label = m.group(2) + (m.group(3) or "")
            subpart = f"({m.group(4)})"
            if (state, f"{label}{subpart}") in existing:
                continue
            existing.add((state, f"{label}{subpart}"))
            target = VariationTarget(m.start(), state, label, subpart)
            out.append(_variation_row(
                row, target,
                action="INSERT",
                text=normalize_whitespace(m.group(0)),
                registry=registry,
                index=index,
                tags=("INSTRUCTION_ONLY_INSERT",),
            ))
            swept += 1
    log.info("Instruction-only insert sweep: emitted %d rows", swept)
    return out


def extract_variations(
    rows: Sequence[UnitRow],
    registry: AnchorRegistry,
    options: PipelineOptions,
) -> list[UnitRow]:
    """Run passes 1-4 in order."""
    staged = isolate_instruction_packs(rows, registry, options)
    staged = atomize_amendments(staged, registry, options)
    staged = extract_embedded_markers(staged, registry, options)
    return sweep_instruction_only_inserts(staged, registry, options)


def unextracted_instruction_rows(rows: Iterable[UnitRow]) -> list[UnitRow]:
    """Non-variation rows whose body still carries an amendment instruction."""
    leaked: list[UnitRow] = []
    for row in rows:
        if not _is_candidate(row):
            continue
        if (
            any(
                not _is_reference_at(row.text, m.start())
                for m in STATE_MARKER_RE.finditer(row.text)
            )
            and has_modification_language(row.text)
            and not is_reference_only(row.text)
        ):
            leaked.append(row)
    return leaked


__all__ = [
    "PLACEHOLDER",
    "VariationTarget",
    "atomize_amendments",
    "base_label_of",
    "extract_embedded_markers",
    "extract_targets",
    "extract_variations",
    "find_instruction_start",
    "isolate_instruction_packs",
    "parse_action",
    "sweep_instruction_only_inserts",
    "unextracted_instruction_rows",
]
