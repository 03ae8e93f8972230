"""Decision-oriented derived units and pathway links.

- SCOPE_SUMMARY rows from "Volume One applies to Class 2 to 9 buildings"
  statements in introductory text.
- PATHWAY_SELECTION rows from Part A2 compliance statements ("Deemed-to-
  Satisfy Provisions satisfy the Performance Requirements", "Verification
  Methods are alternatives ...").
- ``satisfies_pr_ids`` / ``verification_method_for`` on DTS and VM rows
  that cite a Performance Requirement.
- ``applies_to_class`` and ``volume_hierarchy`` backfill.

Derived rows are inserted directly after the row they came from and are
parented to it.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import replace

from ncc_units.anchors import AnchorRegistry
from ncc_units.refs import building_classes
from ncc_units.unit_types import UnitRow, retype

log = logging.getLogger(__name__)

_VOLUME_CODES: dict[str, str] = {"one": "V1", "two": "V2", "three": "V3"}

_SCOPE_RE = re.compile(
    r"\b(?:NCC\s+)?Volume\s+(One|Two|Three)\s+(?:applies\s+to|governs|covers?)\s+"
    r"((?:Class(?:es)?\s+[^.!?]+)|(?:buildings?[^.!?]*))",
    re.IGNORECASE,
)
_SCOPE_SOURCE_TYPES: frozenset[str] = frozenset({"INTRODUCTION", "INTRODUCTORY_PROVISION", "OTHER"})

_DTS_SATISFIES_RE = re.compile(
    r"\b(?:Deemed-to-Satisfy|DTS)\s+Provisions?\b[^.!?]{0,80}?\bsatisf(?:y|ies)\b", re.IGNORECASE,
)
_VM_ALTERNATIVE_RE = re.compile(
    r"\bVerification\s+Methods?\b[^.!?]{0,80}?\balternatives?\b", re.IGNORECASE,
)
_PATHWAY_SOURCE_TYPES: frozenset[str] = frozenset({
    "GOVERNING_REQUIREMENT", "INTRODUCTORY_PROVISION", "OTHER",
})
_PR_LABEL_RE = re.compile(r"^[A-Z]{1,2}\d+P\d+[A-Z]?$")
_CLASS_SOURCE_TYPES: frozenset[str] = frozenset({
    "HEADING", "PART", "SUBPART", "SECTION",
    "DTS_PROVISION", "PERFORMANCE_REQUIREMENT", "SPECIFICATION_CLAUSE",
})

PRIMARY_TYPES: frozenset[str] = frozenset({
    "SCOPE_SUMMARY", "PATHWAY_SELECTION", "GOVERNING_REQUIREMENT",
})


def _full_text(row: UnitRow) -> str:
    return " ".join(p for p in (row.title, row.text) if p)


def _decision_row(source: UnitRow, unit_type: str, key: str, registry: AnchorRegistry, **values: object) -> UnitRow:
    return retype(
        source,
        unit_type,
        anchor_id=registry.child(source.anchor_id, key),
        parent_anchor_id=source.anchor_id,
        unit_label=key,
        title="",
        notes="",
        exceptions="",
        compliance_weight="MANDATORY",
        normative_status="NORMATIVE",
        volume_hierarchy="PRIMARY",
        internal_refs=(),
        warnings=(),
        **values,
    )


def scope_summary(source: UnitRow, registry: AnchorRegistry) -> UnitRow | None:
    if source.unit_type not in _SCOPE_SOURCE_TYPES:
        return None
    m = _SCOPE_RE.search(_full_text(source))
    if m is None:
        return None
    vol = _VOLUME_CODES[m.group(1).lower()]
    scope = m.group(2).strip()
    text = f"IF building is {scope} THEN Volume {m.group(1).title()} applies"
    return _decision_row(
        source, "SCOPE_SUMMARY", f"SCOPE_{vol}", registry,
        text=text,
        raw_text=m.group(0),
        pathway="OBJECTIVE",
        applies_to_volume=vol,
        applies_to_class=building_classes(scope),
        scope_conditions=f"IF building is {scope} THEN applies_to_volume={vol}",
    )


def _in_part_a2(row: UnitRow) -> bool:
    return "Part A2" in row.path or row.unit_label.startswith("A2")


def pathway_selections(source: UnitRow, registry: AnchorRegistry) -> list[UnitRow]:
    if source.unit_type not in _PATHWAY_SOURCE_TYPES or not _in_part_a2(source):
        return []
    text = _full_text(source)
    out: list[UnitRow] = []
    if _DTS_SATISFIES_RE.search(text):
        out.append(_decision_row(
            source, "PATHWAY_SELECTION", "PATHWAY_DTS", registry,
            text="IF Deemed-to-Satisfy Solution selected THEN DTS Provisions satisfy Performance Requirements",
            raw_text=text,
            pathway="DTS",
            scope_conditions="IF pathway=DTS THEN satisfies=all_performance_requirements",
        ))
    if _VM_ALTERNATIVE_RE.search(text):
        out.append(_decision_row(
            source, "PATHWAY_SELECTION", "PATHWAY_VM", registry,
            text="IF Verification Method selected THEN it is an alternative to DTS Provisions",
            raw_text=text,
            pathway="VERIFICATION",
            scope_conditions="IF pathway=VERIFICATION THEN alternative_to=DTS",
        ))
    return out


def _link_pathways(row: UnitRow, pr_anchors: dict[str, str]) -> UnitRow:
    if row.unit_type not in ("DTS_PROVISION", "VERIFICATION_METHOD"):
        return row
    cited = [ref for ref in row.internal_refs if ref in pr_anchors]
    if not cited:
        return row
    values: dict[str, object] = {"satisfies_pr_ids": tuple(pr_anchors[ref] for ref in cited)}
    if row.unit_type == "VERIFICATION_METHOD":
        values["verification_method_for"] = tuple(cited)
    return replace(row, **values)


def _backfill(row: UnitRow) -> UnitRow:
    values: dict[str, object] = {}
    if not row.applies_to_class and row.unit_type in _CLASS_SOURCE_TYPES:
        classes = building_classes(_full_text(row))
        if classes:
            values["applies_to_class"] = classes
    if not row.volume_hierarchy:
        if row.unit_type in PRIMARY_TYPES:
            values["volume_hierarchy"] = "PRIMARY"
        elif row.unit_type == "STATE_VARIATION":
            values["volume_hierarchy"] = "SECONDARY"
    return replace(row, **values) if values else row


def derive_decisions(rows: Sequence[UnitRow], registry: AnchorRegistry) -> list[UnitRow]:
    """Insert scope/pathway rows and fill pathway links and scope fields."""
    pr_anchors: dict[str, str] = {}
    for row in rows:
        if row.unit_type == "PERFORMANCE_REQUIREMENT" and _PR_LABEL_RE.match(row.unit_label):
            pr_anchors.setdefault(row.unit_label, row.anchor_id)

    out: list[UnitRow] = []
    derived = 0
    for row in rows:
        row = _backfill(_link_pathways(row, pr_anchors))
        out.append(row)
        extra: list[UnitRow] = []
        summary = scope_summary(row, registry)
        if summary is not None:
            extra.append(summary)
        extra.extend(pathway_selections(row, registry))
        out.extend(_backfill(r) for r in extra)
        derived += len(extra)
    log.info("Decision units: derived %d rows, %d performance requirements indexed", derived, len(pr_anchors))
    return out
