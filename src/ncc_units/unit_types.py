"""Core types for the unit-extraction pipeline.

Every stage shares these types.  Rows are immutable once built: passes
derive new rows with ``dataclasses.replace`` rather than mutating.

Type hierarchy:
  BuildConfig      - Per-document identity (doc id, volume, jurisdiction)
  PipelineOptions  - Tunables: chunk bounds, scan caps, leakage severity
  TableGrid        - Structured header + data rows for a TABLE unit
  Formula          - "Variable = expression" payload
  Criterion        - Normalized performance threshold payload
  UnitRow          - The sole output entity (one row of the unit table)
  BuildResult      - Ordered rows plus build-level warnings
  QualityGateError - Build-fatal invariant violation
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any

import orjson

from ncc_units.html_utils import normalize_whitespace

# ---------------------------------------------------------------------------
# Unit type vocabulary
# ---------------------------------------------------------------------------

STRUCTURAL_TYPES: tuple[str, ...] = (
    "VOLUME", "SECTION", "PART", "SUBPART", "APPENDIX",
    "SPECIFICATION", "SCHEDULE", "HEADING",
)
NORMATIVE_TYPES: tuple[str, ...] = (
    "GOVERNING_REQUIREMENT", "OBJECTIVE", "FUNCTIONAL_STATEMENT",
    "PERFORMANCE_REQUIREMENT", "VERIFICATION_METHOD", "DTS_PROVISION",
    "SPECIFICATION_CLAUSE",
)
INFORMATIVE_TYPES: tuple[str, ...] = (
    "NOTE", "EXCEPTION", "EXPLANATORY_INFORMATION", "INTRODUCTION",
    "INTRODUCTORY_PROVISION", "APPLICATION", "TABLE_NOTE",
)
ASSET_TYPES: tuple[str, ...] = ("TABLE", "TABLE_ROW", "FIGURE")
JURISDICTION_TYPES: tuple[str, ...] = ("STATE_VARIATION", "STATE_VARIATION_AMENDMENT")
DECISION_TYPES: tuple[str, ...] = (
    "SCOPE_SUMMARY", "PATHWAY_SELECTION", "CALCULATION_RULE",
    "CONSTANT", "PERFORMANCE_CRITERION",
)

UNIT_TYPES: frozenset[str] = frozenset(
    STRUCTURAL_TYPES
    + NORMATIVE_TYPES
    + INFORMATIVE_TYPES
    + ASSET_TYPES
    + JURISDICTION_TYPES
    + DECISION_TYPES
    + ("OTHER",)
)

# Types that must carry body text once every recovery pass has run.
CORE_TEXT_TYPES: frozenset[str] = frozenset({
    "PERFORMANCE_REQUIREMENT", "DTS_PROVISION", "SPECIFICATION_CLAUSE",
})

VARIATION_ACTIONS: frozenset[str] = frozenset({
    "DELETE", "INSERT", "REPLACE", "NOT_APPLICABLE", "AMEND_PART",
})

# Eight state/territory codes.
JURISDICTIONS: tuple[str, ...] = ("ACT", "NSW", "NT", "QLD", "SA", "TAS", "VIC", "WA")

LEAKAGE_SEVERITIES: frozenset[str] = frozenset({"warn", "fail"})


# ---------------------------------------------------------------------------
# Build configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class BuildConfig:
    """Identity fields stamped onto every row of one build."""
    doc_id: str
    volume: str = ""              # e.g. "V1"
    state_variation: str = ""     # "" for national text
    version_date: str = ""        # e.g. "NCC 2022"
    source_file: str = ""

    def __post_init__(self) -> None:
        if not self.doc_id:
            raise ValueError("doc_id must be non-empty")
        if self.state_variation and self.state_variation not in JURISDICTIONS:
            raise ValueError(
                f"state_variation must be one of {JURISDICTIONS}, "
                f"got {self.state_variation!r}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BuildConfig:
        """Build from a mapping (e.g. a JSON config file); unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown BuildConfig keys: {unknown}")
        return cls(**{k: str(v) for k, v in data.items()})


@dataclass(frozen=True, slots=True)
class PipelineOptions:
    """Tunable bounds for chunking and the regex-driven passes."""
    max_words: int = 600
    min_words: int = 200
    leakage_severity: str = "warn"      # "warn" | "fail"
    max_scan_chars: int = 20_000        # jurisdiction-marker scan window
    max_matches_per_unit: int = 50
    fact_window_chars: int = 3_000      # formula/constant window
    criteria_window_chars: int = 1_500  # criteria skipped above this
    max_criteria_per_unit: int = 10

    def __post_init__(self) -> None:
        if not 0 < self.min_words < self.max_words:
            raise ValueError(
                f"require 0 < min_words < max_words, got "
                f"min_words={self.min_words}, max_words={self.max_words}"
            )
        if self.leakage_severity not in LEAKAGE_SEVERITIES:
            raise ValueError(
                f"leakage_severity must be one of {sorted(LEAKAGE_SEVERITIES)}, "
                f"got {self.leakage_severity!r}"
            )


# ---------------------------------------------------------------------------
# Structured payloads
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class TableGrid:
    """Header row plus data rows; every data row has ``len(headers)`` cells."""
    headers: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]

    def to_dict(self) -> dict[str, Any]:
        return {"headers": list(self.headers), "rows": [list(r) for r in self.rows]}


@dataclass(frozen=True, slots=True)
class Formula:
    formula: str
    inputs: tuple[str, ...]
    output: str

    def to_dict(self) -> dict[str, Any]:
        return {"formula": self.formula, "inputs": list(self.inputs), "output": self.output}


@dataclass(frozen=True, slots=True)
class Criterion:
    metric: str
    operator: str                 # "≤" | "≥"
    threshold: str
    unit: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "operator": self.operator,
            "threshold": self.threshold,
            "unit": self.unit,
        }


# ---------------------------------------------------------------------------
# UnitRow - the output entity
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class UnitRow:
    """One row of the unit table.

    Tuple-valued fields are sets in spirit but kept ordered (first-seen
    order) so repeated builds serialize identically.
    """
    # Identity
    doc_id: str
    volume: str
    state_variation: str
    version_date: str
    source_file: str
    # Navigation
    anchor_id: str
    path: str = ""
    parent_anchor_id: str = ""
    order_in_parent: int = 0
    para_start: int = 0
    para_end: int = 0
    # Semantics
    unit_type: str = "OTHER"
    unit_label: str = ""
    compliance_weight: str = "NON_MANDATORY"
    pathway: str = ""
    normative_status: str = "INFORMATIVE"
    conditionality: str = "ALWAYS"
    heading_context: str = ""
    volume_hierarchy: str = ""
    # Text payload
    title: str = ""
    text: str = ""
    raw_text: str = ""
    notes: str = ""
    exceptions: str = ""
    rag_text: str = ""
    # Cross-references
    internal_refs: tuple[str, ...] = ()
    external_refs: tuple[str, ...] = ()
    satisfies_pr_ids: tuple[str, ...] = ()
    verification_method_for: tuple[str, ...] = ()
    # Asset metadata
    asset_type: str = "NONE"      # NONE | IMAGE | TABLE
    asset_id: str = ""
    asset_caption: str = ""
    asset_alt_text: str = ""
    table_grid: TableGrid | None = None
    table_id: str = ""
    table_label: str = ""
    table_purpose: str = ""
    table_key_values: tuple[str, ...] = ()
    # Jurisdiction amendment
    applies_state: str = ""
    variation_action: str = ""
    affected_unit_label: str = ""
    affected_subparts: str = ""
    affected_subclause: str = ""
    affects_anchor_id: str = ""
    base_unit_label: str = ""
    # Scope
    applies_to_volume: str = ""
    applies_to_class: tuple[str, ...] = ()
    scope_conditions: str = ""
    # Quality / derived
    conditions: str = ""
    exception_clauses: str = ""
    requirements: str = ""
    standards_referenced: str = ""
    formula: Formula | None = None
    constant_name: str = ""
    constant_value: str = ""
    criterion: Criterion | None = None
    contains_shall: bool = False
    contains_must: bool = False
    extract_confidence: float = 0.0
    warnings: tuple[str, ...] = ()
    # Downstream collaborators fill these
    section_code: str = ""
    part_code: str = ""
    discipline: str = ""
    indexable: bool = True

    def __post_init__(self) -> None:
        if self.unit_type not in UNIT_TYPES:
            raise ValueError(f"unknown unit_type {self.unit_type!r}")
        if self.variation_action and self.variation_action not in VARIATION_ACTIONS:
            raise ValueError(f"unknown variation_action {self.variation_action!r}")

    def with_warning(self, *tags: str) -> UnitRow:
        """Return a copy with *tags* appended (duplicates ignored)."""
        merged = list(self.warnings)
        for tag in tags:
            if tag and tag not in merged:
                merged.append(tag)
        return replace(self, warnings=tuple(merged))

    def with_rag_text(self) -> UnitRow:
        """Return a copy whose ``rag_text`` reflects the current payload."""
        return replace(self, rag_text=compose_rag_text(self))

    def to_record(self) -> dict[str, Any]:
        """Flat record in :data:`UNIT_COLUMNS` order.

        Tuples and structured payloads become JSON strings; an absent
        payload becomes an empty string.
        """
        record: dict[str, Any] = {}
        for name in UNIT_COLUMNS:
            value = getattr(self, name)
            if isinstance(value, tuple):
                value = orjson.dumps(list(value)).decode()
            elif isinstance(value, (TableGrid, Formula, Criterion)):
                value = orjson.dumps(value.to_dict()).decode()
            elif value is None:
                value = ""
            record[name] = value
        return record


UNIT_COLUMNS: tuple[str, ...] = tuple(f.name for f in fields(UnitRow))


def compose_rag_text(row: UnitRow) -> str:
    """Synthesize the retrieval string from type, path, title, body and notes."""
    head = f"[{row.unit_type}] {row.unit_label}".rstrip()
    parts = [head]
    if row.path:
        parts.append(f"path: {row.path}")
    if row.title:
        parts.append(f"title: {row.title}")
    if row.text:
        parts.append(f"text: {row.text}")
    if row.notes:
        parts.append(f"notes: {row.notes}")
    if row.exceptions:
        parts.append(f"exceptions: {row.exceptions}")
    if row.asset_type != "NONE" and row.asset_alt_text:
        parts.append(f"asset_alt_text: {row.asset_alt_text}")
    return normalize_whitespace("\n".join(parts))


# ---------------------------------------------------------------------------
# Build result and failure
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class BuildResult:
    """Ordered rows plus build-level soft warnings."""
    rows: tuple[UnitRow, ...]
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def to_records(self) -> list[dict[str, Any]]:
        return [r.to_record() for r in self.rows]


class QualityGateError(RuntimeError):
    """Raised when a build-fatal invariant is violated; no rows are returned."""

    def __init__(self, violations: list[str]) -> None:
        self.violations: tuple[str, ...] = tuple(violations)
        super().__init__("Quality gate failed:\n" + "\n".join(f"- {v}" for v in violations))


# ---------------------------------------------------------------------------
# Row construction
# ---------------------------------------------------------------------------

_PATHWAYS: dict[str, str] = {
    "PERFORMANCE_REQUIREMENT": "PERFORMANCE",
    "DTS_PROVISION": "DTS",
    "VERIFICATION_METHOD": "VERIFICATION",
    "OBJECTIVE": "OBJECTIVE",
    "FUNCTIONAL_STATEMENT": "FUNCTIONAL",
}


def type_defaults(unit_type: str) -> dict[str, Any]:
    """Compliance weight, pathway, normative status and conditionality for a type."""
    if unit_type in ("PERFORMANCE_REQUIREMENT", "TABLE_ROW"):
        weight = "MANDATORY"
    elif unit_type in ("DTS_PROVISION", "VERIFICATION_METHOD"):
        weight = "OPTIONAL_PATHWAY"
    else:
        weight = "NON_MANDATORY"
    if unit_type == "DTS_PROVISION":
        conditionality = "IF_DTS_SELECTED"
    elif unit_type == "PERFORMANCE_CRITERION":
        conditionality = "IF_PERFORMANCE_SELECTED"
    else:
        conditionality = "ALWAYS"
    normative = unit_type in ("PERFORMANCE_REQUIREMENT", "DTS_PROVISION")
    return {
        "compliance_weight": weight,
        "pathway": _PATHWAYS.get(unit_type, ""),
        "normative_status": "NORMATIVE" if normative else "INFORMATIVE",
        "conditionality": conditionality,
    }


def make_row(config: BuildConfig, *, unit_type: str, anchor_id: str, **values: Any) -> UnitRow:
    """Build a row stamped with *config* identity and type-derived defaults."""
    merged = {**type_defaults(unit_type), **values}
    row = UnitRow(
        doc_id=config.doc_id,
        volume=config.volume,
        state_variation=config.state_variation,
        version_date=config.version_date,
        source_file=config.source_file,
        anchor_id=anchor_id,
        unit_type=unit_type,
        **merged,
    )
    return row.with_rag_text()


def retype(row: UnitRow, unit_type: str, **values: Any) -> UnitRow:
    """Copy *row* as *unit_type*, refreshing type-derived defaults."""
    merged = {**type_defaults(unit_type), **values}
    return replace(row, unit_type=unit_type, **merged).with_rag_text()
