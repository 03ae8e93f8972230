"""Build-level invariant checks.

Fatal checks (any violation raises :class:`QualityGateError`):

- a Part/Section/Volume/Introduction heading line inside a DTS,
  Performance Requirement or Verification Method body
- an empty body on a core clause type after recovery
- a row whose internal references include its own label
- a STATE_VARIATION without a base label

Un-extracted jurisdiction instructions left in national text are
reported as a build warning, or fail the build when
``PipelineOptions.leakage_severity == "fail"``.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from ncc_units.labels import is_boundary_line
from ncc_units.unit_types import (
    CORE_TEXT_TYPES,
    PipelineOptions,
    QualityGateError,
    UnitRow,
)
from ncc_units.variations import unextracted_instruction_rows

log = logging.getLogger(__name__)

HEADING_LEAK_TYPES: frozenset[str] = frozenset({
    "DTS_PROVISION", "PERFORMANCE_REQUIREMENT", "VERIFICATION_METHOD",
})
MAX_LABELS_PER_MESSAGE = 20


@dataclass(frozen=True, slots=True)
class GateReport:
    rows: tuple[UnitRow, ...]
    warnings: tuple[str, ...]


def _name(row: UnitRow) -> str:
    return row.unit_label or row.anchor_id


def _labels(rows: Sequence[UnitRow]) -> str:
    names = [_name(r) for r in rows[:MAX_LABELS_PER_MESSAGE]]
    more = len(rows) - len(names)
    return ", ".join(names) + (f" (+{more} more)" if more > 0 else "")


def heading_leaks(rows: Sequence[UnitRow]) -> list[UnitRow]:
    return [
        r for r in rows
        if r.unit_type in HEADING_LEAK_TYPES
        and any(is_boundary_line(line) for line in r.text.split("\n") if line.strip())
    ]


def empty_core_bodies(rows: Sequence[UnitRow]) -> list[UnitRow]:
    return [r for r in rows if r.unit_type in CORE_TEXT_TYPES and not r.text.strip()]


def self_references(rows: Sequence[UnitRow]) -> list[UnitRow]:
    return [r for r in rows if r.unit_label and r.unit_label in r.internal_refs]


def unlinked_variations(rows: Sequence[UnitRow]) -> list[UnitRow]:
    return [r for r in rows if r.unit_type == "STATE_VARIATION" and not r.base_unit_label]


def _has_payload(row: UnitRow) -> bool:
    return any((row.title, row.text, row.notes, row.exceptions, row.asset_alt_text))


def run_quality_gate(rows: Sequence[UnitRow], options: PipelineOptions) -> GateReport:
    """Check *rows*; return them tagged, plus build warnings, or raise."""
    violations: list[str] = []
    checks = (
        ("Heading phrase inside clause body", heading_leaks(rows)),
        ("Empty body text on core clause", empty_core_bodies(rows)),
        ("Internal references include own label", self_references(rows)),
        ("STATE_VARIATION without base label", unlinked_variations(rows)),
    )
    for message, offenders in checks:
        if offenders:
            violations.append(f"{message}: {_labels(offenders)}")

    warnings: list[str] = []
    leaked = unextracted_instruction_rows(rows)
    if leaked:
        message = f"UNEXTRACTED_STATE_INSTRUCTIONS:{len(leaked)}"
        if options.leakage_severity == "fail":
            violations.append(f"Un-extracted jurisdiction instructions: {_labels(leaked)}")
        else:
            log.warning("%s (%s)", message, _labels(leaked))
            warnings.append(message)

    if violations:
        for v in violations:
            log.error("Quality gate: %s", v)
        raise QualityGateError(violations)

    out: list[UnitRow] = []
    empty = 0
    for row in rows:
        if not _has_payload(row):
            row = row.with_warning("EMPTY_RAG_TEXT")
            empty += 1
        out.append(row)
    if empty:
        warnings.append(f"EMPTY_RAG_TEXT:{empty}")
    return GateReport(rows=tuple(out), warnings=tuple(warnings))
