"""Engineering-fact mining: formulas, numeric constants, performance criteria.

Every pattern runs over a bounded window of each row's text
(``PipelineOptions.fact_window_chars``) with a per-row match cap, so a
pathological body costs at most a fixed amount of regex work.  Criteria
are only mined from rows whose window is at most
``criteria_window_chars`` long.

Each distinct fact becomes its own derived row (CALCULATION_RULE,
CONSTANT, PERFORMANCE_CRITERION) inserted directly after its source row.
Facts are deduplicated build-wide.  The first fact of each kind is also
recorded on the source row itself.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field, replace

from ncc_units.anchors import AnchorRegistry
from ncc_units.unit_types import (
    DECISION_TYPES,
    JURISDICTION_TYPES,
    STRUCTURAL_TYPES,
    Criterion,
    Formula,
    PipelineOptions,
    UnitRow,
    retype,
)

log = logging.getLogger(__name__)

MIN_FACT_TEXT = 10

_SKIP_TYPES: frozenset[str] = frozenset(STRUCTURAL_TYPES + JURISDICTION_TYPES + DECISION_TYPES)

# "Area = Length x Width", "R = 1/U"
_FORMULA_RE = re.compile(
    r"\b([A-Z][A-Za-z]*(?:[ \t][A-Z][A-Za-z]*){0,3})\s*=\s*([^.!?\n]{1,200})"
)
_VARIABLE_RE = re.compile(r"\b([A-Z][A-Za-z]*)\b")

# "minimum height of 2.4 m"
_CONSTANT_RE = re.compile(
    r"\b(minimum|maximum|not less than|not more than|at least|at most)\s+"
    r"([a-z]+(?:\s[a-z]+){0,5})\s+of\s+(\d+(?:\.\d+)?)\s*([a-z]+)",
    re.IGNORECASE,
)

# "U-value not exceeding 0.5 W/m2.K"
_CRITERION_RE = re.compile(
    r"\b([A-Za-z]+(?:-[A-Za-z]+)?(?:\s+[A-Za-z]+)?)\s+"
    r"(not\s+exceeding|not\s+more\s+than|not\s+greater\s+than|not\s+less\s+than|≤|≥)\s+"
    r"(\d+(?:\.\d+)?)\s*([a-zA-Z²³/%]+)?",
    re.IGNORECASE,
)

_AT_MOST_RE = re.compile(r"exceeding|more|greater|≤", re.IGNORECASE)


def criterion_operator(phrase: str) -> str:
    """``"not greater than"`` is an upper bound like ``"not exceeding"``."""
    return "≤" if _AT_MOST_RE.search(phrase) else "≥"


def _fact_key(value: str) -> str:
    return re.sub(r"\s+", "_", value.strip()).upper()


# ---------------------------------------------------------------------------
# Mining
# ---------------------------------------------------------------------------


def find_formulas(text: str, max_matches: int = 50) -> list[Formula]:
    found: list[Formula] = []
    for m in _FORMULA_RE.finditer(text):
        if len(found) >= max_matches:
            break
        output = m.group(1).strip()
        expression = m.group(2).strip()
        if not expression:
            continue
        inputs: dict[str, None] = {}
        for v in _VARIABLE_RE.findall(expression):
            if v != output:
                inputs.setdefault(v, None)
        found.append(Formula(formula=f"{output} = {expression}", inputs=tuple(inputs), output=output))
    return found


def find_constants(text: str, max_matches: int = 50) -> list[tuple[str, str]]:
    """``[(name, value)]``, e.g. ``("MINIMUM_HEIGHT", "2.4m")``."""
    found: list[tuple[str, str]] = []
    for m in _CONSTANT_RE.finditer(text):
        if len(found) >= max_matches:
            break
        name = f"{_fact_key(m.group(1))}_{_fact_key(m.group(2))}"
        found.append((name, f"{m.group(3)}{m.group(4)}"))
    return found


def find_criteria(text: str, max_matches: int = 10) -> list[Criterion]:
    found: list[Criterion] = []
    for m in _CRITERION_RE.finditer(text):
        if len(found) >= max_matches:
            break
        found.append(Criterion(
            metric=m.group(1).strip(),
            operator=criterion_operator(m.group(2)),
            threshold=m.group(3),
            unit=(m.group(4) or "").strip(),
        ))
    return found


def criterion_text(c: Criterion) -> str:
    return f"{c.metric} {c.operator} {c.threshold}{' ' + c.unit if c.unit else ''}"


# ---------------------------------------------------------------------------
# Pass
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _Seen:
    formulas: set[str] = field(default_factory=set[str])
    constants: set[tuple[str, str]] = field(default_factory=set[tuple[str, str]])
    criteria: set[str] = field(default_factory=set[str])


def _derived(
    source: UnitRow,
    unit_type: str,
    key: str,
    registry: AnchorRegistry,
    *,
    pathway: str,
    **values: object,
) -> UnitRow:
    return retype(
        source,
        unit_type,
        anchor_id=registry.child(source.anchor_id, key),
        parent_anchor_id=source.anchor_id,
        unit_label=key,
        title="",
        notes="",
        exceptions="",
        raw_text=str(values.get("text", "")),
        compliance_weight="MANDATORY",
        normative_status="NORMATIVE",
        pathway=pathway,
        asset_type="NONE",
        asset_id="",
        asset_caption="",
        asset_alt_text="",
        table_grid=None,
        internal_refs=(),
        warnings=(),
        **values,
    )


def _mine_row(
    row: UnitRow,
    registry: AnchorRegistry,
    options: PipelineOptions,
    seen: _Seen,
) -> tuple[UnitRow, list[UnitRow]]:
    full = " ".join(p for p in (row.title, row.text, row.notes) if p)
    if len(full) < MIN_FACT_TEXT:
        return row, []
    window = full[:options.fact_window_chars]
    cap = options.max_matches_per_unit
    spawned: list[UnitRow] = []
    updates: dict[str, object] = {}

    for f in find_formulas(window, cap):
        if f.formula in seen.formulas:
            continue
        seen.formulas.add(f.formula)
        updates.setdefault("formula", f)
        spawned.append(_derived(
            row, "CALCULATION_RULE", f"FORMULA_{_fact_key(f.output)}", registry,
            pathway=row.pathway or "DTS", text=f.formula, formula=f,
        ))

    for name, value in find_constants(window, cap):
        if (name, value) in seen.constants:
            continue
        seen.constants.add((name, value))
        updates.setdefault("constant_name", name)
        updates.setdefault("constant_value", value)
        spawned.append(_derived(
            row, "CONSTANT", f"CONSTANT_{name}", registry,
            pathway=row.pathway or "DTS",
            text=f"{name.replace('_', ' ')} = {value}",
            constant_name=name,
            constant_value=value,
        ))

    if len(window) <= options.criteria_window_chars:
        for c in find_criteria(window, options.max_criteria_per_unit):
            text = criterion_text(c)
            if text in seen.criteria:
                continue
            seen.criteria.add(text)
            updates.setdefault("criterion", c)
            spawned.append(_derived(
                row, "PERFORMANCE_CRITERION", f"CRITERION_{_fact_key(c.metric)}", registry,
                pathway="PERFORMANCE", text=text, criterion=c,
            ))

    if not updates:
        return row, spawned
    return replace(row, **updates), spawned


def extract_engineering_facts(
    rows: Sequence[UnitRow],
    registry: AnchorRegistry,
    options: PipelineOptions,
) -> list[UnitRow]:
    """Insert derived fact rows after their source rows."""
    seen = _Seen()
    for row in rows:
        if row.unit_type == "PERFORMANCE_CRITERION" and row.text:
            seen.criteria.add(row.text)
    out: list[UnitRow] = []
    counts = {"CALCULATION_RULE": 0, "CONSTANT": 0, "PERFORMANCE_CRITERION": 0}
    for row in rows:
        if row.unit_type in _SKIP_TYPES:
            out.append(row)
            continue
        mined, spawned = _mine_row(row, registry, options, seen)
        out.append(mined)
        out.extend(spawned)
        for s in spawned:
            counts[s.unit_type] += 1
    log.info(
        "Engineering facts: %d formulas, %d constants, %d criteria",
        counts["CALCULATION_RULE"], counts["CONSTANT"], counts["PERFORMANCE_CRITERION"],
    )
    return out
