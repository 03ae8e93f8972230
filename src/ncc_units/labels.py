"""Context and clause-label classification.

Maintains no state itself: the accumulator owns the rolling context and
passes it in.  Everything here is a deterministic pattern over a single
string, so each rule is testable against literals.

Paragraph dispatch is an ordered rule list (:data:`PARAGRAPH_RULES`);
:func:`classify_paragraph` returns the name of the first rule whose
predicate matches.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Callable
from typing import TypeAlias
from dataclasses import dataclass

from ncc_units.unit_types import JURISDICTIONS

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Context headings
# ---------------------------------------------------------------------------

CTX_OBJECTIVES = "Objectives"
CTX_FUNCTIONAL = "Functional Statements"
CTX_PERFORMANCE = "Performance Requirements"
CTX_VERIFICATION = "Verification Methods"
CTX_DTS = "Deemed-to-Satisfy Provisions"
CTX_GOVERNING = "Governing Requirements"
CTX_INTRODUCTION = "Introduction"
CTX_APPLICATION = "Application"

_CONTEXT_NAMES: dict[str, str] = {
    "objectives": CTX_OBJECTIVES,
    "objective": CTX_OBJECTIVES,
    "functional statements": CTX_FUNCTIONAL,
    "functional statement": CTX_FUNCTIONAL,
    "performance requirements": CTX_PERFORMANCE,
    "performance requirement": CTX_PERFORMANCE,
    "verification methods": CTX_VERIFICATION,
    "verification method": CTX_VERIFICATION,
    "deemed-to-satisfy provisions": CTX_DTS,
    "deemed to satisfy provisions": CTX_DTS,
    "deemed-to-satisfy provision": CTX_DTS,
    "governing requirements": CTX_GOVERNING,
    "governing requirement": CTX_GOVERNING,
    "introduction": CTX_INTRODUCTION,
    "introduction to this part": CTX_INTRODUCTION,
    "introduction to this section": CTX_INTRODUCTION,
    "introduction to this volume": CTX_INTRODUCTION,
    "application": CTX_APPLICATION,
    "applications": CTX_APPLICATION,
}

# Contexts that disambiguate a clause label's semantic type.
CONTEXT_UNIT_TYPES: dict[str, str] = {
    CTX_OBJECTIVES: "OBJECTIVE",
    CTX_FUNCTIONAL: "FUNCTIONAL_STATEMENT",
    CTX_PERFORMANCE: "PERFORMANCE_REQUIREMENT",
    CTX_VERIFICATION: "VERIFICATION_METHOD",
    CTX_DTS: "DTS_PROVISION",
    CTX_GOVERNING: "GOVERNING_REQUIREMENT",
}


def normalize_context_heading(text: str) -> str:
    """Map heading/paragraph text to a context name, or "" if not a context."""
    key = " ".join(text.lower().split()).rstrip(":").strip()
    return _CONTEXT_NAMES.get(key, "")


# ---------------------------------------------------------------------------
# Heading classification
# ---------------------------------------------------------------------------

_STRUCTURAL_HEADING_RE: re.Pattern[str] = re.compile(
    r"^((?i:SECTION|PART|SUB-?PART|VOLUME|APPENDIX|SPECIFICATION|SCHEDULE))\s+"
    r"([A-Z]?\d[A-Za-z0-9.]*|[A-Z]|One|Two|Three|ONE|TWO|THREE)\b[:\s\-–]*(.*)$"
)
_PREFIX_HEADING_RE: re.Pattern[str] = re.compile(
    r"^(SPECIFICATION|SCHEDULE)\b(?!\s+of\b)", re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class HeadingInfo:
    unit_type: str                # VOLUME | SECTION | PART | ... | HEADING
    ref: str                      # e.g. "PART A1"; "" for generic headings
    title: str

    @property
    def path_label(self) -> str:
        """Breadcrumb segment: ``"REF: title"``, the title, or the bare ref."""
        if self.ref and self.title:
            return f"{self.ref}: {self.title}"
        return self.title or self.ref


def classify_heading(text: str) -> HeadingInfo:
    """Classify heading text into a structural type with ref and title."""
    text = text.strip()
    m = _STRUCTURAL_HEADING_RE.match(text)
    if m:
        kind = m.group(1).upper().replace("-", "")
        ref = f"{kind} {m.group(2).upper().rstrip('.')}"
        return HeadingInfo(unit_type=kind, ref=ref, title=m.group(3).strip())
    m = _PREFIX_HEADING_RE.match(text)
    if m:
        return HeadingInfo(unit_type=m.group(1).upper(), ref="", title=text)
    return HeadingInfo(unit_type="HEADING", ref="", title=text)


# ---------------------------------------------------------------------------
# Clause labels
# ---------------------------------------------------------------------------

# Ordered most specific first: PDV-suffixed codes, single-letter codes,
# then two-letter forms (e.g. "SA1D2").
_LABEL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^([A-Z]\d+[PDV]\d+[A-Z]?)\b"),
    re.compile(r"^([A-Z]\d+[A-Z]\d+[A-Z]?)\b"),
    re.compile(r"^([A-Z]{1,2}\d+[A-Z]{1,2}\d+[A-Z]?)\b"),
)

_SPEC_CLAUSE_RE: re.Pattern[str] = re.compile(r"^S\d+C\d+[A-Z]?$")
_SUFFIX_LETTER_RE: re.Pattern[str] = re.compile(r"^[A-Z]{1,2}\d+([GOFPDV])\d+")

_SUFFIX_UNIT_TYPES: dict[str, str] = {
    "G": "GOVERNING_REQUIREMENT",
    "O": "OBJECTIVE",
    "F": "FUNCTIONAL_STATEMENT",
    "P": "PERFORMANCE_REQUIREMENT",
    "V": "VERIFICATION_METHOD",
    "D": "DTS_PROVISION",
}


def detect_unit_label(text: str) -> tuple[str, str] | None:
    """Return ``(label, rest)`` when *text* starts with a clause label."""
    for pattern in _LABEL_PATTERNS:
        m = pattern.match(text)
        if m:
            rest = text[m.end():].lstrip(" :.-–—")
            return (m.group(1), rest)
    return None


def classify_label(label: str, context: str) -> tuple[str, tuple[str, ...]]:
    """Derive a unit type for *label* under the active *context*.

    Returns:
        Tuple of (unit_type, warnings).  Inference from the suffix letter
        alone is a recoverable warning, never an error.
    """
    if _SPEC_CLAUSE_RE.match(label):
        return ("SPECIFICATION_CLAUSE", (f"SPECIFICATION_CLAUSE:{label}",))

    context_type = CONTEXT_UNIT_TYPES.get(context, "")
    m = _SUFFIX_LETTER_RE.match(label)
    if m is None:
        if context_type:
            return (context_type, ())
        return ("OTHER", (f"MISSING_CONTEXT_FOR_LABEL:{label}",))

    label_type = _SUFFIX_UNIT_TYPES[m.group(1)]
    if context_type == label_type:
        return (label_type, ())
    log.info(
        "Context %r does not match label %s; inferred %s from label",
        context or "none", label, label_type,
    )
    return (label_type, (f"CONTEXT_INFERRED_FROM_LABEL:{label}",))


# ---------------------------------------------------------------------------
# Jurisdiction vocabulary (shared with the variation passes)
# ---------------------------------------------------------------------------

STATE_ALT = "|".join(JURISDICTIONS)

# Jurisdiction codes are matched case-sensitively: "act"/"wa" are words.
JURISDICTION_RE: re.Pattern[str] = re.compile(rf"\b({STATE_ALT})\b")

# "C4D12", "J7D3(1)", "J7D3 (1)"
LABEL_WITH_SUBPART = r"([A-Z]{1,2}\d+[A-Z]{1,2}\d+[A-Z]?)\s?(\(\d+\))?"

# "NSW C4D12(4)" anywhere in text.
STATE_MARKER_RE: re.Pattern[str] = re.compile(rf"\b({STATE_ALT})\s+{LABEL_WITH_SUBPART}")

MODIFICATION_RE: re.Pattern[str] = re.compile(
    r"\b(?:delete[sd]?|insert(?:ed)?|replace[sd]?|substitute[sd]?|omit(?:ted)?|"
    r"(?:does|do)\s+not\s+apply|left\s+blank|is\s+varied)\b",
    re.IGNORECASE,
)
EDITORIAL_RE: re.Pattern[str] = re.compile(
    r"\b(?:delete|insert|replace|substitute)\b|\b(?:does|do)\s+not\s+apply\b|\bleft\s+blank\b",
    re.IGNORECASE,
)
_REF_ONLY_RE: re.Pattern[str] = re.compile(
    rf"\b(?:refer\s+to|see|in\s+accordance\s+with)\s+(?:{STATE_ALT})\b",
    re.IGNORECASE,
)


def has_jurisdiction(text: str) -> bool:
    return JURISDICTION_RE.search(text) is not None


def has_modification_language(text: str) -> bool:
    return MODIFICATION_RE.search(text) is not None


def is_reference_only(text: str) -> bool:
    """True for plain cross-references such as "Refer to NSW E2D16"."""
    return _REF_ONLY_RE.search(text) is not None and not has_modification_language(text)


# ---------------------------------------------------------------------------
# Paragraph rules
# ---------------------------------------------------------------------------

SEPARATOR_RE: re.Pattern[str] = re.compile(r"^[-–—_•·*]{2,}$")
INSERT_MARKER_RE: re.Pattern[str] = re.compile(
    rf"^Insert\s+(?:({STATE_ALT})\s+)?(Table|Figure)\b\s*(\S+)?",
    re.IGNORECASE,
)
TABLE_NOTES_RE: re.Pattern[str] = re.compile(r"^Table\s+Notes?\b", re.IGNORECASE)
STATE_ASSET_RE: re.Pattern[str] = re.compile(rf"^({STATE_ALT})\s+(Figure|Table)\s+(\S+)")
STATE_LABEL_RE: re.Pattern[str] = re.compile(rf"^({STATE_ALT})\s+{LABEL_WITH_SUBPART}(?=\s|$)\s*(.*)$")
BOUNDARY_RE: re.Pattern[str] = re.compile(
    r"^(?:Part|PART|Section|SECTION|Volume|VOLUME)\s+"
    r"(?:[A-Z]\d*[A-Z]?\d*|\d+(?:\.\d+)*|One|Two|Three|ONE|TWO|THREE)\b"
)
INTRO_LINE_RE: re.Pattern[str] = re.compile(
    r"^Introduction\s+to\s+this\s+(?:Part|Section|Volume)\b", re.IGNORECASE,
)
NOTE_PREFIX_RE: re.Pattern[str] = re.compile(r"^Notes?\b\s*[:.\-–]?\s*", re.IGNORECASE)
EXPLANATORY_PREFIX_RE: re.Pattern[str] = re.compile(
    r"^(?:Explanatory\s+Information|Explanatory|Explanation)\b\s*[:.\-–]?\s*",
    re.IGNORECASE,
)
EXCEPTION_PREFIX_RE: re.Pattern[str] = re.compile(
    r"^Exceptions?\b\s*[:.\-–]?\s*", re.IGNORECASE,
)


def is_separator(text: str) -> bool:
    stripped = text.strip()
    return not stripped or SEPARATOR_RE.match(stripped) is not None


def is_boundary_line(text: str) -> bool:
    """Heading-shaped "Part X"/"Section X"/"Volume X"/"Introduction to this ..." line."""
    text = text.strip()
    if len(text) > 120 or text.endswith((".", ";", ",")):
        return False
    return BOUNDARY_RE.match(text) is not None or INTRO_LINE_RE.match(text) is not None


ParagraphPredicate: TypeAlias = Callable[[str], bool]

PARAGRAPH_RULES: tuple[tuple[str, ParagraphPredicate], ...] = (
    ("separator", is_separator),
    ("boundary", is_boundary_line),
    ("context", lambda t: bool(normalize_context_heading(t))),
    ("insert_marker", lambda t: INSERT_MARKER_RE.match(t) is not None),
    ("table_notes", lambda t: TABLE_NOTES_RE.match(t) is not None),
    ("state_asset", lambda t: STATE_ASSET_RE.match(t) is not None),
    ("state_label", lambda t: STATE_LABEL_RE.match(t) is not None),
    ("note", lambda t: NOTE_PREFIX_RE.match(t) is not None),
    ("explanatory", lambda t: EXPLANATORY_PREFIX_RE.match(t) is not None),
    ("exception", lambda t: EXCEPTION_PREFIX_RE.match(t) is not None),
    ("labelled", lambda t: detect_unit_label(t) is not None),
)


def classify_paragraph(text: str) -> str:
    """Return the first matching rule name from :data:`PARAGRAPH_RULES`, else "plain"."""
    for name, predicate in PARAGRAPH_RULES:
        if predicate(text):
            return name
    return "plain"
