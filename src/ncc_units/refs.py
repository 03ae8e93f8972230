"""Cross-reference detection and sentence-level extraction.

Internal references are clause labels cited in the text (``C2D5``,
``D2.1``), excluding the unit's own label and legacy edition references
written as ``[2019: FP1.6]``.  External references are Australian and
international standards (``AS 1530.4``, ``AS/NZS 1170.2``, ``ISO 9239-1``).

Sentence extraction keeps source wording verbatim; sentences are only
selected, never rephrased.
"""
from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Reference patterns
# ---------------------------------------------------------------------------

_CLAUSE_REF_RE: re.Pattern[str] = re.compile(r"\b([A-Z]\d+[PDV]\d+[A-Z]?)\b")
_GENERIC_REF_RE: re.Pattern[str] = re.compile(r"\b([A-Z]{1,3}\d+(?:[A-Z]\d+)?(?:\.\d+)*)\b")
_LEGACY_REF_RE: re.Pattern[str] = re.compile(r"\[(\d{4}):\s*([A-Z0-9.]+)\]")

_STANDARD_RES: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bAS/NZS\s*\d+(?:\.\d+)*(?:\s*:\s*\d{4})?"),
    re.compile(r"\bAS\s*\d+(?:\.\d+)*(?:\s*:\s*\d{4})?"),
    re.compile(r"\bISO\s+\d+(?:-\d+)*(?:\.\d+)*"),
)

# Edition stamps ("NCC2022") look like refs but are not.
_NOT_REF_PREFIXES: tuple[str, ...] = ("NCC", "BCA")

MIN_REF_LEN = 3


def _dedupe(items: list[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for item in items:
        seen.setdefault(item, None)
    return tuple(seen)


def legacy_refs(text: str) -> tuple[str, ...]:
    """Return legacy edition references (``"2019: FP1.6"``) in first-seen order."""
    return _dedupe([f"{m.group(1)}: {m.group(2)}" for m in _LEGACY_REF_RE.finditer(text)])


def internal_refs(text: str, own_label: str = "") -> tuple[str, ...]:
    """Clause labels cited in *text*, excluding *own_label* and legacy refs."""
    if not text:
        return ()
    scrubbed = _LEGACY_REF_RE.sub(" ", text)
    # Standards numbers ("AS 1530.4") are external, not clause refs.
    for pattern in _STANDARD_RES:
        scrubbed = pattern.sub(" ", scrubbed)
    found: list[str] = []
    for pattern in (_CLAUSE_REF_RE, _GENERIC_REF_RE):
        for m in pattern.finditer(scrubbed):
            ref = m.group(1)
            if len(ref) < MIN_REF_LEN or ref.startswith(_NOT_REF_PREFIXES):
                continue
            if own_label and ref == own_label:
                continue
            found.append(ref)
    return _dedupe(found)


def external_refs(text: str) -> tuple[str, ...]:
    """Standards cited in *text*, whitespace-normalized, first-seen order."""
    if not text:
        return ()
    found: list[tuple[int, str]] = []
    for pattern in _STANDARD_RES:
        for m in pattern.finditer(text):
            found.append((m.start(), " ".join(m.group(0).split())))
    found.sort()
    # "AS/NZS 1170" also matches the plain "AS n" pattern at a later offset.
    out: list[str] = []
    for _, ref in found:
        if not any(ref in kept for kept in out):
            out.append(ref)
    return _dedupe(out)


# ---------------------------------------------------------------------------
# Sentence extraction
# ---------------------------------------------------------------------------

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n+")

_CONDITION_RE = re.compile(
    r"\b(?:if|where|unless|when|provided\s+that|subject\s+to)\b", re.IGNORECASE,
)
_EXCEPTION_RE = re.compile(
    r"\b(?:does\s+not\s+apply|except|exempt|exclusion|notwithstanding)\b", re.IGNORECASE,
)
_REQUIREMENT_RE = re.compile(r"\b(?:must|shall)\b", re.IGNORECASE)
_SHALL_RE = re.compile(r"\bshall\b", re.IGNORECASE)
_MUST_RE = re.compile(r"\bmust\b", re.IGNORECASE)

SENTENCE_JOINER = " | "


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_SPLIT_RE.split(text) if s and s.strip()]


def _select(text: str, pattern: re.Pattern[str]) -> str:
    return SENTENCE_JOINER.join(s for s in split_sentences(text) if pattern.search(s))


def extract_conditions(text: str) -> str:
    return _select(text, _CONDITION_RE)


def extract_exception_clauses(text: str) -> str:
    return _select(text, _EXCEPTION_RE)


def extract_requirements(text: str) -> str:
    return _select(text, _REQUIREMENT_RE)


def extract_standards(text: str) -> str:
    return "|".join(external_refs(text))


def contains_shall(text: str) -> bool:
    return _SHALL_RE.search(text) is not None


def contains_must(text: str) -> bool:
    return _MUST_RE.search(text) is not None


def has_condition_language(text: str) -> bool:
    return _CONDITION_RE.search(text) is not None


# ---------------------------------------------------------------------------
# Building-class applicability
# ---------------------------------------------------------------------------

_CLASS_RANGE_RE = re.compile(
    r"\bClass(?:es)?\s+(\d{1,2}[a-c]?)(?:\s*(?:to|-|–|and|or)\s*(\d{1,2}[a-c]?))?",
)


def building_classes(text: str) -> tuple[str, ...]:
    """Building classes mentioned in *text* ("Class 2 to 9" -> 2..9)."""
    found: list[str] = []
    for m in _CLASS_RANGE_RE.finditer(text):
        first, last = m.group(1), m.group(2)
        if last and first.isdigit() and last.isdigit() and int(first) < int(last) <= 10:
            found.extend(str(n) for n in range(int(first), int(last) + 1))
        else:
            found.append(first)
            if last:
                found.append(last)
    return _dedupe(found)
