"""Text cleaning helpers and encoding-safe file reading.

The upstream format-repair pass is expected to hand over clean HTML, but
the pipeline cannot assume it caught everything.  These helpers perform
the structural cleanup the unit builder relies on:

- ``normalize_whitespace`` - NBSP/zero-width removal and blank-line limits.
- ``strip_cjk_and_mojibake`` - removal of stray CJK ideographs and
  U+FFFD replacement characters left by broken conversions.
- ``clean_text_keeping_numbering`` - de-hyphenation and de-smashing of
  words joined by the converter, leaving clause numbering intact.
- ``table_to_alt_text`` - renders table markup as a pipe-delimited grid.

Text is only ever cleaned, never rewritten.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path

from bs4 import BeautifulSoup

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Whitespace normalization
# ---------------------------------------------------------------------------

# U+200B..U+200D (ZWSP/ZWNJ/ZWJ), U+FEFF (BOM)
_ZERO_WIDTH_RE = re.compile("[\u200b-\u200d\ufeff]")
_HSPACE_RUN_RE = re.compile(r"[ \t]{2,}")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def strip_zero_width(text: str) -> str:
    """Remove zero-width Unicode characters that break regex matching."""
    return _ZERO_WIDTH_RE.sub("", text)


def normalize_whitespace(text: str) -> str:
    """Collapse horizontal whitespace runs and limit blank lines.

    NBSP becomes a plain space, zero-width characters are dropped, runs of
    spaces/tabs collapse to one space, and three or more newlines collapse
    to a single blank line.  The result is stripped.
    """
    if not text:
        return ""
    text = text.replace("\u00a0", " ")
    text = strip_zero_width(text)
    text = _HSPACE_RUN_RE.sub(" ", text)
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()


# ---------------------------------------------------------------------------
# CJK / mojibake removal
# ---------------------------------------------------------------------------

_CJK_RE = re.compile("[\u4e00-\u9fff]")
_REPLACEMENT_CHAR = "\ufffd"


def strip_cjk_and_mojibake(text: str) -> tuple[str, bool]:
    """Remove CJK ideographs and replacement characters.

    Returns:
        Tuple of (cleaned_text, removed).  *removed* is True when anything
        was stripped so the caller can tag the row with ``CJK_REMOVED``.
    """
    if not text:
        return ("", False)
    cleaned = _CJK_RE.sub("", text).replace(_REPLACEMENT_CHAR, "")
    removed = cleaned != text
    if removed:
        log.warning(
            "Removed %d CJK/mojibake characters from: %.60r",
            len(text) - len(cleaned),
            text,
        )
    return (cleaned, removed)


# ---------------------------------------------------------------------------
# Converter artifact cleanup
# ---------------------------------------------------------------------------

# "fire-\nresisting" -> "fire-resisting" is wrong for real compounds, so only
# soft wraps ("construc-\ntion") are joined: lowercase on both sides.
_WRAPPED_HYPHEN_RE = re.compile(r"([a-z])-\n([a-z])")
# "mustbe installedIn" -> "must be installed In" (camel smash from Word runs)
_CAMEL_SMASH_RE = re.compile(r"([a-z]{2})([A-Z][a-z]{2,})")
# "Part A2Compliance" -> "Part A2 Compliance"; clause codes like C2D5 survive
# because the trailing run must be a capitalized word.
_DIGIT_SMASH_RE = re.compile(r"(\d)([A-Z][a-z]{3,})")


def clean_text_keeping_numbering(text: str) -> str:
    """Undo line-wrap hyphenation and smashed word joins.

    Clause labels (``C2D5``, ``S5C2``) and sub-clause numbering (``(1)``,
    ``(a)``) are left untouched.
    """
    if not text:
        return ""
    text = _WRAPPED_HYPHEN_RE.sub(r"\1\2", text)
    text = _CAMEL_SMASH_RE.sub(r"\1 \2", text)
    text = _DIGIT_SMASH_RE.sub(r"\1 \2", text)
    return normalize_whitespace(text)


# ---------------------------------------------------------------------------
# Table alt-text grid
# ---------------------------------------------------------------------------


def _escape_cell(value: str) -> str:
    return value.replace("|", "\\|")


def table_rows_from_markup(markup: str) -> list[list[str]]:
    """Extract table cells as a list of rows, each a list of cell strings.

    Nested tables are flattened into their enclosing cell's text.  Rows
    with no non-empty cell are dropped.
    """
    if not markup:
        return []
    soup = BeautifulSoup(markup, "html.parser")
    outer = soup.find("table")
    rows: list[list[str]] = []
    for tr in soup.find_all("tr"):
        if outer is not None and tr.find_parent("table") is not outer:
            continue
        cells = [
            normalize_whitespace(cell.get_text(separator=" "))
            for cell in tr.find_all(["th", "td"], recursive=False)
        ]
        if any(cells):
            rows.append(cells)
    if not rows:
        text = normalize_whitespace(soup.get_text(separator="\n"))
        rows = [[line] for line in text.split("\n") if line.strip()]
    return rows


def table_to_alt_text(markup: str) -> str:
    """Render table markup as a pipe-delimited grid, one line per row.

    Rows are padded to the widest row so every line has the same number of
    cells.  Literal ``|`` inside cells is escaped as ``\\|``.
    """
    rows = table_rows_from_markup(markup)
    if not rows:
        return ""
    width = max(len(r) for r in rows)
    lines: list[str] = []
    for row in rows:
        padded = row + [""] * (width - len(row))
        lines.append("| " + " | ".join(_escape_cell(c) for c in padded) + " |")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Encoding-safe file reading
# ---------------------------------------------------------------------------


def read_file(fpath: Path, *, min_size: int = 0) -> str:
    """Read a text file with encoding fallback: UTF-8 -> CP1252 -> replace.

    CP1252 fallback handles Word-exported HTML with smart quotes (0x93/0x94).

    Args:
        fpath: Path to the file.
        min_size: Minimum file size in bytes. Returns empty string if smaller.

    Returns:
        File contents as a string. Empty string on failure or below min_size.
    """
    try:
        if min_size > 0 and fpath.stat().st_size < min_size:
            return ""
        try:
            return fpath.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            try:
                return fpath.read_text(encoding="cp1252")
            except UnicodeDecodeError:
                with open(fpath, errors="replace") as f:
                    return f.read()
    except OSError:
        return ""
