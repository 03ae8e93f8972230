"""Table structuring and TABLE_ROW spawning.

TABLE rows arrive from accumulation with a pipe-delimited alt-text grid.
This pass parses that grid back into a :class:`TableGrid`, settles the
caption/title, derives a stable ``table_id`` and spawns one TABLE_ROW per
data row directly after its table.

A table whose alt text has no column structure is treated as a single
``Content`` column; one with no text at all keeps no grid and is flagged
``TABLE_BLOB_ONLY``.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import replace

from ncc_units.anchors import AnchorRegistry
from ncc_units.html_utils import normalize_whitespace
from ncc_units.refs import building_classes
from ncc_units.unit_types import BuildConfig, TableGrid, UnitRow, make_row

log = logging.getLogger(__name__)

BLOB_WARNING = "TABLE_BLOB_ONLY"
FALLBACK_HEADER = "Content"
SUMMARY_ROWS = 3

_CELL_SPLIT_RE = re.compile(r"(?<!\\)\|")
# Letter+digit ids only; "Table 3" is noise.
_TABLE_ID_RE = re.compile(r"\bTable\s+([A-Z]{1,2}\d+[A-Z]?\d*(?:\.\d+)*[a-z]?)\b")
_KEY_VALUE_RES: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(CLASS|MAX|MIN|MAXIMUM|MINIMUM)\s*[=:]\s*([^\s,;|]+)", re.IGNORECASE),
    re.compile(r"\b(Class\s+\d+[a-c]?)\b", re.IGNORECASE),
)
_PURPOSE_RE = re.compile(
    r"(?:purpose|shows|lists|provides|gives|contains)[^.!?|]{0,100}", re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Grid parsing
# ---------------------------------------------------------------------------


def _split_line(line: str) -> list[str]:
    line = line.strip()
    if line.startswith("|"):
        line = line[1:]
    if line.endswith("|") and not line.endswith("\\|"):
        line = line[:-1]
    return [normalize_whitespace(c.replace("\\|", "|")) for c in _CELL_SPLIT_RE.split(line)]


def parse_grid(alt_text: str) -> tuple[TableGrid | None, str]:
    """Parse a pipe grid into ``(grid, caption)``.

    A leading row with exactly one non-empty cell in a multi-column grid is
    a caption row, not a header.  Data rows are padded or truncated to the
    header width so every row is rectangular.
    """
    lines = [ln for ln in alt_text.split("\n") if ln.strip()]
    if not lines:
        return None, ""
    rows = [_split_line(ln) if "|" in ln else [normalize_whitespace(ln)] for ln in lines]
    width = max(len(r) for r in rows)
    if width == 1:
        return TableGrid(headers=(FALLBACK_HEADER,), rows=tuple((r[0],) for r in rows)), ""

    caption = ""
    if len(rows) > 1 and sum(1 for c in rows[0] if c) == 1:
        caption = next(c for c in rows[0] if c)
        rows = rows[1:]
    headers = rows[0]
    if not any(headers):
        headers = [FALLBACK_HEADER] + [""] * (len(headers) - 1)
    n = len(headers)
    body = tuple(tuple((r + [""] * n)[:n]) for r in rows[1:])
    return TableGrid(headers=tuple(headers), rows=body), caption


def table_id_from_caption(caption: str) -> str:
    """``"Table D2.1 Fire resistance"`` -> ``"D2.1"``; bare numbers yield ""."""
    m = _TABLE_ID_RE.search(caption)
    return m.group(1) if m else ""


def table_key_values(text: str) -> tuple[str, ...]:
    """``KEY=value`` pairs such as ``CLASS=3`` or ``Class 2=Class 2``."""
    pairs: dict[str, None] = {}
    for pattern in _KEY_VALUE_RES:
        for m in pattern.finditer(text):
            key = normalize_whitespace(m.group(1))
            value = normalize_whitespace(m.group(2) if m.lastindex and m.lastindex > 1 else m.group(0))
            if key and value:
                pairs.setdefault(f"{key.upper()}={value}", None)
    return tuple(pairs)


def row_text(headers: Sequence[str], cells: Sequence[str], index: int) -> str:
    """``"header: value | ..."``; never empty."""
    pairs = [
        f"{h or f'Column {i + 1}'}: {c or '-'}"
        for i, (h, c) in enumerate(zip(headers, cells))
    ]
    if not any(cells):
        return f"Row {index}: [data extracted]"
    if not any(headers):
        return " ".join(c for c in cells if c)
    return " | ".join(pairs)


def _table_purpose(row: UnitRow, title: str) -> str:
    if title:
        return title
    m = _PURPOSE_RE.search(row.text)
    if m:
        return normalize_whitespace(m.group(0))
    return row.path.rsplit(">", 1)[-1].strip()


# ---------------------------------------------------------------------------
# Pass
# ---------------------------------------------------------------------------


def _structure_table(row: UnitRow, ordinal: int) -> UnitRow:
    grid, grid_caption = parse_grid(row.asset_alt_text)
    first_line = row.asset_alt_text.split("\n", 1)[0].strip(" |") if row.asset_alt_text else ""
    title = row.asset_caption or grid_caption or row.title or first_line
    table_id = table_id_from_caption(title) or f"TABLE-{ordinal:03d}"

    lines = [ln for ln in row.asset_alt_text.split("\n") if ln.strip()]
    text = "\n".join([f"Table: {title}" if title else "Table", *lines[:SUMMARY_ROWS]])
    values = {
        "title": title,
        "asset_caption": row.asset_caption or title,
        "table_id": table_id,
        "table_label": title,
        "table_grid": grid,
        "text": text,
        "raw_text": row.asset_alt_text,
        "table_key_values": table_key_values(row.asset_alt_text),
        "applies_to_class": row.applies_to_class or building_classes(
            f"{title}\n{row.asset_alt_text}"
        ),
    }
    out = replace(row, **values)
    out = replace(out, table_purpose=_table_purpose(out, title))
    if grid is None or grid.headers == (FALLBACK_HEADER,):
        out = out.with_warning(BLOB_WARNING)
    return out.with_rag_text()


def _spawn_rows(
    table: UnitRow,
    config: BuildConfig,
    registry: AnchorRegistry,
) -> list[UnitRow]:
    grid = table.table_grid
    if grid is None or not grid.rows:
        return []
    spawned: list[UnitRow] = []
    for i, cells in enumerate(grid.rows, start=1):
        text = row_text(grid.headers, cells, i)
        spawned.append(make_row(
            config,
            unit_type="TABLE_ROW",
            anchor_id=registry.child(table.anchor_id, f"ROW_{i}"),
            path=table.path,
            parent_anchor_id=table.anchor_id,
            order_in_parent=i,
            para_start=table.para_start,
            para_end=table.para_end,
            heading_context=table.heading_context,
            unit_label=f"{table.table_id}_ROW_{i}",
            title=f"{table.table_label} row {i}" if table.table_label else f"Row {i}",
            text=text,
            raw_text=" | ".join(cells),
            asset_type="TABLE",
            asset_id=table.asset_id,
            table_id=table.table_id,
            table_label=table.table_label,
            table_purpose=table.table_purpose,
            applies_to_class=table.applies_to_class,
            applies_state=table.applies_state,
            extract_confidence=table.extract_confidence,
        ))
    return spawned


def structure_tables(
    rows: Sequence[UnitRow],
    config: BuildConfig,
    registry: AnchorRegistry,
) -> tuple[list[UnitRow], int]:
    """Structure every TABLE row and insert its TABLE_ROW children.

    Returns the new row list and the number of tables left as blobs.
    """
    out: list[UnitRow] = []
    ordinal = 0
    blobs = 0
    for row in rows:
        if row.unit_type != "TABLE":
            out.append(row)
            continue
        ordinal += 1
        table = _structure_table(row, ordinal)
        if BLOB_WARNING in table.warnings:
            blobs += 1
            log.info("Table %s has no column structure", table.anchor_id)
        out.append(table)
        out.extend(_spawn_rows(table, config, registry))
    return out, blobs
