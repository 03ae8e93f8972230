"""Unit accumulation state machine.

Consumes the ordered block sequence and produces closed unit rows.  All
mutable state for one build lives on :class:`BuildContext`, which is
created per call; nothing is module-global.

States:
- no open unit
- one open unit (receives continuation paragraphs, notes, exceptions)
- one paused unit (set aside while a table/figure is emitted; resumed by
  a continuation or a repeat of its label, flushed by any other label)

Paragraph dispatch follows :data:`ncc_units.labels.PARAGRAPH_RULES`.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from ncc_units import labels
from ncc_units.anchors import AnchorRegistry, anchor_base
from ncc_units.blocks import Block, FigureBlock, HeadingBlock, ParagraphBlock, TableBlock
from ncc_units.hierarchy import HierarchyTracker
from ncc_units.html_utils import (
    clean_text_keeping_numbering,
    strip_cjk_and_mojibake,
    table_rows_from_markup,
    table_to_alt_text,
)
from ncc_units.unit_types import BuildConfig, UnitRow, make_row

log = logging.getLogger(__name__)

TITLE_MAX_CHARS = 120
CAPTION_MAX_CHARS = 150
PENDING_ASSET_WINDOW = 3

# Types whose lead text is always body, even when short enough for a title.
_BODY_FIRST_TYPES: frozenset[str] = frozenset({
    "PERFORMANCE_REQUIREMENT",
    "FUNCTIONAL_STATEMENT",
    "VERIFICATION_METHOD",
    "SPECIFICATION_CLAUSE",
})

_TABLE_CAPTION_RE = re.compile(r"^(?:Table|TABLE|Tab\.?)\s+\S+")
_FIGURE_CAPTION_RE = re.compile(r"^(?:Figure|FIGURE|Fig\.?)\s+\S+")

_CONFIDENCE_HEADING = 0.85
_CONFIDENCE_ASSET = 0.8
_CONFIDENCE_UNIT = 0.75
_CONFIDENCE_MARKER = 0.7


# ---------------------------------------------------------------------------
# Builder state
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class _OpenUnit:
    unit_type: str
    label: str
    title: str
    para_start: int
    para_end: int
    path: str
    parent_anchor: str
    heading_context: str
    applies_state: str = ""
    body: list[str] = field(default_factory=list[str])
    notes: list[str] = field(default_factory=list[str])
    exceptions: list[str] = field(default_factory=list[str])
    warnings: list[str] = field(default_factory=list[str])

    def warn(self, *tags: str) -> None:
        for tag in tags:
            if tag and tag not in self.warnings:
                self.warnings.append(tag)

    def touch(self, position: int) -> None:
        self.para_end = max(self.para_end, position)


@dataclass(slots=True)
class BuildContext:
    """Everything the block loop mutates during one build."""
    config: BuildConfig
    registry: AnchorRegistry
    hierarchy: HierarchyTracker = field(default_factory=HierarchyTracker)
    context: str = ""
    last_heading: str = ""
    open_unit: _OpenUnit | None = None
    paused_unit: _OpenUnit | None = None
    pending_caption: str = ""
    pending_asset_tag: str = ""
    pending_asset_until: int = -1
    asset_count: int = 0
    rows: list[UnitRow] = field(default_factory=list[UnitRow])

    @property
    def heading_context(self) -> str:
        return self.last_heading or self.context


# ---------------------------------------------------------------------------
# Row emission
# ---------------------------------------------------------------------------


def _emit(
    ctx: BuildContext,
    *,
    unit_type: str,
    anchor_kind: str,
    key: str,
    position: int,
    path: str | None = None,
    parent_anchor: str | None = None,
    **values: object,
) -> UnitRow:
    path = ctx.hierarchy.path if path is None else path
    parent = ctx.hierarchy.parent_anchor if parent_anchor is None else parent_anchor
    order = ctx.hierarchy.next_order(parent)
    anchor = ctx.registry.assign(
        anchor_base(ctx.config.volume, path, anchor_kind, key or order)
    )
    values.setdefault("heading_context", ctx.heading_context)
    values.setdefault("para_start", position)
    values.setdefault("para_end", position)
    row = make_row(
        ctx.config,
        unit_type=unit_type,
        anchor_id=anchor,
        path=path,
        parent_anchor_id=parent,
        order_in_parent=order,
        **values,
    )
    ctx.rows.append(row)
    return row


def _flush_unit(ctx: BuildContext, unit: _OpenUnit) -> None:
    text = "\n".join(p for p in unit.body if p)
    _emit(
        ctx,
        unit_type=unit.unit_type,
        anchor_kind=unit.unit_type,
        key=unit.label,
        position=unit.para_start,
        path=unit.path,
        parent_anchor=unit.parent_anchor,
        unit_label=unit.label,
        title=unit.title,
        text=text,
        raw_text=text,
        notes="\n".join(unit.notes),
        exceptions="\n".join(unit.exceptions),
        para_end=unit.para_end,
        heading_context=unit.heading_context,
        applies_state=unit.applies_state,
        extract_confidence=_CONFIDENCE_UNIT,
        warnings=tuple(unit.warnings),
    )


def flush_open(ctx: BuildContext) -> None:
    if ctx.open_unit is not None:
        _flush_unit(ctx, ctx.open_unit)
        ctx.open_unit = None


def flush_all(ctx: BuildContext) -> None:
    """Flush the paused unit (earlier in the document) then the open one."""
    if ctx.paused_unit is not None:
        _flush_unit(ctx, ctx.paused_unit)
        ctx.paused_unit = None
    flush_open(ctx)


def _start_unit(
    ctx: BuildContext,
    *,
    unit_type: str,
    label: str,
    lead: str,
    position: int,
    warnings: Sequence[str] = (),
    applies_state: str = "",
) -> _OpenUnit:
    embedded = _looks_embedded(lead)
    if unit_type in _BODY_FIRST_TYPES:
        title = lead if len(lead) <= TITLE_MAX_CHARS and not embedded else ""
        body = [lead] if lead else []
    elif len(lead) <= TITLE_MAX_CHARS and label and not embedded:
        title, body = lead, []
    else:
        title, body = "", ([lead] if lead else [])
    if embedded and label and not title:
        title = _national_title(lead)
    unit = _OpenUnit(
        unit_type=unit_type,
        label=label,
        title=title,
        para_start=position,
        para_end=position,
        path=ctx.hierarchy.path,
        parent_anchor=ctx.hierarchy.parent_anchor,
        heading_context=ctx.heading_context,
        applies_state=applies_state,
        body=body,
    )
    unit.warn(*warnings)
    ctx.open_unit = unit
    return unit


def _looks_embedded(text: str) -> bool:
    """Inline jurisdiction marker or jurisdiction plus editorial wording."""
    return labels.STATE_MARKER_RE.search(text) is not None or (
        labels.has_jurisdiction(text) and labels.EDITORIAL_RE.search(text) is not None
    )


def _national_title(lead: str) -> str:
    """Whole sentences of *lead* ahead of its first jurisdiction mention."""
    m = labels.JURISDICTION_RE.search(lead)
    head = (lead[:m.start()] if m else lead).rstrip()
    if not head.endswith("."):
        stop = head.rfind(". ")
        head = head[:stop + 1] if stop >= 0 else ""
    head = head.rstrip(".").strip()
    return head if len(head) <= TITLE_MAX_CHARS else ""


def _receiving_unit(ctx: BuildContext) -> _OpenUnit | None:
    """Open unit, else the paused unit resumed as a continuation."""
    if ctx.open_unit is None and ctx.paused_unit is not None:
        ctx.open_unit = ctx.paused_unit
        ctx.paused_unit = None
        ctx.open_unit.warn("CONTINUED_AFTER_ASSET")
    return ctx.open_unit


# ---------------------------------------------------------------------------
# Block handlers
# ---------------------------------------------------------------------------


def _handle_heading(ctx: BuildContext, block: HeadingBlock) -> None:
    flush_all(ctx)
    text, removed = strip_cjk_and_mojibake(block.text)
    text = clean_text_keeping_numbering(text)
    info = labels.classify_heading(text)
    ctx.hierarchy.pop_to_level(block.level)
    context = labels.normalize_context_heading(text)
    if context:
        ctx.context = context
    ctx.last_heading = text
    parent = ctx.hierarchy.parent_anchor
    path = ctx.hierarchy.path_with(info.path_label)
    row = _emit(
        ctx,
        unit_type=info.unit_type,
        anchor_kind=info.unit_type,
        key=f"{info.ref or 'H'}_{block.position}",
        position=block.position,
        path=path,
        parent_anchor=parent,
        unit_label=info.ref,
        title=info.title or text,
        extract_confidence=_CONFIDENCE_HEADING,
        warnings=("CJK_REMOVED",) if removed else (),
    )
    ctx.hierarchy.push(block.level, info.path_label, row.anchor_id)


def _take_asset_tag(ctx: BuildContext, position: int) -> tuple[str, ...]:
    if ctx.pending_asset_tag and position <= ctx.pending_asset_until:
        tag = ctx.pending_asset_tag
        ctx.pending_asset_tag = ""
        return (tag,)
    ctx.pending_asset_tag = ""
    return ()


def _pause_open(ctx: BuildContext) -> None:
    if ctx.open_unit is None:
        return
    if ctx.paused_unit is not None:
        _flush_unit(ctx, ctx.paused_unit)
    ctx.paused_unit = ctx.open_unit
    ctx.open_unit = None


def _handle_table(ctx: BuildContext, block: TableBlock) -> None:
    cells = [c for row in table_rows_from_markup(block.markup) for c in row if c]
    if len(cells) == 1 and labels.normalize_context_heading(cells[0]):
        ctx.context = labels.normalize_context_heading(cells[0])
        ctx.pending_caption = ""
        return
    _pause_open(ctx)
    ctx.asset_count += 1
    caption = block.caption or ctx.pending_caption
    ctx.pending_caption = ""
    _emit(
        ctx,
        unit_type="TABLE",
        anchor_kind="TBL",
        key=str(ctx.asset_count),
        position=block.position,
        asset_type="TABLE",
        asset_id=f"table_{ctx.asset_count}",
        asset_caption=caption,
        asset_alt_text=table_to_alt_text(block.markup),
        title=caption,
        extract_confidence=_CONFIDENCE_ASSET,
        warnings=_take_asset_tag(ctx, block.position),
    )


def _handle_figure(ctx: BuildContext, block: FigureBlock) -> None:
    _pause_open(ctx)
    ctx.asset_count += 1
    caption = ctx.pending_caption
    ctx.pending_caption = ""
    _emit(
        ctx,
        unit_type="FIGURE",
        anchor_kind="IMG",
        key=str(ctx.asset_count),
        position=block.position,
        asset_type="IMAGE",
        asset_id=f"figure_{ctx.asset_count}",
        asset_caption=caption,
        asset_alt_text=block.alt_text,
        title=caption or block.alt_text[:TITLE_MAX_CHARS],
        extract_confidence=_CONFIDENCE_ASSET,
        warnings=_take_asset_tag(ctx, block.position),
    )


def _is_caption_for(block: ParagraphBlock, following: Block | None) -> bool:
    if len(block.text) > CAPTION_MAX_CHARS or labels.TABLE_NOTES_RE.match(block.text):
        return False
    if isinstance(following, TableBlock):
        return _TABLE_CAPTION_RE.match(block.text) is not None
    if isinstance(following, FigureBlock):
        return _FIGURE_CAPTION_RE.match(block.text) is not None
    return False


def _flag_embedded(unit: _OpenUnit, text: str) -> None:
    if _looks_embedded(text):
        unit.warn("STATE_VARIATION_EMBEDDED")


def _append_continuation(ctx: BuildContext, text: str, position: int, tags: Sequence[str]) -> None:
    unit = _receiving_unit(ctx)
    if unit is None:
        if ctx.context == labels.CTX_INTRODUCTION:
            unit_type = "INTRODUCTORY_PROVISION"
        elif ctx.context == labels.CTX_APPLICATION:
            unit_type = "APPLICATION"
        else:
            unit_type = "OTHER"
        unit = _start_unit(ctx, unit_type=unit_type, label="", lead="", position=position)
        unit.body.append(text)
    elif ctx.context == labels.CTX_APPLICATION:
        unit.notes.append(text)
    else:
        unit.body.append(text)
    unit.touch(position)
    unit.warn(*tags)
    _flag_embedded(unit, text)


def _append_annotation(
    ctx: BuildContext, kind: str, text: str, position: int, tags: Sequence[str],
) -> None:
    """NOTE / EXPLANATORY / EXCEPTION paragraphs go to notes or exceptions."""
    unit = _receiving_unit(ctx)
    if unit is None:
        unit_type = {
            "note": "NOTE",
            "explanatory": "EXPLANATORY_INFORMATION",
            "exception": "EXCEPTION",
        }[kind]
        unit = _start_unit(ctx, unit_type=unit_type, label="", lead="", position=position)
    if kind == "exception":
        unit.exceptions.append(text)
    else:
        unit.notes.append(text)
    unit.touch(position)
    unit.warn(*tags)


def _handle_labelled(ctx: BuildContext, text: str, position: int, tags: Sequence[str]) -> None:
    detected = labels.detect_unit_label(text)
    if detected is None:
        _append_continuation(ctx, text, position, tags)
        return
    label, rest = detected

    paused = ctx.paused_unit
    if paused is not None and paused.label == label:
        flush_open(ctx)
        ctx.open_unit, ctx.paused_unit = paused, None
    elif paused is not None:
        flush_all(ctx)

    unit = ctx.open_unit
    if unit is not None and unit.label == label:
        if rest:
            unit.body.append(rest)
        unit.touch(position)
        unit.warn(*tags)
        _flag_embedded(unit, rest)
        return

    flush_open(ctx)
    unit_type, label_warnings = labels.classify_label(label, ctx.context)
    unit = _start_unit(
        ctx,
        unit_type=unit_type,
        label=label,
        lead=rest,
        position=position,
        warnings=(*label_warnings, *tags),
    )
    _flag_embedded(unit, rest)


def _handle_state_label(ctx: BuildContext, text: str, position: int, tags: Sequence[str]) -> None:
    m = labels.STATE_LABEL_RE.match(text)
    if m is None:
        _append_continuation(ctx, text, position, tags)
        return
    state, base_label, subpart, rest = m.group(1), m.group(2), m.group(3) or "", m.group(4)
    if not rest or labels.has_modification_language(rest):
        # Amendment prose: left in place for the variation passes.
        _append_continuation(ctx, text, position, tags)
        return
    label = f"{base_label}{subpart}"
    flush_all(ctx)
    unit_type, label_warnings = labels.classify_label(base_label, ctx.context)
    _start_unit(
        ctx,
        unit_type=unit_type,
        label=label,
        lead=rest,
        position=position,
        warnings=(*label_warnings, f"STATE_VARIATION:{state}:{label}", *tags),
        applies_state=state,
    )


def _handle_boundary(ctx: BuildContext, text: str, position: int, tags: Sequence[str]) -> None:
    flush_all(ctx)
    intro = labels.INTRO_LINE_RE.match(text) is not None
    if intro:
        ctx.context = labels.CTX_INTRODUCTION
    _emit(
        ctx,
        unit_type="INTRODUCTION" if intro else "HEADING",
        anchor_kind="INTRODUCTION" if intro else "HEADING",
        key=f"L_{position}",
        position=position,
        title=text,
        extract_confidence=_CONFIDENCE_HEADING,
        warnings=tuple(tags),
    )


def _handle_insert_marker(ctx: BuildContext, text: str, position: int, tags: Sequence[str]) -> None:
    m = labels.INSERT_MARKER_RE.match(text)
    if m is None:
        _append_continuation(ctx, text, position, tags)
        return
    flush_open(ctx)
    state = m.group(1) or ""
    target = (m.group(3) or "").rstrip(".,:;")
    if state:
        ctx.pending_asset_tag = f"STATE_VARIATION_TABLE:{state}:{target or m.group(2)}"
        ctx.pending_asset_until = position + PENDING_ASSET_WINDOW
    _emit(
        ctx,
        unit_type="STATE_VARIATION_AMENDMENT",
        anchor_kind="STATE_VARIATION_AMENDMENT",
        key=f"INSERT_{position}",
        position=position,
        text=text,
        raw_text=text,
        applies_state=state,
        affected_unit_label=target,
        extract_confidence=_CONFIDENCE_MARKER,
        warnings=("INSERT_MARKER", *tags),
    )


def _handle_state_asset(ctx: BuildContext, text: str, position: int, tags: Sequence[str]) -> None:
    m = labels.STATE_ASSET_RE.match(text)
    if m is None:
        _append_continuation(ctx, text, position, tags)
        return
    flush_open(ctx)
    state, kind, target = m.group(1), m.group(2), m.group(3).rstrip(".,:;")
    _emit(
        ctx,
        unit_type="STATE_VARIATION_AMENDMENT",
        anchor_kind="STATE_VARIATION_AMENDMENT",
        key=f"{state}_{kind}_{target}",
        position=position,
        text=text,
        raw_text=text,
        applies_state=state,
        affected_unit_label=target,
        asset_type="IMAGE" if kind == "Figure" else "TABLE",
        asset_caption=text,
        extract_confidence=_CONFIDENCE_MARKER,
        warnings=("STATE_ASSET_MARKER", *tags),
    )


def _handle_paragraph(ctx: BuildContext, block: ParagraphBlock, following: Block | None) -> None:
    if _is_caption_for(block, following):
        ctx.pending_caption = block.text
        return
    text, removed = strip_cjk_and_mojibake(block.text)
    text = clean_text_keeping_numbering(text)
    tags = ("CJK_REMOVED",) if removed else ()
    position = block.position

    match labels.classify_paragraph(text):
        case "separator":
            flush_open(ctx)
        case "boundary":
            _handle_boundary(ctx, text, position, tags)
        case "context":
            flush_all(ctx)
            ctx.context = labels.normalize_context_heading(text)
            ctx.last_heading = text
        case "insert_marker":
            _handle_insert_marker(ctx, text, position, tags)
        case "table_notes":
            flush_open(ctx)
            _emit(
                ctx,
                unit_type="TABLE_NOTE",
                anchor_kind="TABLE_NOTE",
                key=f"N_{position}",
                position=position,
                text=text,
                raw_text=text,
                extract_confidence=_CONFIDENCE_UNIT,
                warnings=tags,
            )
        case "state_asset":
            _handle_state_asset(ctx, text, position, tags)
        case "state_label":
            _handle_state_label(ctx, text, position, tags)
        case "note" | "explanatory" | "exception" as kind:
            _append_annotation(ctx, kind, text, position, tags)
        case "labelled":
            _handle_labelled(ctx, text, position, tags)
        case _:
            _append_continuation(ctx, text, position, tags)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def accumulate_units(
    blocks: Sequence[Block],
    config: BuildConfig,
    registry: AnchorRegistry,
) -> list[UnitRow]:
    """Run the state machine over *blocks* and return closed rows in emission order."""
    ctx = BuildContext(config=config, registry=registry)
    for i, block in enumerate(blocks):
        following = blocks[i + 1] if i + 1 < len(blocks) else None
        match block:
            case HeadingBlock():
                _handle_heading(ctx, block)
            case TableBlock():
                _handle_table(ctx, block)
            case FigureBlock():
                _handle_figure(ctx, block)
            case ParagraphBlock():
                _handle_paragraph(ctx, block, following)
    flush_all(ctx)
    log.info("Accumulated %d rows from %d blocks", len(ctx.rows), len(blocks))
    return ctx.rows
