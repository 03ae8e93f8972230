"""Tests for the unit accumulation state machine."""
from ncc_units.accumulator import (
    BuildContext,
    _handle_insert_marker,
    _handle_labelled,
    _handle_state_asset,
    _handle_state_label,
    accumulate_units,
    flush_all,
)
from ncc_units.anchors import AnchorRegistry
from ncc_units.blocks import FigureBlock, HeadingBlock, ParagraphBlock, TableBlock
from ncc_units.unit_types import BuildConfig

CONFIG = BuildConfig(doc_id="doc1", volume="V1")

TABLE_MARKUP = (
    "<table><tr><th>Use</th><th>Width</th></tr>"
    "<tr><td>Exit</td><td>1 m</td></tr></table>"
)


def _run(blocks: list) -> list:
    return accumulate_units(blocks, CONFIG, AnchorRegistry())


def _paragraphs(*texts: str) -> list:
    return [ParagraphBlock(position=i, text=t) for i, t in enumerate(texts)]


class TestClauseUnits:
    def test_dts_clause_with_body_and_note(self) -> None:
        rows = _run([
            HeadingBlock(position=0, level=2, text="Part C2 Fire resistance"),
            ParagraphBlock(position=1, text="Deemed-to-Satisfy Provisions"),
            ParagraphBlock(position=2, text="C2D5 Fire hazard properties"),
            ParagraphBlock(position=3, text="A wall must be non-combustible."),
            ParagraphBlock(position=4, text="Note: see Specification 7."),
        ])
        assert [r.unit_type for r in rows] == ["PART", "DTS_PROVISION"]
        part, dts = rows
        assert part.unit_label == "PART C2"
        assert part.title == "Fire resistance"
        assert dts.unit_label == "C2D5"
        assert dts.title == "Fire hazard properties"
        assert dts.text == "A wall must be non-combustible."
        assert dts.notes == "Note: see Specification 7."
        assert dts.path == "PART C2: Fire resistance"
        assert dts.parent_anchor_id == part.anchor_id
        assert dts.heading_context == "Deemed-to-Satisfy Provisions"
        assert (dts.para_start, dts.para_end) == (2, 4)
        assert dts.anchor_id == "V1::PART_C2_FIRE_RESISTANCE::DTS_PROVISION::C2D5"
        assert dts.conditionality == "IF_DTS_SELECTED"

    def test_performance_requirement_lead_is_body(self) -> None:
        rows = _run(_paragraphs("Performance Requirements", "C2P1 Spread of fire"))
        assert len(rows) == 1
        assert rows[0].unit_type == "PERFORMANCE_REQUIREMENT"
        assert rows[0].text == "Spread of fire"
        assert rows[0].title == "Spread of fire"

    def test_repeated_label_continues_unit(self) -> None:
        rows = _run(_paragraphs(
            "Deemed-to-Satisfy Provisions", "C2D5 Fire", "C2D5 (2) more text",
        ))
        assert len(rows) == 1
        assert rows[0].text == "(2) more text"

    def test_separator_closes_unit(self) -> None:
        rows = _run(_paragraphs("Deemed-to-Satisfy Provisions", "C2D5 Fire", "---", "Loose text."))
        assert [r.unit_type for r in rows] == ["DTS_PROVISION", "OTHER"]
        assert rows[1].text == "Loose text."

    def test_cjk_tagged(self) -> None:
        rows = _run(_paragraphs("Walls \u9632 must be rated."))
        assert "CJK_REMOVED" in rows[0].warnings
        assert "\u9632" not in rows[0].text


class TestAssets:
    def test_table_pauses_and_resumes_unit(self) -> None:
        rows = _run([
            ParagraphBlock(position=0, text="Deemed-to-Satisfy Provisions"),
            ParagraphBlock(position=1, text="D2D3 Width of stairways"),
            ParagraphBlock(position=2, text="Table D2D3 Minimum widths"),
            TableBlock(position=3, markup=TABLE_MARKUP),
            ParagraphBlock(position=4, text="The width must be at least 1 m."),
        ])
        assert [r.unit_type for r in rows] == ["TABLE", "DTS_PROVISION"]
        table, dts = rows
        assert table.asset_caption == "Table D2D3 Minimum widths"
        assert table.asset_alt_text == "| Use | Width |\n| Exit | 1 m |"
        assert table.asset_id == "table_1"
        assert dts.text == "The width must be at least 1 m."
        assert "CONTINUED_AFTER_ASSET" in dts.warnings

    def test_context_only_table_emits_nothing(self) -> None:
        rows = _run([
            TableBlock(position=0, markup="<table><tr><td>Performance Requirements</td></tr></table>"),
            ParagraphBlock(position=1, text="C2P1 Spread of fire"),
        ])
        assert [r.unit_type for r in rows] == ["PERFORMANCE_REQUIREMENT"]

    def test_figure_with_caption(self) -> None:
        rows = _run([
            ParagraphBlock(position=0, text="Figure D2.1 Stair"),
            FigureBlock(position=1, alt_text="stair diagram"),
        ])
        assert len(rows) == 1
        assert rows[0].unit_type == "FIGURE"
        assert rows[0].asset_type == "IMAGE"
        assert rows[0].asset_caption == "Figure D2.1 Stair"
        assert rows[0].asset_alt_text == "stair diagram"

    def test_insert_marker_tags_next_table(self) -> None:
        rows = _run([
            ParagraphBlock(position=0, text="Insert NSW Table D2.1"),
            TableBlock(position=1, markup=TABLE_MARKUP),
        ])
        marker, table = rows
        assert marker.unit_type == "STATE_VARIATION_AMENDMENT"
        assert marker.applies_state == "NSW"
        assert marker.affected_unit_label == "D2.1"
        assert "INSERT_MARKER" in marker.warnings
        assert "STATE_VARIATION_TABLE:NSW:D2.1" in table.warnings


class TestJurisdictionParagraphs:
    def test_state_label_starts_variant_clause(self) -> None:
        rows = _run(_paragraphs("Deemed-to-Satisfy Provisions", "NSW C4D12 Fire doors"))
        assert len(rows) == 1
        row = rows[0]
        assert row.unit_type == "DTS_PROVISION"
        assert row.unit_label == "C4D12"
        assert row.applies_state == "NSW"
        assert "STATE_VARIATION:NSW:C4D12" in row.warnings

    def test_state_instruction_stays_in_body_flagged(self) -> None:
        rows = _run(_paragraphs(
            "Deemed-to-Satisfy Provisions",
            "C4D12 Fire doors",
            "Doors must be self-closing.",
            "NSW C4D12(4) does not apply.",
        ))
        assert len(rows) == 1
        assert rows[0].text == "Doors must be self-closing.\nNSW C4D12(4) does not apply."
        assert "STATE_VARIATION_EMBEDDED" in rows[0].warnings

    def test_inline_marker_title_from_national_sentence(self) -> None:
        rows = _run(_paragraphs(
            "Deemed-to-Satisfy Provisions",
            "C4D12 Doors must be self-closing. NSW C4D12(4) does not apply.",
        ))
        assert len(rows) == 1
        assert rows[0].title == "Doors must be self-closing"
        assert rows[0].text == "Doors must be self-closing. NSW C4D12(4) does not apply."
        assert "STATE_VARIATION_EMBEDDED" in rows[0].warnings

    def test_inline_marker_without_national_sentence_has_no_title(self) -> None:
        rows = _run(_paragraphs(
            "Deemed-to-Satisfy Provisions",
            "C4D12 In NSW, delete C4D12(4).",
        ))
        assert rows[0].title == ""

    def test_state_asset_marker(self) -> None:
        rows = _run(_paragraphs("NSW Table D2.1"))
        assert rows[0].unit_type == "STATE_VARIATION_AMENDMENT"
        assert rows[0].asset_type == "TABLE"
        assert "STATE_ASSET_MARKER" in rows[0].warnings


class TestBoundaries:
    def test_introduction_line_sets_context(self) -> None:
        rows = _run(_paragraphs("Introduction to this Part", "This Part covers fire safety."))
        assert [r.unit_type for r in rows] == ["INTRODUCTION", "INTRODUCTORY_PROVISION"]
        assert rows[1].text == "This Part covers fire safety."

    def test_table_notes_row(self) -> None:
        rows = _run(_paragraphs("Table Notes: widths are clear widths."))
        assert rows[0].unit_type == "TABLE_NOTE"


class TestHandlerFallback:
    def test_unmatched_text_becomes_continuation(self) -> None:
        handlers = (
            _handle_labelled,
            _handle_state_label,
            _handle_insert_marker,
            _handle_state_asset,
        )
        for handler in handlers:
            ctx = BuildContext(config=CONFIG, registry=AnchorRegistry())
            handler(ctx, "Walls must be rated.", 0, ())
            flush_all(ctx)
            assert [(r.unit_type, r.text) for r in ctx.rows] == [("OTHER", "Walls must be rated.")], handler
