"""End-to-end tests for the unit-extraction pipeline."""
import pytest

from ncc_units.pipeline import build_units_from_html, compute_doc_id
from ncc_units.unit_types import BuildConfig, QualityGateError

CONFIG = BuildConfig(doc_id="ncc-v1", volume="V1", version_date="NCC 2022")

DTS_HTML = (
    "<h2>Part C2 Fire hazard</h2>"
    "<p>Deemed-to-Satisfy Provisions</p>"
    "<p>C2D5 Fire hazard properties</p>"
)

VARIATION_HTML = (
    "<h2>Part C4 Openings</h2>"
    "<p>Deemed-to-Satisfy Provisions</p>"
    "<p>C4D12 Fire doors</p>"
    "<p>Doors must be self-closing.</p>"
    "<p>NSW C4D12(4) does not apply.</p>"
)

TABLE_HTML = (
    "<p>Table D2.1 Stair widths</p>"
    "<table>"
    "<tr><th>Use</th><th>Width</th></tr>"
    "<tr><td>Exit</td><td>1 m</td></tr>"
    "<tr><td>Service</td><td>0.6 m</td></tr>"
    "<tr><td>Access</td><td>0.9 m</td></tr>"
    "</table>"
)

MERGE_HTML = (
    "<p>Deemed-to-Satisfy Provisions</p>"
    "<p>C2D5 Fire hazard properties</p>"
    "<p>Linings must comply.</p>"
    "<h3>Floor linings</h3>"
    "<p>C2D5 Further requirements</p>"
    "<p>Floors must comply.</p>"
)


def _of_type(rows, unit_type: str) -> list:
    return [r for r in rows if r.unit_type == unit_type]


class TestDtsClause:
    def test_title_only_clause_recovers_text(self) -> None:
        result = build_units_from_html(DTS_HTML, CONFIG)
        (dts,) = _of_type(result.rows, "DTS_PROVISION")
        (part,) = _of_type(result.rows, "PART")

        assert dts.unit_label == "C2D5"
        assert dts.text == "Fire hazard properties"
        assert "TEXT_RECOVERED_FROM_TITLE" in dts.warnings
        assert dts.anchor_id == "V1::PART_C2_FIRE_HAZARD::DTS_PROVISION::C2D5"
        assert dts.path == "PART C2: Fire hazard"
        assert dts.parent_anchor_id == part.anchor_id
        assert dts.doc_id == "ncc-v1"
        assert dts.version_date == "NCC 2022"
        assert dts.rag_text.startswith("[DTS_PROVISION] C2D5")


class TestStateVariation:
    def test_trailing_instruction_extracted(self) -> None:
        result = build_units_from_html(VARIATION_HTML, CONFIG)
        (dts,) = _of_type(result.rows, "DTS_PROVISION")
        (variation,) = _of_type(result.rows, "STATE_VARIATION")

        assert dts.text == "Doors must be self-closing."
        assert variation.applies_state == "NSW"
        assert variation.variation_action == "NOT_APPLICABLE"
        assert variation.affected_unit_label == "C4D12(4)"
        assert variation.base_unit_label == "C4D12"
        assert variation.affects_anchor_id == dts.anchor_id
        assert variation.volume_hierarchy == "SECONDARY"
        assert "STATE_VARIATION_EXTRACTED_BLOCKS:1" in result.warnings

    def test_inline_marker_base_keeps_title(self) -> None:
        html = (
            "<p>Deemed-to-Satisfy Provisions</p>"
            "<p>C4D12 Doors must be self-closing. NSW C4D12(4) does not apply.</p>"
        )
        result = build_units_from_html(html, CONFIG)
        (dts,) = _of_type(result.rows, "DTS_PROVISION")
        (variation,) = _of_type(result.rows, "STATE_VARIATION")
        assert dts.title == "Doors must be self-closing"
        assert "WEAK_TITLE" not in dts.warnings
        assert variation.affects_anchor_id == dts.anchor_id


class TestTables:
    def test_caption_and_row_spawning(self) -> None:
        result = build_units_from_html(TABLE_HTML, CONFIG)
        (table,) = _of_type(result.rows, "TABLE")
        table_rows = _of_type(result.rows, "TABLE_ROW")

        assert table.table_id == "D2.1"
        assert [r.unit_label for r in table_rows] == ["D2.1_ROW_1", "D2.1_ROW_2", "D2.1_ROW_3"]
        assert all(r.parent_anchor_id == table.anchor_id for r in table_rows)
        assert table_rows[0].text == "Use: Exit | Width: 1 m"

    def test_each_table_gets_a_row(self) -> None:
        html = TABLE_HTML + "<p>Table D2.2 Ramps</p><table><tr><td>A</td><td>B</td></tr></table>"
        result = build_units_from_html(html, CONFIG)
        assert len(_of_type(result.rows, "TABLE")) == 2

    def test_figure(self) -> None:
        result = build_units_from_html('<p>Figure D2.1 Stair</p><img alt="stair diagram">', CONFIG)
        (figure,) = _of_type(result.rows, "FIGURE")
        assert figure.asset_caption == "Figure D2.1 Stair"
        assert figure.asset_alt_text == "stair diagram"


class TestDuplicateMerge:
    def test_repeated_label_folds_into_first(self) -> None:
        result = build_units_from_html(MERGE_HTML, CONFIG)
        (dts,) = _of_type(result.rows, "DTS_PROVISION")

        assert dts.text == "Linings must comply.\nFloors must comply."
        assert "MERGED_DUPLICATE" in dts.warnings
        assert (dts.para_start, dts.para_end) == (1, 5)


class TestBuildInvariants:
    def test_deterministic(self) -> None:
        html = VARIATION_HTML + TABLE_HTML
        first = build_units_from_html(html, CONFIG)
        second = build_units_from_html(html, CONFIG)
        assert first.to_records() == second.to_records()
        assert first.warnings == second.warnings

    def test_anchors_unique(self) -> None:
        result = build_units_from_html(DTS_HTML + VARIATION_HTML + TABLE_HTML + MERGE_HTML, CONFIG)
        anchors = [r.anchor_id for r in result.rows]
        assert len(anchors) == len(set(anchors))

    def test_parents_resolve(self) -> None:
        result = build_units_from_html(VARIATION_HTML + TABLE_HTML, CONFIG)
        anchors = {r.anchor_id for r in result.rows}
        assert all(r.parent_anchor_id in anchors for r in result.rows if r.parent_anchor_id)

    def test_blank_html(self) -> None:
        result = build_units_from_html("   ", CONFIG)
        assert result.rows == ()
        assert result.warnings == ()

    def test_progress_reported(self) -> None:
        calls: list[tuple[str, int]] = []
        build_units_from_html(DTS_HTML, CONFIG, progress=lambda s, p: calls.append((s, p)))
        assert calls[-1] == ("Done", 100)
        percents = [p for _, p in calls]
        assert percents == sorted(percents)

    def test_empty_core_clause_fails_build(self) -> None:
        with pytest.raises(QualityGateError) as excinfo:
            build_units_from_html("<p>Deemed-to-Satisfy Provisions</p><p>C2D5</p>", CONFIG)
        assert any("Empty body text" in v for v in excinfo.value.violations)


class TestComputeDocId:
    def test_stable_hash(self) -> None:
        assert compute_doc_id("<p>x</p>") == compute_doc_id("<p>x</p>")
        assert len(compute_doc_id("<p>x</p>")) == 16
        assert compute_doc_id("<p>x</p>") != compute_doc_id("<p>y</p>")
