"""Tests for build-level invariant checks."""
import pytest

from ncc_units.quality_gate import run_quality_gate
from ncc_units.unit_types import BuildConfig, PipelineOptions, QualityGateError, make_row

CONFIG = BuildConfig(doc_id="doc1", volume="V1")


def _dts(anchor: str, text: str, **values: object):
    return make_row(CONFIG, unit_type="DTS_PROVISION", anchor_id=anchor, unit_label="C2D5", text=text, **values)


class TestFatalChecks:
    def test_clean_rows_pass(self) -> None:
        report = run_quality_gate([_dts("a", "Walls must be rated.")], PipelineOptions())
        assert len(report.rows) == 1
        assert report.warnings == ()

    def test_heading_leak(self) -> None:
        row = _dts("a", "Walls must be rated.\nPart B1 Structural provisions")
        with pytest.raises(QualityGateError, match="Heading phrase"):
            run_quality_gate([row], PipelineOptions())

    def test_empty_core_body(self) -> None:
        with pytest.raises(QualityGateError, match="Empty body text"):
            run_quality_gate([_dts("a", "")], PipelineOptions())

    def test_self_reference(self) -> None:
        row = _dts("a", "See C2D5.", internal_refs=("C2D5",))
        with pytest.raises(QualityGateError, match="own label"):
            run_quality_gate([row], PipelineOptions())

    def test_unlinked_variation(self) -> None:
        row = make_row(CONFIG, unit_type="STATE_VARIATION", anchor_id="v", text="Delete.")
        with pytest.raises(QualityGateError) as excinfo:
            run_quality_gate([row], PipelineOptions())
        assert any("STATE_VARIATION without base label" in v for v in excinfo.value.violations)


class TestLeakage:
    def test_warn_by_default(self) -> None:
        report = run_quality_gate([_dts("a", "NSW C2D5 is varied.")], PipelineOptions())
        assert report.warnings == ("UNEXTRACTED_STATE_INSTRUCTIONS:1",)

    def test_fail_when_configured(self) -> None:
        with pytest.raises(QualityGateError, match="Un-extracted jurisdiction instructions"):
            run_quality_gate(
                [_dts("a", "NSW C2D5 is varied.")],
                PipelineOptions(leakage_severity="fail"),
            )


class TestEmptyRagText:
    def test_payload_less_rows_tagged(self) -> None:
        empty = make_row(CONFIG, unit_type="OTHER", anchor_id="o")
        report = run_quality_gate([empty], PipelineOptions())
        assert "EMPTY_RAG_TEXT" in report.rows[0].warnings
        assert report.warnings == ("EMPTY_RAG_TEXT:1",)
