"""Tests for ncc_units.labels classification rules."""
from ncc_units import labels
from ncc_units.labels import (
    classify_heading,
    classify_label,
    classify_paragraph,
    detect_unit_label,
    has_jurisdiction,
    is_boundary_line,
    is_reference_only,
    normalize_context_heading,
)


class TestContextHeadings:
    def test_known_contexts(self) -> None:
        assert normalize_context_heading("Deemed-to-Satisfy Provisions") == labels.CTX_DTS
        assert normalize_context_heading("performance requirements:") == labels.CTX_PERFORMANCE
        assert normalize_context_heading("Introduction to this Part") == labels.CTX_INTRODUCTION

    def test_not_a_context(self) -> None:
        assert normalize_context_heading("Fire safety") == ""


class TestClassifyHeading:
    def test_part_heading(self) -> None:
        info = classify_heading("Part A1 Interpreting the NCC")
        assert info.unit_type == "PART"
        assert info.ref == "PART A1"
        assert info.title == "Interpreting the NCC"
        assert info.path_label == "PART A1: Interpreting the NCC"

    def test_specification_with_number(self) -> None:
        info = classify_heading("Specification 5 Fire-resisting construction")
        assert info.unit_type == "SPECIFICATION"
        assert info.ref == "SPECIFICATION 5"

    def test_bare_schedule_prefix(self) -> None:
        info = classify_heading("Schedule")
        assert info.unit_type == "SCHEDULE"
        assert info.ref == ""
        assert info.path_label == "Schedule"

    def test_volume_word_ref(self) -> None:
        info = classify_heading("Volume One Building Code")
        assert info.unit_type == "VOLUME"
        assert info.ref == "VOLUME ONE"

    def test_prose_starting_with_keyword_is_generic(self) -> None:
        for text in ("Part of the building", "Schedule of fees", "Section on ventilation"):
            info = classify_heading(text)
            assert info.unit_type == "HEADING", text
            assert info.ref == ""
            assert info.title == text

    def test_generic_heading(self) -> None:
        info = classify_heading("Fire safety")
        assert info.unit_type == "HEADING"
        assert info.path_label == "Fire safety"


class TestUnitLabels:
    def test_detect_dts_label(self) -> None:
        assert detect_unit_label("C2D5 Fire hazard properties") == ("C2D5", "Fire hazard properties")

    def test_detect_governing_label(self) -> None:
        assert detect_unit_label("A2G1: Compliance") == ("A2G1", "Compliance")

    def test_no_label(self) -> None:
        assert detect_unit_label("Fire safety") is None
        assert detect_unit_label("NSW C4D12 Fire doors") is None

    def test_specification_clause(self) -> None:
        assert classify_label("S5C2", "") == ("SPECIFICATION_CLAUSE", ("SPECIFICATION_CLAUSE:S5C2",))

    def test_context_agrees_with_suffix(self) -> None:
        assert classify_label("C2D5", labels.CTX_DTS) == ("DTS_PROVISION", ())

    def test_suffix_wins_over_context_with_warning(self) -> None:
        unit_type, warnings = classify_label("C2D5", labels.CTX_PERFORMANCE)
        assert unit_type == "DTS_PROVISION"
        assert warnings == ("CONTEXT_INFERRED_FROM_LABEL:C2D5",)

    def test_context_used_when_suffix_unknown(self) -> None:
        assert classify_label("B1X1", labels.CTX_DTS) == ("DTS_PROVISION", ())

    def test_missing_context(self) -> None:
        assert classify_label("B1X1", "") == ("OTHER", ("MISSING_CONTEXT_FOR_LABEL:B1X1",))


class TestJurisdictionVocabulary:
    def test_codes_are_case_sensitive(self) -> None:
        assert has_jurisdiction("In NSW only")
        assert not has_jurisdiction("the act of building in wa")

    def test_reference_only(self) -> None:
        assert is_reference_only("Refer to NSW E2D16")
        assert not is_reference_only("In NSW delete C4D12")
        assert not is_reference_only("See NSW C4D12 which is deleted")


class TestParagraphRules:
    def test_rule_order(self) -> None:
        cases = {
            "---": "separator",
            "Part B1 Structural provisions": "boundary",
            "Introduction to this Part": "boundary",
            "Deemed-to-Satisfy Provisions": "context",
            "Insert NSW Table D2.1": "insert_marker",
            "Table Notes": "table_notes",
            "NSW Table D2.1": "state_asset",
            "NSW C4D12 Fire doors": "state_label",
            "Note: see Specification 7.": "note",
            "Explanatory Information: background": "explanatory",
            "Exception: small buildings": "exception",
            "C2D5 Fire hazard": "labelled",
            "Walls must be rated.": "plain",
        }
        for text, expected in cases.items():
            assert classify_paragraph(text) == expected, text

    def test_boundary_requires_heading_shape(self) -> None:
        assert not is_boundary_line("Part B1 applies to all buildings.")
        assert not is_boundary_line("Part B1 " + "x" * 130)
        assert is_boundary_line("Section C Fire resistance")
