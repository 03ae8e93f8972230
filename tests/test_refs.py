"""Tests for ncc_units.refs extraction."""
from ncc_units.refs import (
    building_classes,
    contains_must,
    contains_shall,
    external_refs,
    extract_conditions,
    extract_exception_clauses,
    extract_requirements,
    extract_standards,
    internal_refs,
    legacy_refs,
)


class TestInternalRefs:
    def test_excludes_legacy_and_standards(self) -> None:
        text = "Comply with C2D5 and [2019: FP1.6] and AS 1530.4"
        assert internal_refs(text, "C2D6") == ("C2D5",)

    def test_excludes_own_label(self) -> None:
        assert internal_refs("See D2.1 and C2D5", "C2D5") == ("D2.1",)

    def test_edition_stamp_not_a_ref(self) -> None:
        assert internal_refs("NCC2022 edition") == ()

    def test_empty(self) -> None:
        assert internal_refs("") == ()

    def test_legacy_refs(self) -> None:
        assert legacy_refs("[2019: FP1.6] and [2016: C1.10]") == ("2019: FP1.6", "2016: C1.10")


class TestExternalRefs:
    def test_standards_in_order(self) -> None:
        text = "to AS/NZS 1170.2 and AS 1530.4 and ISO 9239-1"
        assert external_refs(text) == ("AS/NZS 1170.2", "AS 1530.4", "ISO 9239-1")

    def test_extract_standards_pipe_joined(self) -> None:
        assert extract_standards("AS 1530.4 and AS 1530.4") == "AS 1530.4"


class TestSentenceExtraction:
    TEXT = "Walls must be rated. If the building is Class 2, doors must close. This does not apply to sheds."

    def test_conditions(self) -> None:
        assert extract_conditions(self.TEXT) == "If the building is Class 2, doors must close."

    def test_exceptions(self) -> None:
        assert extract_exception_clauses(self.TEXT) == "This does not apply to sheds."

    def test_requirements(self) -> None:
        assert extract_requirements(self.TEXT) == (
            "Walls must be rated. | If the building is Class 2, doors must close."
        )

    def test_shall_must_flags(self) -> None:
        assert contains_shall("It shall be provided")
        assert not contains_must("It shall be provided")
        assert contains_must("It must be provided")


class TestBuildingClasses:
    def test_range(self) -> None:
        assert building_classes("Class 2 to 9 buildings") == tuple(str(n) for n in range(2, 10))

    def test_pair_and_suffix(self) -> None:
        assert building_classes("Classes 2 and 3") == ("2", "3")
        assert building_classes("a Class 1a dwelling") == ("1a",)

    def test_none(self) -> None:
        assert building_classes("all buildings") == ()
