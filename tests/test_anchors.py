"""Tests for anchor construction and hierarchy tracking."""
from ncc_units.anchors import AnchorRegistry, anchor_base, slug
from ncc_units.hierarchy import HierarchyTracker, renumber_order_in_parent
from ncc_units.unit_types import BuildConfig, make_row

CONFIG = BuildConfig(doc_id="doc1", volume="V1")


class TestSlug:
    def test_slug(self) -> None:
        assert slug("Part A1: Interpreting the NCC") == "PART_A1_INTERPRETING_THE_NCC"

    def test_slug_length_bound(self) -> None:
        assert len(slug("x" * 500)) == 80

    def test_anchor_base(self) -> None:
        assert anchor_base("V1", "", "DTS_PROVISION", "C2D5") == "V1::ROOT::DTS_PROVISION::C2D5"
        assert anchor_base("", "Fire > Walls", "OTHER", "") == "NCC::FIRE_WALLS::OTHER::0"


class TestAnchorRegistry:
    def test_collision_gets_suffix_and_warning(self) -> None:
        registry = AnchorRegistry()
        assert registry.assign("A") == "A"
        assert registry.assign("A") == "A_2"
        assert registry.assign("A") == "A_3"
        assert registry.warnings == [
            "Duplicate anchor_id encountered: A -> A_2",
            "Duplicate anchor_id encountered: A -> A_3",
        ]

    def test_release_frees_id(self) -> None:
        registry = AnchorRegistry()
        registry.assign("A")
        registry.release("A")
        assert "A" not in registry
        assert registry.assign("A") == "A"
        assert registry.warnings == []

    def test_child(self) -> None:
        registry = AnchorRegistry()
        assert registry.child("V1::ROOT::TBL::1", "row 1") == "V1::ROOT::TBL::1::ROW_1"
        assert len(registry) == 1


class TestHierarchyTracker:
    def test_path_and_parent(self) -> None:
        tracker = HierarchyTracker()
        tracker.push(1, "SECTION C: Fire", "a1")
        tracker.push(2, "PART C2: Resistance", "a2")
        assert tracker.path == "SECTION C: Fire > PART C2: Resistance"
        assert tracker.parent_anchor == "a2"

        tracker.pop_to_level(2)
        assert tracker.path == "SECTION C: Fire"
        assert tracker.path_with("PART C3") == "SECTION C: Fire > PART C3"
        assert tracker.depth == 1

    def test_next_order_per_parent(self) -> None:
        tracker = HierarchyTracker()
        assert tracker.next_order("p") == 1
        assert tracker.next_order("p") == 2
        assert tracker.next_order("q") == 1
        assert tracker.next_order() == 1

    def test_renumber_is_dense(self) -> None:
        rows = [
            make_row(CONFIG, unit_type="OTHER", anchor_id="a", parent_anchor_id="p", order_in_parent=4),
            make_row(CONFIG, unit_type="OTHER", anchor_id="b", parent_anchor_id="q", order_in_parent=9),
            make_row(CONFIG, unit_type="OTHER", anchor_id="c", parent_anchor_id="p", order_in_parent=7),
        ]
        out = renumber_order_in_parent(rows)
        assert [r.order_in_parent for r in out] == [1, 1, 2]
