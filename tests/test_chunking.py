"""Tests for ncc_units.chunking."""
from ncc_units.anchors import AnchorRegistry
from ncc_units.chunking import CHUNK_WARNING, chunk_rows, split_into_chunks
from ncc_units.unit_types import BuildConfig, PipelineOptions, make_row

CONFIG = BuildConfig(doc_id="doc1", volume="V1")


def _words(n: int) -> str:
    return " ".join(f"w{i}" for i in range(n))


class TestSplitIntoChunks:
    def test_short_text_single_chunk(self) -> None:
        assert split_into_chunks("a  b\nc", max_words=10, min_words=2) == ["a b c"]

    def test_empty(self) -> None:
        assert split_into_chunks("", max_words=10, min_words=2) == []

    def test_even_split(self) -> None:
        chunks = split_into_chunks(_words(10), max_words=4, min_words=2)
        assert [len(c.split()) for c in chunks] == [4, 4, 2]

    def test_tail_never_undersized(self) -> None:
        text = _words(9)
        chunks = split_into_chunks(text, max_words=4, min_words=3)
        sizes = [len(c.split()) for c in chunks]
        assert all(s <= 4 for s in sizes)
        assert sizes[-1] >= 3
        assert " ".join(chunks) == text


class TestChunkRows:
    def test_long_row_split_and_children_remapped(self) -> None:
        registry = AnchorRegistry()
        registry.assign("A")
        registry.assign("B")
        long_row = make_row(CONFIG, unit_type="DTS_PROVISION", anchor_id="A", unit_label="C2D5", text=_words(1000))
        child = make_row(CONFIG, unit_type="NOTE", anchor_id="B", parent_anchor_id="A", text="note")
        options = PipelineOptions(max_words=600, min_words=200)

        out = chunk_rows([long_row, child], registry, options)

        assert [r.anchor_id for r in out] == ["A::c01", "A::c02", "B"]
        assert [len(r.text.split()) for r in out[:2]] == [600, 400]
        assert all(CHUNK_WARNING in r.warnings for r in out[:2])
        assert all(r.unit_label == "C2D5" for r in out[:2])
        assert out[2].parent_anchor_id == "A::c01"
        assert "A" not in registry

    def test_short_rows_untouched(self) -> None:
        registry = AnchorRegistry()
        row = make_row(CONFIG, unit_type="OTHER", anchor_id="A", text="short")
        assert chunk_rows([row], registry, PipelineOptions()) == [row]
