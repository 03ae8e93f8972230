"""Tests for ncc_units.blocks segmentation."""
from ncc_units.blocks import (
    FigureBlock,
    HeadingBlock,
    ParagraphBlock,
    TableBlock,
    parse_html,
    segment_blocks,
)


def _blocks(html: str) -> list:
    return segment_blocks(parse_html(html))


class TestSegmentBlocks:
    def test_heading_and_paragraph(self) -> None:
        blocks = _blocks("<html><body><h1>Part A1</h1><p>Hello   world</p></body></html>")
        assert blocks == [
            HeadingBlock(position=0, level=1, text="Part A1"),
            ParagraphBlock(position=1, text="Hello world"),
        ]

    def test_container_recurses(self) -> None:
        blocks = _blocks("<div><p>One</p><div><p>Two</p></div></div>")
        assert [b.text for b in blocks if isinstance(b, ParagraphBlock)] == ["One", "Two"]

    def test_container_lead_text_kept(self) -> None:
        blocks = _blocks("<div>Lead national sentence must be kept.<p>Child paragraph.</p></div>")
        assert blocks == [
            ParagraphBlock(position=0, text="Lead national sentence must be kept."),
            ParagraphBlock(position=1, text="Child paragraph."),
        ]

    def test_list_item_text_before_nested_list(self) -> None:
        blocks = _blocks(
            "<ul><li>(a) a wall must be <b>rated</b>; and"
            "<ul><li>(i) sub item</li></ul> tail text</li></ul>"
        )
        assert blocks == [
            ParagraphBlock(position=0, text="(a) a wall must be rated; and"),
            ParagraphBlock(position=1, text="(i) sub item"),
            ParagraphBlock(position=2, text="tail text"),
        ]

    def test_leaf_div_is_paragraph(self) -> None:
        blocks = _blocks("<div>Just <b>text</b></div>")
        assert blocks == [ParagraphBlock(position=0, text="Just text")]

    def test_image_inside_paragraph_follows_it(self) -> None:
        blocks = _blocks('<p>Text <img alt="Stair  diagram"></p>')
        assert isinstance(blocks[0], ParagraphBlock)
        assert blocks[1] == FigureBlock(position=1, alt_text="Stair diagram")

    def test_bare_image_without_alt(self) -> None:
        blocks = _blocks("<body><img src='x.png'></body>")
        assert blocks == [FigureBlock(position=0, alt_text="")]

    def test_table_keeps_markup_and_caption(self) -> None:
        blocks = _blocks(
            "<table><caption>Table D2.1 Widths</caption>"
            "<tr><td>a</td></tr></table>"
        )
        assert len(blocks) == 1
        table = blocks[0]
        assert isinstance(table, TableBlock)
        assert table.caption == "Table D2.1 Widths"
        assert table.markup.startswith("<table>")

    def test_nested_tables_emit_one_block(self) -> None:
        blocks = _blocks(
            "<table><tr><td><table><tr><td>inner</td></tr></table></td></tr></table>"
        )
        assert len(blocks) == 1
        assert "inner" in blocks[0].markup

    def test_paragraph_holding_table_recurses(self) -> None:
        blocks = _blocks("<div><table><tr><td>x</td></tr></table></div>")
        assert len(blocks) == 1
        assert isinstance(blocks[0], TableBlock)

    def test_noise_and_empty_paragraphs_skipped(self) -> None:
        blocks = _blocks("<script>var x;</script><style>p{}</style><p>   </p><p>Kept</p>")
        assert blocks == [ParagraphBlock(position=0, text="Kept")]

    def test_positions_are_sequential(self) -> None:
        blocks = _blocks("<h2>A</h2><p>b</p><table><tr><td>c</td></tr></table><p>d</p>")
        assert [b.position for b in blocks] == [0, 1, 2, 3]

    def test_empty_document(self) -> None:
        assert _blocks("") == []
