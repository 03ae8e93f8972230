"""Block segmentation over an element tree.

Walks the document depth-first and emits an ordered sequence of typed
blocks: headings, paragraphs, tables (raw markup) and figures (alt text).
Each block carries a ``position`` incremented once per emission.

The walker depends only on :class:`ElementLike` (tag name, ordered
children and text nodes, text content, attribute lookup, raw markup).
A BeautifulSoup adapter is provided; any other tree can be wrapped the same way.

Container rule:
- Heading (h1-h6): emits its whole text, no recursion.
- Leaf block (p/li/blockquote/div without block-level children and
  without a table): emits its whole text as a paragraph, followed by a
  figure for every image it holds.
- Any other element: walks its content in document order.  Runs of
  inline text between block-level children are emitted as paragraphs,
  so lead text in a container ("(a) ... ; and" before a nested list)
  is kept.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, TypeAlias

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from ncc_units.html_utils import normalize_whitespace

# ---------------------------------------------------------------------------
# Tree capability
# ---------------------------------------------------------------------------


class ElementLike(Protocol):
    """Minimal tree capability the segmenter needs."""

    @property
    def tag_name(self) -> str: ...

    @property
    def children(self) -> Sequence[ElementLike]: ...

    @property
    def contents(self) -> Sequence[ElementLike | str]: ...

    @property
    def text_content(self) -> str: ...

    @property
    def markup(self) -> str: ...

    def attribute(self, name: str) -> str | None: ...


class SoupElement:
    """:class:`ElementLike` adapter over a BeautifulSoup ``Tag``."""

    __slots__ = ("_tag",)

    def __init__(self, tag: Tag) -> None:
        self._tag = tag

    @property
    def tag_name(self) -> str:
        return (self._tag.name or "").lower()

    @property
    def children(self) -> Sequence[SoupElement]:
        return [SoupElement(c) for c in self._tag.children if isinstance(c, Tag)]

    @property
    def contents(self) -> Sequence[SoupElement | str]:
        """Child elements and text nodes in document order; comments dropped."""
        items: list[SoupElement | str] = []
        for c in self._tag.children:
            if isinstance(c, Tag):
                items.append(SoupElement(c))
            elif isinstance(c, NavigableString) and not isinstance(c, PreformattedString):
                items.append(str(c))
        return items

    @property
    def text_content(self) -> str:
        return self._tag.get_text()

    @property
    def markup(self) -> str:
        return str(self._tag)

    def attribute(self, name: str) -> str | None:
        value = self._tag.get(name)
        if value is None:
            return None
        if isinstance(value, list):
            return " ".join(value)
        return str(value)


def parse_html(html: str) -> SoupElement:
    """Parse *html* with the stdlib-backed ``html.parser`` and wrap the root."""
    soup = BeautifulSoup(html or "", "html.parser")
    body = soup.find("body")
    return SoupElement(body if isinstance(body, Tag) else soup)


# ---------------------------------------------------------------------------
# Block types
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class HeadingBlock:
    position: int
    level: int
    text: str


@dataclass(frozen=True, slots=True)
class ParagraphBlock:
    position: int
    text: str


@dataclass(frozen=True, slots=True)
class TableBlock:
    position: int
    markup: str                   # outer <table> markup, nested tables included
    caption: str = ""             # explicit <caption> text, if any


@dataclass(frozen=True, slots=True)
class FigureBlock:
    position: int
    alt_text: str


Block: TypeAlias = HeadingBlock | ParagraphBlock | TableBlock | FigureBlock


# ---------------------------------------------------------------------------
# Segmenter
# ---------------------------------------------------------------------------

_HEADING_TAGS: frozenset[str] = frozenset({"h1", "h2", "h3", "h4", "h5", "h6"})
_PARAGRAPH_TAGS: frozenset[str] = frozenset({"p", "li", "blockquote", "div"})
_BLOCK_CHILD_TAGS: frozenset[str] = (
    _PARAGRAPH_TAGS | _HEADING_TAGS | frozenset({"ul", "ol", "table", "section", "article"})
)
_NOISE_TAGS: frozenset[str] = frozenset({"script", "style", "noscript", "head"})


def _collapse(text: str) -> str:
    return " ".join(normalize_whitespace(text).split())


def _contains_tag(node: ElementLike, tag: str) -> bool:
    for child in node.children:
        if child.tag_name == tag or _contains_tag(child, tag):
            return True
    return False


def _images(node: ElementLike) -> list[ElementLike]:
    found: list[ElementLike] = []
    for child in node.children:
        if child.tag_name == "img":
            found.append(child)
        else:
            found.extend(_images(child))
    return found


def _table_caption(node: ElementLike) -> str:
    for child in node.children:
        if child.tag_name == "caption":
            return _collapse(child.text_content)
    return ""


def _needs_walk(node: ElementLike) -> bool:
    """True when *node* is, or holds, something that emits its own block."""
    tag = node.tag_name
    if tag in _BLOCK_CHILD_TAGS or tag == "img":
        return True
    return any(_needs_walk(child) for child in node.children)


def segment_blocks(root: ElementLike) -> list[Block]:
    """Walk *root* depth-first and return the ordered block sequence."""
    blocks: list[Block] = []

    def flush(run: list[str]) -> None:
        text = _collapse("".join(run))
        run.clear()
        if text:
            blocks.append(ParagraphBlock(position=len(blocks), text=text))

    def walk(node: ElementLike) -> None:
        tag = node.tag_name
        if tag in _NOISE_TAGS:
            return
        if tag == "table":
            blocks.append(TableBlock(
                position=len(blocks),
                markup=node.markup,
                caption=_table_caption(node),
            ))
            return  # nested tables stay inside the outer markup
        if tag == "img":
            alt = _collapse(node.attribute("alt") or "")
            blocks.append(FigureBlock(position=len(blocks), alt_text=alt))
            return
        if tag in _HEADING_TAGS:
            text = _collapse(node.text_content)
            if text:
                blocks.append(HeadingBlock(position=len(blocks), level=int(tag[1]), text=text))
            return
        if tag in _PARAGRAPH_TAGS:
            has_block_child = any(c.tag_name in _BLOCK_CHILD_TAGS for c in node.children)
            if not has_block_child and not _contains_tag(node, "table"):
                text = _collapse(node.text_content)
                if text:
                    blocks.append(ParagraphBlock(position=len(blocks), text=text))
                    for img in _images(node):
                        walk(img)
                    return
        run: list[str] = []
        for item in node.contents:
            if isinstance(item, str):
                run.append(item)
            elif item.tag_name in _NOISE_TAGS:
                continue
            elif _needs_walk(item):
                flush(run)
                walk(item)
            else:
                run.append(item.text_content)
        flush(run)

    walk(root)
    return blocks
