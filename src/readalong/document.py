from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Iterator, Mapping, Union

from bs4 import NavigableString, Tag
from bs4.element import PreformattedString

from .alignment import format_clock_value, parse_clock_value, soup_from_markup
from .logging_utils import get_logger

_LOGGER = get_logger(__name__)

# Inline TEI elements rendered as plain, non-clickable text.
NON_WORD_TAGS = {"c", "pc", "seg", "span"}
ANCHOR_TAG = "anchor"
MARKER_SUFFIX = "-svg"

__all__ = [
    "Word",
    "NonWord",
    "TextUnit",
    "Sentence",
    "Paragraph",
    "Page",
    "AnchorMark",
    "Document",
    "parse_document",
    "marker_id_for",
    "anchor_element_attributes",
]


@dataclass(slots=True)
class Word:
    id: str
    text: str
    attributes: dict[str, str] = field(default_factory=dict)
    order: int = -1

    @property
    def is_word(self) -> bool:
        return True


@dataclass(slots=True)
class NonWord:
    id: str
    text: str
    attributes: dict[str, str] = field(default_factory=dict)
    tag: str | None = None

    @property
    def is_word(self) -> bool:
        return False

    @property
    def is_marker(self) -> bool:
        return self.tag == ANCHOR_TAG and self.id.endswith(MARKER_SUFFIX)


TextUnit = Union[Word, NonWord]


@dataclass(slots=True)
class Sentence:
    units: list[TextUnit]
    attributes: dict[str, str] = field(default_factory=dict)
    tag: str = "s"

    @property
    def id(self) -> str | None:
        return _element_id(self.attributes)

    @property
    def language(self) -> str | None:
        return self.attributes.get("lang") or self.attributes.get("xml:lang")

    @property
    def is_translation(self) -> bool:
        return "translation" in self.attributes.get("class", "").split()


@dataclass(slots=True)
class Paragraph:
    sentences: list[Sentence]
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class Page:
    id: str
    paragraphs: list[Paragraph]
    attributes: dict[str, str] = field(default_factory=dict)
    img: str | None = None


@dataclass(frozen=True, slots=True)
class AnchorMark:
    """An ``<anchor>`` found in the source; ``boundary`` counts the words before it."""

    id: str
    time_ms: int
    boundary: int


def marker_id_for(anchor_id: str) -> str:
    return f"{anchor_id}{MARKER_SUFFIX}"


@dataclass(slots=True)
class Document:
    pages: list[Page] = field(default_factory=list)
    anchor_marks: list[AnchorMark] = field(default_factory=list)
    _words: list[Word] = field(init=False, repr=False, default_factory=list)
    _word_by_id: dict[str, Word] = field(init=False, repr=False, default_factory=dict)
    _locations: dict[str, tuple[Page, Paragraph, Sentence]] = field(
        init=False, repr=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        self._reindex()

    def _reindex(self) -> None:
        self._words = []
        self._word_by_id = {}
        self._locations = {}
        for page in self.pages:
            for paragraph in page.paragraphs:
                for sentence in paragraph.sentences:
                    for unit in sentence.units:
                        self._locations.setdefault(unit.id, (page, paragraph, sentence))
                        if isinstance(unit, Word) and unit.id not in self._word_by_id:
                            self._words.append(unit)
                            self._word_by_id[unit.id] = unit

    def __len__(self) -> int:
        return len(self.pages)

    @property
    def is_empty(self) -> bool:
        return not self.pages

    @property
    def has_translations(self) -> bool:
        return any(
            sentence.is_translation
            for page in self.pages
            for paragraph in page.paragraphs
            for sentence in paragraph.sentences
        )

    def words(self) -> Iterator[Word]:
        return iter(self._words)

    def word_ids(self) -> list[str]:
        return [word.id for word in self._words]

    def word(self, unit_id: str) -> Word | None:
        return self._word_by_id.get(unit_id)

    def page_of(self, unit_id: str) -> str | None:
        location = self._locations.get(unit_id)
        return location[0].id if location else None

    def sentence_of(self, unit_id: str) -> Sentence | None:
        location = self._locations.get(unit_id)
        return location[2] if location else None

    def page_index(self, page_id: str) -> int | None:
        for index, page in enumerate(self.pages):
            if page.id == page_id:
                return index
        return None

    def insert_marker(
        self,
        unit_id: str,
        side: str,
        marker: NonWord,
    ) -> None:
        """
        Insert an auxiliary marker unit next to ``unit_id``.

        Markers placed before a word go directly in front of it; markers
        placed after a word go behind it and behind any marker already
        following it, so left-to-right order matches insertion order.
        """
        sentence = self.sentence_of(unit_id)
        if sentence is None:
            raise KeyError(unit_id)
        units = sentence.units
        position = next(i for i, unit in enumerate(units) if unit.id == unit_id)
        if side == "before":
            units.insert(position, marker)
        else:
            insert_at = position + 1
            while insert_at < len(units) and isinstance(units[insert_at], NonWord) and units[insert_at].is_marker:
                insert_at += 1
            units.insert(insert_at, marker)
        self._locations[marker.id] = self._locations[unit_id]

    def remove_marker(self, marker_id: str) -> bool:
        sentence = self.sentence_of(marker_id)
        if sentence is None:
            return False
        sentence.units[:] = [unit for unit in sentence.units if unit.id != marker_id]
        self._locations.pop(marker_id, None)
        return True

    def marker(self, marker_id: str) -> NonWord | None:
        sentence = self.sentence_of(marker_id)
        if sentence is None:
            return None
        for unit in sentence.units:
            if unit.id == marker_id and isinstance(unit, NonWord):
                return unit
        return None

    def to_tei(self) -> str:
        """Serialize the tree (including anchor markers) back into TEI text."""
        root = ET.Element("TEI")
        body = ET.SubElement(ET.SubElement(root, "text"), "body")
        for page in self.pages:
            page_attrs = dict(page.attributes)
            page_attrs["type"] = "page"
            if not _element_id(page_attrs):
                page_attrs["id"] = page.id
            page_el = ET.SubElement(body, "div", page_attrs)
            if page.img:
                ET.SubElement(page_el, "graphic", {"url": page.img})
            for paragraph in page.paragraphs:
                p_el = ET.SubElement(page_el, "p", dict(paragraph.attributes))
                for sentence in paragraph.sentences:
                    s_el = ET.SubElement(p_el, sentence.tag or "s", dict(sentence.attributes))
                    for unit in sentence.units:
                        _append_unit(s_el, unit)
        return ET.tostring(root, encoding="unicode")


def _append_unit(parent: ET.Element, unit: TextUnit) -> None:
    if isinstance(unit, Word):
        attrs = dict(unit.attributes)
        if not _element_id(attrs):
            attrs["id"] = unit.id
        child = ET.SubElement(parent, "w", attrs)
        child.text = unit.text
        return
    if unit.tag is None:
        _append_text(parent, unit.text)
        return
    child = ET.SubElement(parent, unit.tag, dict(unit.attributes))
    if unit.tag != ANCHOR_TAG:
        child.text = unit.text


def _append_text(parent: ET.Element, text: str) -> None:
    if not text:
        return
    if len(parent):
        last = parent[-1]
        last.tail = (last.tail or "") + text
    else:
        parent.text = (parent.text or "") + text


def _element_id(attributes: Mapping[str, str]) -> str | None:
    return attributes.get("id") or attributes.get("xml:id") or None


def _attributes(tag: Tag) -> dict[str, str]:
    attrs: dict[str, str] = {}
    for key, value in tag.attrs.items():
        if isinstance(value, (list, tuple)):
            value = " ".join(str(item) for item in value)
        attrs[str(key)] = str(value)
    return attrs


class _DocumentBuilder:
    def __init__(self) -> None:
        self.word_count = 0
        self.sentence_count = 0
        self.anchor_marks: list[AnchorMark] = []
        self.seen_word_ids: set[str] = set()

    def page(self, element: Tag) -> Page | None:
        attrs = _attributes(element)
        page_id = _element_id(attrs)
        if not page_id:
            _LOGGER.debug("Skipping page without id")
            return None
        img: str | None = None
        paragraphs: list[Paragraph] = []
        for child in element.children:
            if not isinstance(child, Tag):
                continue
            if child.name == "graphic" and img is None:
                url = child.get("url")
                if url:
                    img = str(url)
            elif child.name == "p":
                paragraphs.append(self.paragraph(child))
            elif child.name == ANCHOR_TAG:
                self.anchor(child)
        page = Page(id=page_id, paragraphs=paragraphs, attributes=attrs)
        if img is not None:
            page.img = img
        return page

    def paragraph(self, element: Tag) -> Paragraph:
        sentences: list[Sentence] = []
        for child in element.children:
            if not isinstance(child, Tag):
                continue
            if child.name == ANCHOR_TAG:
                self.anchor(child)
                continue
            if not child.contents:
                continue
            sentences.append(self.sentence(child))
        return Paragraph(sentences=sentences, attributes=_attributes(element))

    def sentence(self, element: Tag) -> Sentence:
        attrs = _attributes(element)
        prefix = _element_id(attrs) or f"P{self.sentence_count}"
        self.sentence_count += 1
        units: list[TextUnit] = []
        for index, child in enumerate(element.contents):
            if isinstance(child, PreformattedString):
                continue
            if isinstance(child, NavigableString):
                units.append(NonWord(id=f"{prefix}text{index}", text=str(child)))
                continue
            if not isinstance(child, Tag):
                continue
            if child.name == "w":
                word = self.word(child)
                if word is not None:
                    units.append(word)
            elif child.name == ANCHOR_TAG:
                self.anchor(child)
            elif child.name in NON_WORD_TAGS:
                child_attrs = _attributes(child)
                units.append(
                    NonWord(
                        id=_element_id(child_attrs) or f"{prefix}text{index}",
                        text=child.get_text(),
                        attributes=child_attrs,
                        tag=child.name,
                    )
                )
            else:
                _LOGGER.debug("Skipping unsupported <%s> inside sentence %s", child.name, prefix)
        return Sentence(units=units, attributes=attrs, tag=element.name or "s")

    def word(self, element: Tag) -> Word | None:
        attrs = _attributes(element)
        word_id = _element_id(attrs)
        if not word_id:
            _LOGGER.debug("Skipping <w> without id")
            return None
        if word_id in self.seen_word_ids:
            _LOGGER.warning("Duplicate word id %s in text document", word_id)
        self.seen_word_ids.add(word_id)
        word = Word(id=word_id, text=element.get_text(), attributes=attrs, order=self.word_count)
        self.word_count += 1
        return word

    def anchor(self, element: Tag) -> None:
        attrs = _attributes(element)
        time_ms = parse_clock_value(attrs.get("time"))
        if time_ms is None:
            _LOGGER.debug("Skipping <anchor> without a usable time attribute")
            return
        anchor_id = _element_id(attrs) or f"anchor{len(self.anchor_marks)}"
        self.anchor_marks.append(AnchorMark(id=anchor_id, time_ms=time_ms, boundary=self.word_count))


def parse_document(source: str | bytes | None) -> Document:
    """
    Parse a TEI-like text document into a ``Document`` tree.

    Never raises on malformed input: invalid nodes are dropped and a source
    without pages produces an empty document.
    """
    if not source:
        return Document()
    try:
        soup = soup_from_markup(source)
    except Exception as exc:  # parser backends raise assorted errors on garbage
        _LOGGER.warning("Text document could not be parsed: %s", exc)
        return Document()
    builder = _DocumentBuilder()
    pages: list[Page] = []
    for element in soup.find_all("div", attrs={"type": "page"}):
        page = builder.page(element)
        if page is not None:
            pages.append(page)
    return Document(pages=pages, anchor_marks=builder.anchor_marks)


def anchor_element_attributes(anchor_id: str, time_ms: int) -> dict[str, str]:
    return {"xml:id": anchor_id, "time": format_clock_value(time_ms) + "s"}
