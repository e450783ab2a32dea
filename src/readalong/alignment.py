from __future__ import annotations

import re
import warnings
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Iterator

from bs4 import BeautifulSoup, FeatureNotFound, Tag

from .logging_utils import get_logger

if TYPE_CHECKING:
    from .document import Document

_LOGGER = get_logger(__name__)

ALL_KEY = "all"
SMIL_NAMESPACE = "http://www.w3.org/ns/SMIL"
SMIL_VERSION = "3.0"

_CLOCK_RE = re.compile(
    r"^(?:(?:(?P<hours>\d+):)?(?P<minutes>\d{1,2}):)?(?P<seconds>\d+(?:\.\d+)?)$"
)
_TIMECOUNT_RE = re.compile(r"^(?P<value>\d+(?:\.\d+)?|\.\d+)\s*(?P<unit>h|min|s|ms)?$")

__all__ = [
    "ALL_KEY",
    "AlignmentEntry",
    "AlignmentTable",
    "OrderViolation",
    "parse_alignment",
    "parse_clock_value",
    "format_clock_value",
    "render_smil",
]


def parse_clock_value(value: str | None) -> int | None:
    """
    Convert a SMIL clock value into integer milliseconds.

    Accepts bare seconds (``1.25``), timecounts (``1.25s``, ``250ms``,
    ``2min``, ``1h``) and clock forms (``01:02.5``, ``1:00:02.5``).
    Returns ``None`` for anything else.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    match = _TIMECOUNT_RE.match(text)
    if match:
        number = float(match.group("value"))
        unit = match.group("unit") or "s"
        scale = {"h": 3_600_000, "min": 60_000, "s": 1000, "ms": 1}[unit]
        return int(round(number * scale))
    match = _CLOCK_RE.match(text)
    if match:
        hours = int(match.group("hours") or 0)
        minutes = int(match.group("minutes") or 0)
        seconds = float(match.group("seconds"))
        return int(round(((hours * 60 + minutes) * 60 + seconds) * 1000))
    return None


def format_clock_value(ms: int) -> str:
    return f"{ms / 1000:.3f}"


@dataclass(frozen=True, slots=True)
class AlignmentEntry:
    id: str
    start_ms: int
    duration_ms: int

    @property
    def end_ms(self) -> int:
        return self.start_ms + self.duration_ms


@dataclass(frozen=True, slots=True)
class OrderViolation:
    id: str
    start_ms: int
    previous_id: str
    previous_start_ms: int


class AlignmentTable:
    """
    Unit id -> ``(start_ms, duration_ms)`` in insertion order.

    The reserved ``"all"`` key spans the whole recording; it is installed
    once the audio duration is known and never comes from a SMIL source.
    ``resolve_at`` assumes insertion order matches temporal order.
    """

    def __init__(
        self,
        entries: Iterable[tuple[str, int, int]] | None = None,
        *,
        text_src: str | None = None,
        audio_src: str | None = None,
    ) -> None:
        self._entries: dict[str, tuple[int, int]] = {}
        self._total: int | None = None
        self._scan: list[tuple[str, int, int]] | None = None
        self.text_src = text_src
        self.audio_src = audio_src
        for unit_id, start_ms, duration_ms in entries or ():
            self.set(unit_id, start_ms, duration_ms)

    def set(self, unit_id: str, start_ms: int, duration_ms: int) -> None:
        if unit_id == ALL_KEY:
            raise ValueError(f"'{ALL_KEY}' is reserved; use install_total()")
        if start_ms < 0 or duration_ms < 0:
            raise ValueError(f"Negative timing for {unit_id}: {start_ms}, {duration_ms}")
        self._entries[unit_id] = (int(start_ms), int(duration_ms))
        self._scan = None

    def install_total(self, duration_ms: int) -> None:
        self._total = max(0, int(duration_ms))

    def total_duration_ms(self) -> int | None:
        return self._total

    def lookup(self, unit_id: str) -> tuple[int, int] | None:
        if unit_id == ALL_KEY:
            return (0, self._total) if self._total is not None else None
        return self._entries.get(unit_id)

    def __contains__(self, unit_id: object) -> bool:
        if unit_id == ALL_KEY:
            return self._total is not None
        return unit_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def is_empty(self) -> bool:
        return not self._entries

    def ids(self) -> list[str]:
        return list(self._entries)

    def entries(self) -> Iterator[AlignmentEntry]:
        for unit_id, (start_ms, duration_ms) in self._entries.items():
            yield AlignmentEntry(unit_id, start_ms, duration_ms)

    def as_dict(self) -> dict[str, list[int]]:
        payload = {unit_id: [start, duration] for unit_id, (start, duration) in self._entries.items()}
        if self._total is not None:
            payload[ALL_KEY] = [0, self._total]
        return payload

    def resolve_at(self, seconds: float) -> str | None:
        """Return the unit whose ``[start, next start)`` interval holds ``seconds``."""
        position = seconds * 1000
        if self._scan is None:
            self._scan = [(unit_id, start, duration) for unit_id, (start, duration) in self._entries.items()]
        scan = self._scan
        for index, (unit_id, start, duration) in enumerate(scan):
            if index + 1 < len(scan):
                upper = scan[index + 1][1]
            elif self._total is not None:
                upper = self._total
            else:
                upper = start + duration
            if start <= position < upper:
                return unit_id
        return None

    def order_violations(self, document: "Document") -> list[OrderViolation]:
        """Aligned words whose start precedes the previous aligned word's start."""
        violations: list[OrderViolation] = []
        previous: tuple[str, int] | None = None
        for word in document.words():
            entry = self._entries.get(word.id)
            if entry is None:
                continue
            if previous is not None and entry[0] < previous[1]:
                violations.append(OrderViolation(word.id, entry[0], previous[0], previous[1]))
            previous = (word.id, entry[0])
        return violations

    def to_smil(self) -> str:
        return render_smil(self.entries(), text_src=self.text_src, audio_src=self.audio_src)


def soup_from_markup(source: str | bytes) -> BeautifulSoup:
    for parser in ("lxml-xml", "xml"):
        try:
            return BeautifulSoup(source, parser)
        except FeatureNotFound:
            continue
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return BeautifulSoup(source, "html.parser")


def _direct_child(element: Tag, name: str) -> Tag | None:
    for child in element.children:
        if isinstance(child, Tag) and child.name == name:
            return child
    return None


def _split_src(src: str) -> tuple[str | None, str]:
    if "#" not in src:
        return None, src
    base, _, fragment = src.rpartition("#")
    return (base or None), fragment


def parse_alignment(source: str | bytes | None) -> AlignmentTable:
    """
    Parse a SMIL alignment document into an ``AlignmentTable``.

    Only ``par`` elements directly under ``smil/body`` are read. Pars lacking
    a text reference or a clip begin/end are skipped; malformed or empty
    input yields an empty table. Repeated ids keep the last timing.
    """
    table = AlignmentTable()
    if not source:
        return table
    try:
        soup = soup_from_markup(source)
    except Exception as exc:  # parser backends raise assorted errors on garbage
        _LOGGER.warning("Alignment document could not be parsed: %s", exc)
        return table
    root = soup.find("smil")
    if not isinstance(root, Tag):
        return table
    body = _direct_child(root, "body")
    if body is None:
        return table
    for par in body.find_all("par", recursive=False):
        text_el = _direct_child(par, "text")
        audio_el = _direct_child(par, "audio")
        if text_el is None or audio_el is None:
            continue
        src = text_el.get("src")
        if not src:
            continue
        text_src, unit_id = _split_src(str(src))
        begin = parse_clock_value(audio_el.get("clipBegin"))
        end = parse_clock_value(audio_el.get("clipEnd"))
        if not unit_id or begin is None or end is None:
            _LOGGER.debug("Skipping incomplete par for %s", src)
            continue
        if unit_id == ALL_KEY:
            _LOGGER.warning("Ignoring alignment entry using the reserved id '%s'", ALL_KEY)
            continue
        if unit_id in table:
            _LOGGER.warning("Duplicate alignment id %s; keeping the last timing", unit_id)
        table.set(unit_id, begin, max(0, end - begin))
        if table.text_src is None and text_src:
            table.text_src = text_src
        audio_src = audio_el.get("src")
        if table.audio_src is None and audio_src:
            table.audio_src = str(audio_src)
    return table


def render_smil(
    entries: Iterable[AlignmentEntry],
    *,
    text_src: str | None = None,
    audio_src: str | None = None,
) -> str:
    """Write entries as a SMIL document that ``parse_alignment`` reads back."""
    root = ET.Element("smil", {"xmlns": SMIL_NAMESPACE, "version": SMIL_VERSION})
    body = ET.SubElement(root, "body")
    text_prefix = f"{text_src}#" if text_src else "#"
    for entry in entries:
        par = ET.SubElement(body, "par", {"id": f"par-{entry.id}"})
        ET.SubElement(par, "text", {"src": f"{text_prefix}{entry.id}"})
        audio_attrs = {
            "clipBegin": format_clock_value(entry.start_ms),
            "clipEnd": format_clock_value(entry.end_ms),
        }
        if audio_src:
            audio_attrs = {"src": audio_src, **audio_attrs}
        ET.SubElement(par, "audio", audio_attrs)
    ET.indent(root, space="  ")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode") + "\n"
