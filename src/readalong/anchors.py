from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from .alignment import AlignmentEntry, AlignmentTable, render_smil
from .config import DEFAULT_PALETTE
from .document import Document, NonWord, Word, anchor_element_attributes, marker_id_for
from .errors import (
    AnchorOrderingViolation,
    Diagnostic,
    NoAnchorsDefined,
    UnknownUnitError,
)
from .logging_utils import get_logger

_LOGGER = get_logger(__name__)

ANCHOR_SIDES = ("before", "after")

__all__ = [
    "ANCHOR_SIDES",
    "Anchor",
    "AnchorEditor",
    "ExportResult",
    "OrderingResult",
    "anchor_sort_key",
    "color_for",
    "export_alignment",
]


def color_for(index: int, palette: Sequence[str] = DEFAULT_PALETTE) -> str:
    if not palette:
        raise ValueError("palette must not be empty")
    return palette[index % len(palette)]


@dataclass(frozen=True, slots=True)
class Anchor:
    id: str
    unit_id: str
    side: str
    time_ms: int
    label: str
    color: str
    order: int
    sequence: int

    @property
    def seconds(self) -> float:
        return self.time_ms / 1000

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "unit_id": self.unit_id,
            "side": self.side,
            "time_ms": self.time_ms,
            "label": self.label,
            "color": self.color,
            "order": self.order,
            "sequence": self.sequence,
        }


def anchor_sort_key(anchor: Anchor) -> tuple[int, int]:
    return (anchor.order, anchor.sequence)


@dataclass(frozen=True, slots=True)
class OrderingResult:
    violation: AnchorOrderingViolation | None = None

    @property
    def ok(self) -> bool:
        return self.violation is None


@dataclass(frozen=True, slots=True)
class ExportResult:
    text: str | None = None
    diagnostic: Diagnostic | None = None

    @property
    def ok(self) -> bool:
        return self.diagnostic is None and self.text is not None


def _rescale(value: int, source: tuple[int, int], target: tuple[int, int]) -> int:
    s0, s1 = source
    t0, t1 = target
    span = s1 - s0
    if span <= 0:
        return t0
    # Integer half-up rounding keeps the mapping exact when source == target.
    return t0 + ((value - s0) * (t1 - t0) * 2 + span) // (2 * span)


def export_alignment(
    document: Document,
    table: AlignmentTable,
    anchors: Iterable[Anchor],
    *,
    text_src: str | None = None,
    audio_src: str | None = None,
) -> str:
    """
    Regenerate a SMIL document with intervals split at anchor boundaries.

    Aligned words are cut into segments wherever anchors sit. Each segment
    is stretched linearly into the window between the anchor before it and
    the anchor after it; the leading segment keeps its original start and
    the trailing one its original end. Re-importing the result and
    exporting again with the same anchors yields identical text.
    """
    words: list[Word] = [word for word in document.words() if table.lookup(word.id) is not None]
    timings = [table.lookup(word.id) for word in words]
    orders = [word.order for word in words]
    cuts: dict[int, list[int]] = {}
    for anchor in sorted(anchors, key=anchor_sort_key):
        cuts.setdefault(bisect_left(orders, anchor.order), []).append(anchor.time_ms)

    count = len(words)
    edges = sorted({0, count, *cuts})
    entries: list[AlignmentEntry] = []
    for lo, hi in zip(edges, edges[1:]):
        if lo >= hi:
            continue
        segment = timings[lo:hi]
        source_start = segment[0][0]
        source_end = segment[-1][0] + segment[-1][1]
        window_start = cuts[lo][-1] if lo in cuts else source_start
        if hi in cuts:
            window_end = cuts[hi][0]
        else:
            window_end = source_end
        window_end = max(window_end, window_start)
        source = (source_start, source_end)
        window = (window_start, window_end)
        for word, (start, duration) in zip(words[lo:hi], segment):
            new_start = min(max(_rescale(start, source, window), window_start), window_end)
            new_end = min(max(_rescale(start + duration, source, window), new_start), window_end)
            entries.append(AlignmentEntry(word.id, new_start, new_end - new_start))
    return render_smil(
        entries,
        text_src=text_src if text_src is not None else table.text_src,
        audio_src=audio_src if audio_src is not None else table.audio_src,
    )


class AnchorEditor:
    """
    Working set of anchors for one document.

    The anchor list is private: callers go through insert/delete/move so the
    document's marker units and the ordering bookkeeping stay in step. The
    alignment table is only read.
    """

    def __init__(
        self,
        document: Document,
        table: AlignmentTable,
        *,
        palette: Sequence[str] = DEFAULT_PALETTE,
    ) -> None:
        if not palette:
            raise ValueError("palette must not be empty")
        self.document = document
        self.table = table
        self.palette = tuple(palette)
        self._anchors: list[Anchor] = []
        self._sequence = 0

    @classmethod
    def from_document(
        cls,
        document: Document,
        table: AlignmentTable,
        *,
        palette: Sequence[str] = DEFAULT_PALETTE,
    ) -> "AnchorEditor":
        """Seed an editor with the ``<anchor>`` elements found in the source text."""
        editor = cls(document, table, palette=palette)
        words = list(document.words())
        for mark in document.anchor_marks:
            if not words:
                break
            if mark.boundary < len(words):
                word, side = words[mark.boundary], "before"
            else:
                word, side = words[-1], "after"
            editor._insert(word, side, mark.time_ms, anchor_id=mark.id)
        return editor

    @property
    def anchors(self) -> tuple[Anchor, ...]:
        return tuple(self._anchors)

    def __len__(self) -> int:
        return len(self._anchors)

    def find(self, ref: str) -> Anchor | None:
        for anchor in self._anchors:
            if anchor.id == ref:
                return anchor
        for anchor in reversed(self._anchors):
            if anchor.unit_id == ref:
                return anchor
        return None

    def insert_before(self, unit_id: str) -> Anchor:
        word = self._aligned_word(unit_id)
        start, _ = self.table.lookup(word.id)  # type: ignore[misc]
        return self._insert(word, "before", start)

    def insert_after(self, unit_id: str) -> Anchor:
        word = self._aligned_word(unit_id)
        start, duration = self.table.lookup(word.id)  # type: ignore[misc]
        time_ms = start + duration
        for candidate in self.document.words():
            if candidate.order <= word.order:
                continue
            timing = self.table.lookup(candidate.id)
            if timing is not None:
                time_ms = timing[0]
                break
        return self._insert(word, "after", time_ms)

    def toggle(self, unit_id: str) -> Anchor | None:
        """Add an anchor before ``unit_id``, or remove its latest one; returns the new anchor."""
        if any(anchor.unit_id == unit_id for anchor in self._anchors):
            self.delete(unit_id)
            return None
        return self.insert_before(unit_id)

    def delete(self, ref: str) -> Anchor | None:
        anchor = self.find(ref)
        if anchor is None:
            return None
        self._anchors.remove(anchor)
        self.document.remove_marker(marker_id_for(anchor.id))
        _LOGGER.debug("Removed anchor %s", anchor.id)
        return anchor

    def move(self, anchor_id: str, time_ms: int) -> Anchor:
        if time_ms < 0:
            raise ValueError("Anchor time must be non-negative")
        for index, anchor in enumerate(self._anchors):
            if anchor.id == anchor_id:
                moved = replace(anchor, time_ms=int(time_ms))
                self._anchors[index] = moved
                marker = self.document.marker(marker_id_for(anchor_id))
                if marker is not None:
                    marker.attributes.update(anchor_element_attributes(anchor_id, moved.time_ms))
                return moved
        raise KeyError(anchor_id)

    def clear(self) -> None:
        for anchor in self._anchors:
            self.document.remove_marker(marker_id_for(anchor.id))
        self._anchors.clear()

    def validate_ordering(self) -> OrderingResult:
        previous: Anchor | None = None
        for anchor in sorted(self._anchors, key=anchor_sort_key):
            if previous is not None and anchor.time_ms < previous.time_ms:
                return OrderingResult(AnchorOrderingViolation(anchor=anchor, previous=previous))
            previous = anchor
        return OrderingResult()

    def check_export(self) -> Diagnostic | None:
        if not self._anchors:
            return NoAnchorsDefined()
        return self.validate_ordering().violation

    def export_alignment(self) -> ExportResult:
        diagnostic = self.check_export()
        if diagnostic is not None:
            return ExportResult(diagnostic=diagnostic)
        return ExportResult(text=export_alignment(self.document, self.table, self._anchors))

    def export_anchored_text(self) -> ExportResult:
        diagnostic = self.check_export()
        if diagnostic is not None:
            return ExportResult(diagnostic=diagnostic)
        return ExportResult(text=self.document.to_tei())

    def _aligned_word(self, unit_id: str) -> Word:
        word = self.document.word(unit_id)
        if word is None:
            raise UnknownUnitError(f"{unit_id} is not a word of the document")
        if self.table.lookup(unit_id) is None:
            raise UnknownUnitError(f"{unit_id} has no alignment entry")
        return word

    def _next_anchor_id(self, unit_id: str) -> tuple[str, int]:
        taken = {anchor.id for anchor in self._anchors}
        while True:
            sequence = self._sequence
            self._sequence += 1
            anchor_id = f"{unit_id}anchor{sequence}"
            if anchor_id not in taken:
                return anchor_id, sequence

    def _insert(self, word: Word, side: str, time_ms: int, *, anchor_id: str | None = None) -> Anchor:
        if side not in ANCHOR_SIDES:
            raise ValueError(f"side must be one of {ANCHOR_SIDES}")
        generated_id, sequence = self._next_anchor_id(word.id)
        if anchor_id is None or any(anchor.id == anchor_id for anchor in self._anchors):
            anchor_id = generated_id
        anchor = Anchor(
            id=anchor_id,
            unit_id=word.id,
            side=side,
            time_ms=int(time_ms),
            label=word.text.strip(),
            color=color_for(sequence, self.palette),
            order=word.order + (1 if side == "after" else 0),
            sequence=sequence,
        )
        self._anchors.append(anchor)
        self.document.insert_marker(
            word.id,
            side,
            NonWord(
                id=marker_id_for(anchor.id),
                text="",
                attributes=anchor_element_attributes(anchor.id, anchor.time_ms),
                tag="anchor",
            ),
        )
        _LOGGER.debug("Inserted anchor %s %s %s at %d ms", anchor.id, side, word.id, anchor.time_ms)
        return anchor
