from __future__ import annotations

import pytest

from readalong.alignment import parse_alignment
from readalong.anchors import AnchorEditor, color_for, export_alignment
from readalong.config import DEFAULT_PALETTE
from readalong.document import parse_document
from readalong.errors import AnchorOrderingViolation, NoAnchorsDefined, UnknownUnitError


def _editor(sample_tei: str, sample_smil: str) -> AnchorEditor:
    return AnchorEditor(parse_document(sample_tei), parse_alignment(sample_smil))


def test_color_for_wraps_around_the_palette() -> None:
    palette = ("#111", "#222", "#333")

    assert [color_for(i, palette) for i in range(5)] == ["#111", "#222", "#333", "#111", "#222"]
    assert color_for(0) == DEFAULT_PALETTE[0]
    with pytest.raises(ValueError):
        color_for(0, ())


def test_insert_before_then_delete_restores_state(sample_tei: str, sample_smil: str) -> None:
    editor = _editor(sample_tei, sample_smil)
    existing = editor.insert_before("w0")
    sentence = editor.document.sentence_of("w2")
    units_before = [unit.id for unit in sentence.units]
    anchors_before = editor.anchors

    anchor = editor.insert_before("w2")
    assert anchor.time_ms == 1200
    assert anchor.label == "friend"
    assert f"{anchor.id}-svg" in [unit.id for unit in sentence.units]

    removed = editor.delete("w2")

    assert removed == anchor
    assert editor.anchors == anchors_before
    assert editor.anchors == (existing,)
    assert [unit.id for unit in sentence.units] == units_before


def test_two_inserts_on_one_word_are_distinct(sample_tei: str, sample_smil: str) -> None:
    editor = _editor(sample_tei, sample_smil)

    first = editor.insert_before("w1")
    second = editor.insert_before("w1")

    assert first.id != second.id
    assert first.color != second.color
    assert first.sequence < second.sequence
    assert (first.id, second.id) == ("w1anchor0", "w1anchor1")
    assert editor.validate_ordering().ok

    editor.move(second.id, first.time_ms - 100)
    result = editor.validate_ordering()
    assert not result.ok
    assert result.violation.anchor.id == second.id


def test_validate_ordering_names_the_offending_anchor(sample_tei: str, sample_smil: str) -> None:
    editor = _editor(sample_tei, sample_smil)
    editor.move(editor.insert_before("w1").id, 400)
    editor.move(editor.insert_before("w2").id, 1000)
    late = editor.insert_after("w3")
    assert late.time_ms == 2000
    editor.move(late.id, 900)

    result = editor.validate_ordering()

    assert isinstance(result.violation, AnchorOrderingViolation)
    assert result.violation.anchor.id == late.id
    assert result.violation.previous.unit_id == "w2"
    assert result.violation.describe() == 'The text "Second" is earlier than the previous text "friend"'


def test_insert_after_last_word_uses_its_end(sample_tei: str, sample_smil: str) -> None:
    editor = _editor(sample_tei, sample_smil)

    anchor = editor.insert_after("w4")

    assert anchor.side == "after"
    assert anchor.time_ms == 2600
    units = editor.document.sentence_of("w4").units
    assert units[-1].id == f"{anchor.id}-svg"


def test_unknown_units_are_rejected(sample_tei: str) -> None:
    editor = AnchorEditor(parse_document(sample_tei), parse_alignment(None))

    with pytest.raises(UnknownUnitError):
        editor.insert_before("w0")
    with pytest.raises(UnknownUnitError):
        editor.insert_before("s0text1")
    assert editor.delete("nothing") is None


def test_toggle_adds_then_removes(sample_tei: str, sample_smil: str) -> None:
    editor = _editor(sample_tei, sample_smil)

    added = editor.toggle("w3")
    assert added is not None and added.side == "before"
    assert editor.toggle("w3") is None
    assert len(editor) == 0


def test_export_is_refused_without_anchors(sample_tei: str, sample_smil: str) -> None:
    editor = _editor(sample_tei, sample_smil)

    result = editor.export_alignment()

    assert not result.ok
    assert isinstance(result.diagnostic, NoAnchorsDefined)
    assert result.diagnostic.message_key == "no-anchor-error"
    assert isinstance(editor.export_anchored_text().diagnostic, NoAnchorsDefined)


def test_export_is_refused_when_out_of_order(sample_tei: str, sample_smil: str) -> None:
    editor = _editor(sample_tei, sample_smil)
    editor.move(editor.insert_before("w1").id, 1000)
    editor.move(editor.insert_before("w3").id, 200)

    result = editor.export_alignment()

    assert isinstance(result.diagnostic, AnchorOrderingViolation)
    assert result.text is None


def test_export_retimes_segments_around_anchor(sample_tei: str, sample_smil: str) -> None:
    editor = _editor(sample_tei, sample_smil)
    editor.move(editor.insert_before("w2").id, 1000)

    result = editor.export_alignment()
    table = parse_alignment(result.text)

    assert result.ok
    assert table.ids() == ["w0", "w1", "w2", "w3", "w4"]
    assert table.lookup("w0") == (0, 417)
    assert table.lookup("w1") == (417, 583)
    assert table.lookup("w2")[0] == 1000
    assert table.lookup("w4")[0] + table.lookup("w4")[1] == 2600
    assert table.text_src == "story.xml"
    assert table.audio_src == "story.mp3"


def test_export_round_trip_is_stable(sample_tei: str, sample_smil: str) -> None:
    editor = _editor(sample_tei, sample_smil)
    editor.move(editor.insert_before("w2").id, 1000)
    editor.move(editor.insert_after("w3").id, 2100)

    first = editor.export_alignment().text
    second = export_alignment(editor.document, parse_alignment(first), editor.anchors)

    assert second == first


def test_anchored_text_seeds_a_new_editor(sample_tei: str, sample_smil: str) -> None:
    editor = _editor(sample_tei, sample_smil)
    anchor = editor.insert_before("w2")
    editor.move(anchor.id, 1100)

    anchored = editor.export_anchored_text()
    assert anchored.ok
    assert "<anchor" in anchored.text

    reloaded = AnchorEditor.from_document(parse_document(anchored.text), parse_alignment(sample_smil))
    assert [(a.id, a.unit_id, a.side, a.time_ms) for a in reloaded.anchors] == [
        (anchor.id, "w2", "before", 1100)
    ]


def test_clear_removes_all_markers(sample_tei: str, sample_smil: str) -> None:
    editor = _editor(sample_tei, sample_smil)
    editor.insert_before("w0")
    editor.insert_after("w4")

    editor.clear()

    assert editor.anchors == ()
    assert not any(
        unit.id.endswith("-svg")
        for page in editor.document.pages
        for paragraph in page.paragraphs
        for sentence in paragraph.sentences
        for unit in sentence.units
    )


def test_move_unknown_anchor_raises(sample_tei: str, sample_smil: str) -> None:
    editor = _editor(sample_tei, sample_smil)

    with pytest.raises(KeyError):
        editor.move("missing", 10)
    with pytest.raises(ValueError):
        editor.move(editor.insert_before("w0").id, -5)
