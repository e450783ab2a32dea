from __future__ import annotations

from pathlib import Path

import pytest

from readalong import cli
from readalong.alignment import parse_alignment


def test_main_without_arguments_prints_help(capsys) -> None:
    assert cli.main([]) == 0
    assert "inspect" in capsys.readouterr().out


def test_parse_anchor_spec_variants() -> None:
    assert cli._parse_anchor_spec("w2=1.5") == ("w2", "before", 1.5)
    assert cli._parse_anchor_spec("w2:after=0.25") == ("w2", "after", 0.25)
    for bad in ("w2", "=1", "w2:middle=1", "w2=soon", "w2=-1"):
        with pytest.raises(ValueError):
            cli._parse_anchor_spec(bad)


def test_inspect_reports_sources(sample_files: tuple[Path, Path], capsys) -> None:
    text_path, smil_path = sample_files

    assert cli.main(["inspect", str(text_path), str(smil_path)]) == 0

    out = capsys.readouterr().out
    assert "LOADED" in out
    assert "p0" in out and "p1" in out


def test_inspect_returns_error_for_missing_alignment(sample_files: tuple[Path, Path], tmp_path: Path) -> None:
    text_path, _ = sample_files

    assert cli.main(["inspect", str(text_path), str(tmp_path / "none.smil")]) == 1


def test_export_writes_smil_and_anchored_text(sample_files: tuple[Path, Path], tmp_path: Path) -> None:
    text_path, smil_path = sample_files
    out = tmp_path / "aligned.smil"
    text_out = tmp_path / "anchored.xml"

    code = cli.main(
        [
            "export",
            str(text_path),
            str(smil_path),
            "--anchor",
            "w2=1.0",
            "--anchor",
            "w3:after=2.1",
            "-o",
            str(out),
            "--text-out",
            str(text_out),
        ]
    )

    assert code == 0
    table = parse_alignment(out.read_text(encoding="utf-8"))
    assert table.lookup("w2")[0] == 1000
    assert table.lookup("w4")[0] == 2100
    assert "<anchor" in text_out.read_text(encoding="utf-8")


def test_export_refuses_out_of_order_anchors(sample_files: tuple[Path, Path], tmp_path: Path) -> None:
    text_path, smil_path = sample_files
    out = tmp_path / "aligned.smil"

    code = cli.main(
        ["export", str(text_path), str(smil_path), "-a", "w1=2.0", "-a", "w3=1.0", "-o", str(out)]
    )

    assert code == 2
    assert not out.exists()


def test_export_without_anchors_is_refused(sample_files: tuple[Path, Path]) -> None:
    text_path, smil_path = sample_files

    assert cli.main(["export", str(text_path), str(smil_path)]) == 2


def test_simulate_prints_highlights_and_page_turns(sample_files: tuple[Path, Path], capsys) -> None:
    text_path, smil_path = sample_files

    assert cli.main(["simulate", str(text_path), str(smil_path), "--step", "0.25"]) == 0

    out = capsys.readouterr().out
    for word_id in ("w0", "w1", "w2", "w3", "w4"):
        assert word_id in out
    assert "page p1" in out


def test_config_file_is_applied(sample_files: tuple[Path, Path], tmp_path: Path) -> None:
    text_path, smil_path = sample_files
    config_path = tmp_path / "settings.json"
    config_path.write_text('{"page_scrolling": "sideways"}', encoding="utf-8")

    with pytest.raises(SystemExit):
        cli.main(["inspect", str(text_path), str(smil_path), "--config", str(config_path)])


def test_serve_passes_rich_log_config(monkeypatch, sample_files: tuple[Path, Path]) -> None:
    text_path, smil_path = sample_files
    captured: dict[str, object] = {}

    def _fake_run(app, **kwargs):
        captured["app"] = app
        captured.update(kwargs)

    monkeypatch.setattr(cli.uvicorn, "run", _fake_run)

    assert cli.main(["serve", str(text_path), str(smil_path), "--port", "9999", "--duration", "3"]) == 0

    assert captured["port"] == 9999
    handler = captured["log_config"]["handlers"]["default"]
    assert handler["()"] == "rich.logging.RichHandler"
    assert captured["app"].state.session.table.total_duration_ms() == 3000
