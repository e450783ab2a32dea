from __future__ import annotations

import logging
from pathlib import Path

import pytest

from readalong.config import DEFAULT_PALETTE, ReadAlongConfig, load_config
from readalong.errors import ConfigError
from readalong.logging_utils import build_uvicorn_log_config, get_logger
from readalong.messages import normalize_language, translate


def test_load_config_reads_known_keys(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(
        '{"page_scrolling": "Vertical", "language": "fr", "palette": ["#000", "#fff"], "seek_guard_ms": 250}',
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.page_scrolling == "vertical"
    assert config.language == "fra"
    assert config.palette == ("#000", "#fff")
    assert config.seek_guard_ms == 250
    assert config.scroll_guard_delay_ms == 100


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[1, 2]",
        '{"unknown": 1}',
        '{"palette": "#000"}',
        '{"palette": []}',
        '{"page_scrolling": "diagonal"}',
        '{"seek_guard_ms": -1}',
    ],
)
def test_load_config_rejects_invalid_files(tmp_path: Path, content: str) -> None:
    path = tmp_path / "settings.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(path)


def test_load_config_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.json")


def test_default_config() -> None:
    config = ReadAlongConfig()

    assert config.page_scrolling == "horizontal"
    assert config.palette == DEFAULT_PALETTE
    assert config.language == "eng"


def test_translate_normalizes_language_codes() -> None:
    assert normalize_language("fr") == "fra"
    assert normalize_language("FRA") == "fra"
    assert normalize_language("de") == "eng"
    assert normalize_language(None) == "eng"
    assert translate("loading", "fr") == "Chargement en cours"
    assert translate("loading") == "Loading..."
    assert translate("unknown-key", "fra") == "unknown-key"


def test_loggers_share_the_package_namespace() -> None:
    assert get_logger("readalong.sync").name == "readalong.sync"
    assert get_logger("extras").name == "readalong.extras"
    assert get_logger().name == "readalong"
    assert isinstance(get_logger("x"), logging.Logger)


def test_uvicorn_log_config_routes_through_rich() -> None:
    config = build_uvicorn_log_config(debug=True)

    assert config["handlers"]["access"]["()"] == "rich.logging.RichHandler"
    assert config["loggers"]["readalong"]["level"] == "DEBUG"
    assert config["loggers"]["uvicorn"]["level"] == "DEBUG"
