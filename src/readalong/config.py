from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path

from .errors import ConfigError
from .messages import normalize_language

PAGE_SCROLLING_MODES = ("horizontal", "vertical")

DEFAULT_PALETTE = (
    "#e6194b",
    "#3cb44b",
    "#ffe119",
    "#4363d8",
    "#f58231",
    "#911eb4",
    "#46f0f0",
    "#f032e6",
    "#bcf60c",
    "#fabebe",
    "#008080",
    "#9a6324",
)


@dataclass(slots=True)
class ReadAlongConfig:
    page_scrolling: str = "horizontal"
    seek_guard_ms: int = 100
    scroll_guard_delay_ms: int = 100
    horizontal_inset: float = 10.0
    rewind_seconds: float = 5.0
    language: str = "eng"
    palette: tuple[str, ...] = DEFAULT_PALETTE
    http_timeout: float = 30.0

    def __post_init__(self) -> None:
        mode = str(self.page_scrolling).strip().lower()
        if mode not in PAGE_SCROLLING_MODES:
            raise ConfigError(f"page_scrolling must be one of {', '.join(PAGE_SCROLLING_MODES)}")
        self.page_scrolling = mode
        self.language = normalize_language(self.language)
        if not self.palette:
            raise ConfigError("palette must contain at least one color")
        self.palette = tuple(str(color) for color in self.palette)
        if self.seek_guard_ms < 0 or self.scroll_guard_delay_ms < 0:
            raise ConfigError("guard delays must be non-negative")


def load_config(path: Path) -> ReadAlongConfig:
    """Read a JSON config file; unknown keys are rejected."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Failed to parse config file: {path}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"{path.name} must contain a JSON object.")
    known = {field.name for field in fields(ReadAlongConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys in {path.name}: {', '.join(unknown)}")
    if "palette" in raw:
        if not isinstance(raw["palette"], list):
            raise ConfigError(f"{path.name}: 'palette' must be an array of colors.")
        raw["palette"] = tuple(raw["palette"])
    try:
        return ReadAlongConfig(**raw)
    except TypeError as exc:
        raise ConfigError(f"Invalid config values in {path.name}: {exc}") from exc


__all__ = ["DEFAULT_PALETTE", "PAGE_SCROLLING_MODES", "ReadAlongConfig", "load_config"]
