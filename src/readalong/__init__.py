from .alignment import AlignmentTable, parse_alignment, render_smil
from .anchors import Anchor, AnchorEditor, color_for, export_alignment
from .config import ReadAlongConfig, load_config
from .document import Document, NonWord, Page, Paragraph, Sentence, Word, parse_document
from .errors import (
    AlignmentLoadFailure,
    AnchorOrderingViolation,
    AudioLoadFailure,
    ConfigError,
    Diagnostic,
    NoAnchorsDefined,
    ReadAlongError,
    SourceFetchError,
    TextLoadFailure,
    UnknownUnitError,
)
from .interfaces import AudioTransport, ClockTransport, RecordingProbe, ViewportProbe
from .loader import AssetStatus, LoadedAssets, load_assets, load_assets_async
from .scroll_guard import ScrollGuard
from .session import ReadAlongSession
from .sync import PlaybackState, PlaybackSync, SyncPhase, advance

__all__ = [
    "AlignmentTable",
    "parse_alignment",
    "render_smil",
    "Anchor",
    "AnchorEditor",
    "color_for",
    "export_alignment",
    "ReadAlongConfig",
    "load_config",
    "Document",
    "NonWord",
    "Page",
    "Paragraph",
    "Sentence",
    "Word",
    "parse_document",
    "AlignmentLoadFailure",
    "AnchorOrderingViolation",
    "AudioLoadFailure",
    "ConfigError",
    "Diagnostic",
    "NoAnchorsDefined",
    "ReadAlongError",
    "SourceFetchError",
    "TextLoadFailure",
    "UnknownUnitError",
    "AudioTransport",
    "ClockTransport",
    "RecordingProbe",
    "ViewportProbe",
    "AssetStatus",
    "LoadedAssets",
    "load_assets",
    "load_assets_async",
    "ScrollGuard",
    "ReadAlongSession",
    "PlaybackState",
    "PlaybackSync",
    "SyncPhase",
    "advance",
]
