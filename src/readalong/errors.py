from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .anchors import Anchor

__all__ = [
    "ReadAlongError",
    "SourceFetchError",
    "UnknownUnitError",
    "ConfigError",
    "Diagnostic",
    "LoadFailure",
    "TextLoadFailure",
    "AudioLoadFailure",
    "AlignmentLoadFailure",
    "AnchorOrderingViolation",
    "NoAnchorsDefined",
]


class ReadAlongError(RuntimeError):
    """Base class for read-along failures raised as exceptions."""


class SourceFetchError(ReadAlongError):
    """Raised when a text or alignment source cannot be fetched."""


class ConfigError(ReadAlongError):
    """Raised when a configuration file cannot be read or is invalid."""


class UnknownUnitError(LookupError):
    """Raised when a unit id is not a word of the document or lacks alignment."""


class Diagnostic:
    """
    Return-value failure surfaced to the rendering layer.

    Diagnostics are never raised: loaders and the anchor editor hand them
    back so the caller can show a message while the rest keeps working.
    """

    message_key: str = ""

    @property
    def kind(self) -> str:
        return type(self).__name__

    def describe(self) -> str:
        return self.kind

    def to_payload(self) -> dict[str, object]:
        return {"kind": self.kind, "message_key": self.message_key, "detail": self.describe()}


@dataclass(frozen=True, slots=True)
class LoadFailure(Diagnostic):
    source: str | None = None
    reason: str = ""

    def describe(self) -> str:
        target = self.source or "<inline>"
        if self.reason:
            return f"{self.kind}: {target}: {self.reason}"
        return f"{self.kind}: {target}"


@dataclass(frozen=True, slots=True)
class TextLoadFailure(LoadFailure):
    message_key = "text-error"


@dataclass(frozen=True, slots=True)
class AudioLoadFailure(LoadFailure):
    message_key = "audio-error"


@dataclass(frozen=True, slots=True)
class AlignmentLoadFailure(LoadFailure):
    message_key = "alignment-error"


@dataclass(frozen=True, slots=True)
class AnchorOrderingViolation(Diagnostic):
    anchor: "Anchor"
    previous: "Anchor"

    message_key = "anchor-order-error"

    def describe(self) -> str:
        return (
            f'The text "{self.anchor.label}" is earlier than the previous text '
            f'"{self.previous.label}"'
        )


@dataclass(frozen=True, slots=True)
class NoAnchorsDefined(Diagnostic):
    message_key = "no-anchor-error"

    def describe(self) -> str:
        return "There is no anchor setup currently."
