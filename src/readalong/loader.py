from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from urllib.parse import urlparse

import requests

from .alignment import AlignmentTable, parse_alignment
from .document import Document, parse_document
from .errors import (
    AlignmentLoadFailure,
    LoadFailure,
    SourceFetchError,
    TextLoadFailure,
)
from .logging_utils import get_logger

_LOGGER = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0

__all__ = [
    "AssetStatus",
    "LoadedAssets",
    "fetch_source",
    "fetch_source_async",
    "load_assets",
    "load_assets_async",
    "build_assets",
]


class AssetStatus(IntEnum):
    LOADING = 0
    LOADED = 1
    ERROR = 2


@dataclass(slots=True)
class LoadedAssets:
    document: Document
    table: AlignmentTable
    text_status: AssetStatus = AssetStatus.LOADING
    alignment_status: AssetStatus = AssetStatus.LOADING
    audio_status: AssetStatus = AssetStatus.LOADING
    failures: list[LoadFailure] = field(default_factory=list)

    def statuses(self) -> dict[str, int]:
        return {
            "AUDIO": int(self.audio_status),
            "XML": int(self.text_status),
            "SMIL": int(self.alignment_status),
        }


def _is_remote(location: str) -> bool:
    return urlparse(location).scheme in {"http", "https"}


def fetch_source(location: str | Path, *, timeout: float = DEFAULT_TIMEOUT) -> str:
    """Read a document from a local path or an http(s) URL."""
    text_location = str(location)
    if _is_remote(text_location):
        try:
            response = requests.get(text_location, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise SourceFetchError(f"Failed to fetch {text_location}: {exc}") from exc
        if response.encoding is None:
            response.encoding = "utf-8"
        return response.text
    path = Path(text_location).expanduser()
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceFetchError(f"Failed to read {path}: {exc}") from exc


async def fetch_source_async(location: str | Path, *, timeout: float = DEFAULT_TIMEOUT) -> str:
    return await asyncio.to_thread(fetch_source, location, timeout=timeout)


def build_assets(
    text_source: str | None,
    alignment_source: str | None,
    *,
    text_location: str | None = None,
    alignment_location: str | None = None,
    failures: list[LoadFailure] | None = None,
) -> LoadedAssets:
    """
    Parse both sources and record independent load outcomes.

    A ``None`` source means the fetch already failed and its failure is in
    ``failures``; an empty parse result becomes a failure of its own.
    """
    failures = list(failures or [])
    document = parse_document(text_source)
    table = parse_alignment(alignment_source)
    assets = LoadedAssets(document=document, table=table, failures=failures)

    if text_source is None:
        assets.text_status = AssetStatus.ERROR
    elif document.is_empty:
        assets.text_status = AssetStatus.ERROR
        failures.append(TextLoadFailure(source=text_location, reason="no pages found"))
    else:
        assets.text_status = AssetStatus.LOADED

    if alignment_source is None:
        assets.alignment_status = AssetStatus.ERROR
    elif table.is_empty:
        assets.alignment_status = AssetStatus.ERROR
        failures.append(AlignmentLoadFailure(source=alignment_location, reason="no aligned units found"))
    else:
        assets.alignment_status = AssetStatus.LOADED

    for failure in failures:
        _LOGGER.warning("%s", failure.describe())
    if assets.text_status is AssetStatus.LOADED and assets.alignment_status is AssetStatus.LOADED:
        violations = table.order_violations(document)
        if violations:
            _LOGGER.warning(
                "Alignment is out of reading order at %d word(s); first at %s",
                len(violations),
                violations[0].id,
            )
    return assets


def _fetch_or_fail(
    location: str | Path,
    failure_type: type[LoadFailure],
    failures: list[LoadFailure],
    timeout: float,
) -> str | None:
    try:
        return fetch_source(location, timeout=timeout)
    except SourceFetchError as exc:
        failures.append(failure_type(source=str(location), reason=str(exc)))
        return None


def load_assets(
    text_location: str | Path,
    alignment_location: str | Path,
    *,
    timeout: float = DEFAULT_TIMEOUT,
) -> LoadedAssets:
    failures: list[LoadFailure] = []
    text_source = _fetch_or_fail(text_location, TextLoadFailure, failures, timeout)
    alignment_source = _fetch_or_fail(alignment_location, AlignmentLoadFailure, failures, timeout)
    return build_assets(
        text_source,
        alignment_source,
        text_location=str(text_location),
        alignment_location=str(alignment_location),
        failures=failures,
    )


async def load_assets_async(
    text_location: str | Path,
    alignment_location: str | Path,
    *,
    timeout: float = DEFAULT_TIMEOUT,
) -> LoadedAssets:
    """Fetch both sources concurrently; parsing starts only once both are complete."""
    results = await asyncio.gather(
        fetch_source_async(text_location, timeout=timeout),
        fetch_source_async(alignment_location, timeout=timeout),
        return_exceptions=True,
    )
    failures: list[LoadFailure] = []
    sources: list[str | None] = []
    for location, failure_type, result in zip(
        (text_location, alignment_location),
        (TextLoadFailure, AlignmentLoadFailure),
        results,
    ):
        if isinstance(result, SourceFetchError):
            failures.append(failure_type(source=str(location), reason=str(result)))
            sources.append(None)
        elif isinstance(result, BaseException):
            raise result
        else:
            sources.append(result)
    return build_assets(
        sources[0],
        sources[1],
        text_location=str(text_location),
        alignment_location=str(alignment_location),
        failures=failures,
    )
