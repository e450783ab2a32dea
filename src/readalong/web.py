from __future__ import annotations

from dataclasses import asdict, dataclass, field
from html import escape
from pathlib import Path

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import HTMLResponse, JSONResponse, Response

from .anchors import ANCHOR_SIDES, ExportResult
from .config import ReadAlongConfig
from .errors import Diagnostic, ReadAlongError, UnknownUnitError
from .interfaces import ClockTransport, RecordingProbe
from .loader import LoadedAssets, load_assets
from .logging_utils import get_logger
from .messages import translate
from .session import ReadAlongSession
from .sync import Effect

_LOGGER = get_logger(__name__)

SMIL_MEDIA_TYPE = "application/smil+xml"
TEI_MEDIA_TYPE = "application/tei+xml"

__all__ = ["WebConfig", "create_app", "effect_to_payload", "estimate_duration_ms"]


@dataclass
class WebConfig:
    text: str | Path
    alignment: str | Path
    audio_duration_ms: int | None = None
    settings: ReadAlongConfig = field(default_factory=ReadAlongConfig)
    title: str = "Read Along"


def effect_to_payload(effect: Effect) -> dict[str, object]:
    payload: dict[str, object] = {"type": type(effect).__name__}
    payload.update(asdict(effect))
    return payload


def _effects_payload(effects: list[Effect]) -> list[dict[str, object]]:
    return [effect_to_payload(effect) for effect in effects]


def estimate_duration_ms(assets: LoadedAssets) -> int | None:
    """Fall back to the end of the last aligned unit when no audio length is known."""
    ends = [entry.end_ms for entry in assets.table.entries()]
    return max(ends) if ends else None


def _diagnostic_response(diagnostic: Diagnostic, language: str) -> JSONResponse:
    payload = diagnostic.to_payload()
    payload["message"] = translate(diagnostic.message_key, language)
    return JSONResponse({"diagnostic": payload}, status_code=409)


def _require_str(payload: object, key: str) -> str:
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload.")
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise HTTPException(status_code=400, detail=f"{key} is required.")
    return value.strip()


def _require_number(payload: object, key: str) -> float:
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload.")
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise HTTPException(status_code=400, detail=f"{key} must be a number.")
    return float(value)


def _index_html(title: str) -> str:
    safe_title = escape(title)
    return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="utf-8"><title>{safe_title}</title></head>
<body>
<h1>{safe_title}</h1>
<ul>
  <li><a href="/api/document">/api/document</a></li>
  <li><a href="/api/alignment">/api/alignment</a></li>
  <li><a href="/api/status">/api/status</a></li>
  <li><a href="/download/aligned_preview">/download/aligned_preview</a></li>
</ul>
</body>
</html>
"""


def _document_payload(session: ReadAlongSession) -> dict[str, object]:
    pages = []
    for page in session.document.pages:
        paragraphs = []
        for paragraph in page.paragraphs:
            sentences = []
            for sentence in paragraph.sentences:
                units = [
                    {
                        "id": unit.id,
                        "text": unit.text,
                        "is_word": unit.is_word,
                        "attributes": dict(unit.attributes),
                    }
                    for unit in sentence.units
                ]
                sentences.append(
                    {
                        "id": sentence.id,
                        "tag": sentence.tag,
                        "is_translation": sentence.is_translation,
                        "attributes": dict(sentence.attributes),
                        "units": units,
                    }
                )
            paragraphs.append({"attributes": dict(paragraph.attributes), "sentences": sentences})
        pages.append({"id": page.id, "img": page.img, "paragraphs": paragraphs})
    return {"pages": pages, "has_translations": session.document.has_translations}


def create_app(config: WebConfig) -> FastAPI:
    settings = config.settings
    assets = load_assets(config.text, config.alignment, timeout=settings.http_timeout)
    duration = config.audio_duration_ms or estimate_duration_ms(assets)
    transport = ClockTransport(duration)
    probe = RecordingProbe()
    session = ReadAlongSession(assets, transport, probe, config=settings)
    if duration is not None:
        session.on_audio_loaded(duration)
    else:
        session.on_audio_failed(reason="audio duration unknown")

    app = FastAPI(title=config.title)
    app.state.config = config
    app.state.session = session
    app.state.probe = probe
    editor_lock = session.sync.lock

    def _status() -> JSONResponse:
        return JSONResponse(session.status_payload())

    def _with_effects(effects: list[Effect]) -> JSONResponse:
        payload = session.status_payload()
        payload["effects"] = _effects_payload(effects)
        return JSONResponse(payload)

    def _export(result: ExportResult, media_type: str, filename: str) -> Response:
        if result.diagnostic is not None:
            return _diagnostic_response(result.diagnostic, settings.language)
        return Response(
            content=result.text or "",
            media_type=media_type,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.get("/", response_class=HTMLResponse)
    def index() -> HTMLResponse:
        return HTMLResponse(_index_html(config.title))

    @app.get("/api/document")
    def api_document() -> JSONResponse:
        return JSONResponse(_document_payload(session))

    @app.get("/api/alignment")
    def api_alignment() -> JSONResponse:
        return JSONResponse({"alignment": session.table.as_dict()})

    @app.get("/api/status")
    def api_status() -> JSONResponse:
        return _status()

    @app.post("/api/playback/play")
    def api_play() -> JSONResponse:
        try:
            session.play()
        except ReadAlongError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return _status()

    @app.post("/api/playback/pause")
    def api_pause() -> JSONResponse:
        session.pause()
        return _status()

    @app.post("/api/playback/stop")
    def api_stop() -> JSONResponse:
        return _with_effects(session.stop())

    @app.post("/api/playback/tick")
    def api_tick() -> JSONResponse:
        return _with_effects(session.tick())

    @app.post("/api/playback/seek")
    def api_seek(payload: dict[str, object] = Body(...)) -> JSONResponse:
        if isinstance(payload, dict) and "ratio" in payload:
            return _with_effects(session.progress_bar_clicked(_require_number(payload, "ratio")))
        seconds = _require_number(payload, "seconds")
        if seconds < 0:
            raise HTTPException(status_code=400, detail="seconds must be non-negative.")
        return _with_effects(session.seek(int(round(seconds * 1000))))

    @app.post("/api/playback/back")
    def api_go_back() -> JSONResponse:
        return _with_effects(session.go_back())

    @app.post("/api/words/{unit_id}/click")
    def api_word_click(unit_id: str) -> JSONResponse:
        try:
            outcome = session.word_clicked(unit_id)
        except UnknownUnitError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        if isinstance(outcome, list):
            return _with_effects(outcome)
        payload = session.status_payload()
        payload["anchor"] = outcome.to_payload() if outcome is not None else None
        return JSONResponse(payload)

    @app.post("/api/scroll/manual")
    def api_manual_scroll() -> JSONResponse:
        suspended = session.manual_scroll()
        payload = session.status_payload()
        payload["suspended"] = suspended
        return JSONResponse(payload)

    @app.post("/api/scroll/visible")
    def api_unit_visible() -> JSONResponse:
        session.highlighted_unit_visible()
        return _status()

    @app.post("/api/scroll/return")
    def api_return_to_reading() -> JSONResponse:
        session.return_to_reading()
        return _status()

    @app.post("/api/edit-mode")
    def api_edit_mode(payload: dict[str, object] = Body(...)) -> JSONResponse:
        if not isinstance(payload, dict) or not isinstance(payload.get("enabled"), bool):
            raise HTTPException(status_code=400, detail="enabled must be a boolean.")
        with editor_lock:
            session.set_edit_mode(bool(payload["enabled"]))
        return _status()

    @app.get("/api/anchors")
    def api_anchors() -> JSONResponse:
        with editor_lock:
            anchors = [anchor.to_payload() for anchor in session.editor.anchors]
        return JSONResponse({"anchors": anchors})

    @app.post("/api/anchors")
    def api_add_anchor(payload: dict[str, object] = Body(...)) -> JSONResponse:
        unit_id = _require_str(payload, "unit_id")
        side = payload.get("side", "before")
        if side not in ANCHOR_SIDES:
            raise HTTPException(status_code=400, detail="side must be 'before' or 'after'.")
        with editor_lock:
            try:
                if side == "before":
                    anchor = session.editor.insert_before(unit_id)
                else:
                    anchor = session.editor.insert_after(unit_id)
            except UnknownUnitError as exc:
                raise HTTPException(status_code=404, detail=str(exc)) from exc
            if "seconds" in payload:
                seconds = _require_number(payload, "seconds")
                if seconds < 0:
                    session.editor.delete(anchor.id)
                    raise HTTPException(status_code=400, detail="seconds must be non-negative.")
                anchor = session.editor.move(anchor.id, int(round(seconds * 1000)))
        _LOGGER.info("Anchor %s added %s %s", anchor.id, side, unit_id)
        return JSONResponse({"anchor": anchor.to_payload()})

    @app.post("/api/anchors/{anchor_id}/move")
    def api_move_anchor(anchor_id: str, payload: dict[str, object] = Body(...)) -> JSONResponse:
        seconds = _require_number(payload, "seconds")
        if seconds < 0:
            raise HTTPException(status_code=400, detail="seconds must be non-negative.")
        with editor_lock:
            try:
                anchor = session.editor.move(anchor_id, int(round(seconds * 1000)))
            except KeyError as exc:
                raise HTTPException(status_code=404, detail="Anchor not found") from exc
        return JSONResponse({"anchor": anchor.to_payload()})

    @app.delete("/api/anchors/{anchor_id}")
    def api_delete_anchor(anchor_id: str) -> JSONResponse:
        with editor_lock:
            removed = session.editor.delete(anchor_id)
        if removed is None:
            raise HTTPException(status_code=404, detail="Anchor not found")
        return JSONResponse({"deleted": True, "anchor": removed.to_payload()})

    @app.get("/api/anchors/validate")
    def api_validate_anchors() -> JSONResponse:
        with editor_lock:
            diagnostic = session.editor.check_export()
        if diagnostic is not None:
            return _diagnostic_response(diagnostic, settings.language)
        return JSONResponse({"ok": True})

    @app.get("/download/aligned_preview")
    def download_alignment() -> Response:
        with editor_lock:
            result = session.editor.export_alignment()
        return _export(result, SMIL_MEDIA_TYPE, "aligned_preview.smil")

    @app.get("/download/anchored_text")
    def download_anchored_text() -> Response:
        with editor_lock:
            result = session.editor.export_anchored_text()
        return _export(result, TEI_MEDIA_TYPE, "anchored.xml")

    return app
