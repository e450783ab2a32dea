from __future__ import annotations

import argparse
import sys
from importlib import metadata
from pathlib import Path

import tomllib
import uvicorn
from rich.console import Console
from rich.table import Table

from .anchors import ANCHOR_SIDES, AnchorEditor
from .config import ReadAlongConfig, load_config
from .errors import ConfigError, UnknownUnitError
from .interfaces import RecordingProbe
from .loader import AssetStatus, LoadedAssets, load_assets
from .logging_utils import build_uvicorn_log_config, configure_console_logging
from .messages import translate
from .sync import Highlight, PlaybackSync, TurnPage
from .web import WebConfig, create_app, estimate_duration_ms

SUBCOMMANDS = ("inspect", "export", "simulate", "serve")


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("readalong")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"readalong {__version__}",
    )


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("text", help="TEI text document (path or http(s) URL).")
    parser.add_argument("alignment", help="SMIL alignment document (path or http(s) URL).")
    parser.add_argument(
        "--config",
        help="JSON settings file (page_scrolling, language, palette, ...).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging.",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Read-along engine: sync TEI text with a SMIL alignment.",
        epilog="Subcommands: " + ", ".join(SUBCOMMANDS) + ". Run `readalong <command> -h` for details.",
    )
    _add_version_flag(ap)
    ap.add_argument("command", choices=SUBCOMMANDS, help="Subcommand to run.")
    return ap


def build_inspect_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="readalong inspect",
        description="Load a text/alignment pair and report pages, coverage and problems.",
    )
    _add_version_flag(ap)
    _add_common_arguments(ap)
    return ap


def build_export_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="readalong export",
        description="Place anchors and write a re-timed SMIL alignment.",
    )
    _add_version_flag(ap)
    _add_common_arguments(ap)
    ap.add_argument(
        "-a",
        "--anchor",
        action="append",
        default=[],
        metavar="WORD[:before|after]=SECONDS",
        help="Anchor a word boundary to an audio time. Repeatable.",
    )
    ap.add_argument(
        "-o",
        "--output",
        help="Where to write the SMIL export (default: stdout).",
    )
    ap.add_argument(
        "--text-out",
        help="Also write the TEI text with <anchor> elements to this path.",
    )
    return ap


def build_simulate_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="readalong simulate",
        description="Step through playback and print highlight and page changes.",
    )
    _add_version_flag(ap)
    _add_common_arguments(ap)
    ap.add_argument(
        "--step",
        type=float,
        default=0.1,
        help="Tick interval in seconds (default: 0.1).",
    )
    ap.add_argument(
        "--duration",
        type=float,
        help="Audio length in seconds (default: end of the last aligned unit).",
    )
    return ap


def build_serve_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="readalong serve",
        description="Serve the read-along session as a JSON API.",
    )
    _add_version_flag(ap)
    _add_common_arguments(ap)
    ap.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface for the web server (default: 127.0.0.1).",
    )
    ap.add_argument(
        "--port",
        type=int,
        default=2047,
        help="Port for the web server (default: 2047).",
    )
    ap.add_argument(
        "--duration",
        type=float,
        help="Audio length in seconds (default: end of the last aligned unit).",
    )
    return ap


def _settings(args: argparse.Namespace) -> ReadAlongConfig:
    if not args.config:
        return ReadAlongConfig()
    return load_config(Path(args.config).expanduser())


def _report_failures(console: Console, assets: LoadedAssets, language: str) -> None:
    for failure in assets.failures:
        console.print(f"[red]{translate(failure.message_key, language)}[/red] ({failure.describe()})")


def _parse_anchor_spec(spec: str) -> tuple[str, str, float]:
    target, sep, seconds_text = spec.rpartition("=")
    if not sep or not target:
        raise ValueError(f"Invalid anchor '{spec}': expected WORD[:before|after]=SECONDS")
    side = "before"
    unit_id = target
    if ":" in target:
        unit_id, _, side = target.rpartition(":")
    if side not in ANCHOR_SIDES or not unit_id:
        raise ValueError(f"Invalid anchor side in '{spec}'")
    try:
        seconds = float(seconds_text)
    except ValueError as exc:
        raise ValueError(f"Invalid anchor time in '{spec}'") from exc
    if seconds < 0:
        raise ValueError(f"Anchor time must be non-negative in '{spec}'")
    return unit_id, side, seconds


def _run_inspect(args: argparse.Namespace, console: Console) -> int:
    settings = _settings(args)
    assets = load_assets(args.text, args.alignment, timeout=settings.http_timeout)
    document, table = assets.document, assets.table

    summary = Table(title="Read-along sources")
    summary.add_column("Source")
    summary.add_column("Status")
    summary.add_column("Details")
    words = document.word_ids()
    aligned = [word_id for word_id in words if word_id in table]
    summary.add_row(
        "text",
        assets.text_status.name,
        f"{len(document.pages)} page(s), {len(words)} word(s), {len(document.anchor_marks)} anchor(s)",
    )
    summary.add_row(
        "alignment",
        assets.alignment_status.name,
        f"{len(table)} unit(s), {len(aligned)} matching word(s)",
    )
    console.print(summary)

    if document.pages:
        pages = Table(title="Pages")
        pages.add_column("Page")
        pages.add_column("Paragraphs", justify="right")
        pages.add_column("Words", justify="right")
        pages.add_column("Image")
        for page in document.pages:
            count = sum(
                1
                for paragraph in page.paragraphs
                for sentence in paragraph.sentences
                for unit in sentence.units
                if unit.is_word
            )
            pages.add_row(page.id, str(len(page.paragraphs)), str(count), page.img or "")
        console.print(pages)

    unaligned = [word_id for word_id in words if word_id not in table]
    if unaligned and not table.is_empty:
        preview = ", ".join(unaligned[:10])
        more = f" (+{len(unaligned) - 10} more)" if len(unaligned) > 10 else ""
        console.print(f"[yellow]Words without timing:[/yellow] {preview}{more}")
    for violation in table.order_violations(document):
        console.print(
            f"[yellow]Out of order:[/yellow] {violation.id} starts at {violation.start_ms} ms, "
            f"before {violation.previous_id} at {violation.previous_start_ms} ms"
        )
    _report_failures(console, assets, settings.language)
    return 1 if assets.failures else 0


def _run_export(args: argparse.Namespace, console: Console) -> int:
    settings = _settings(args)
    assets = load_assets(args.text, args.alignment, timeout=settings.http_timeout)
    if assets.text_status is not AssetStatus.LOADED or assets.alignment_status is not AssetStatus.LOADED:
        _report_failures(console, assets, settings.language)
        return 1

    editor = AnchorEditor.from_document(assets.document, assets.table, palette=settings.palette)
    for spec in args.anchor:
        unit_id, side, seconds = _parse_anchor_spec(spec)
        try:
            anchor = editor.insert_before(unit_id) if side == "before" else editor.insert_after(unit_id)
        except UnknownUnitError as exc:
            console.print(f"[red]{exc}[/red]")
            return 1
        editor.move(anchor.id, int(round(seconds * 1000)))

    result = editor.export_alignment()
    if result.diagnostic is not None:
        console.print(f"[red]{translate(result.diagnostic.message_key, settings.language)}[/red]")
        console.print(result.diagnostic.describe())
        return 2
    text = result.text or ""
    if args.output:
        output = Path(args.output).expanduser()
        output.write_text(text, encoding="utf-8")
        console.print(f"Wrote {output}")
    else:
        sys.stdout.write(text)

    if args.text_out:
        anchored = editor.export_anchored_text()
        text_out = Path(args.text_out).expanduser()
        text_out.write_text(anchored.text or "", encoding="utf-8")
        console.print(f"Wrote {text_out}")
    return 0


def _run_simulate(args: argparse.Namespace, console: Console) -> int:
    settings = _settings(args)
    if args.step <= 0:
        raise ValueError("--step must be positive")
    assets = load_assets(args.text, args.alignment, timeout=settings.http_timeout)
    if assets.alignment_status is not AssetStatus.LOADED:
        _report_failures(console, assets, settings.language)
        return 1
    duration_ms = int(round(args.duration * 1000)) if args.duration is not None else estimate_duration_ms(assets)
    if duration_ms is not None:
        assets.table.install_total(duration_ms)
    sync = PlaybackSync(assets.table, assets.document, RecordingProbe(), config=settings)
    sync.play()

    limit = (duration_ms or 0) / 1000
    ticks = int(limit / args.step) + 1
    for index in range(ticks):
        seconds = index * args.step
        for effect in sync.on_tick(seconds):
            if isinstance(effect, Highlight):
                word = assets.document.word(effect.unit_id)
                label = word.text.strip() if word is not None else ""
                console.print(f"{seconds:8.3f}s  {effect.unit_id:<20} {label}")
            elif isinstance(effect, TurnPage):
                console.print(f"{seconds:8.3f}s  [cyan]page {effect.page_id}[/cyan]")
    sync.on_playback_end()
    return 0


def _run_serve(args: argparse.Namespace) -> int:
    settings = _settings(args)
    duration_ms = int(round(args.duration * 1000)) if args.duration is not None else None
    config = WebConfig(
        text=args.text,
        alignment=args.alignment,
        audio_duration_ms=duration_ms,
        settings=settings,
    )
    app = create_app(config)
    print(f"Serving read-along session for {args.text}")
    print(f"Web URL: http://{args.host}:{args.port}/")
    print("Press Ctrl+C to stop.\n")
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_config=build_uvicorn_log_config(args.debug),
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    if argv[0] not in SUBCOMMANDS:
        parser.parse_args(argv)
        return 2

    command, rest = argv[0], argv[1:]
    builders = {
        "inspect": build_inspect_parser,
        "export": build_export_parser,
        "simulate": build_simulate_parser,
        "serve": build_serve_parser,
    }
    args = builders[command]().parse_args(rest)
    console = Console(stderr=True)
    configure_console_logging(debug=args.debug, console=console)
    try:
        if command == "inspect":
            return _run_inspect(args, Console())
        if command == "export":
            return _run_export(args, console)
        if command == "simulate":
            return _run_simulate(args, Console())
        return _run_serve(args)
    except (ConfigError, ValueError) as exc:
        raise SystemExit(str(exc)) from exc


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
