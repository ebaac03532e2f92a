"""CLI: search PDFs and replace text visually."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import typer

from pdfoid.config import EngineSettings
from pdfoid.errors import PdfoidError
from pdfoid.logging_utils import configure_logging
from pdfoid.search.schemas import FindTextOptions, ReplaceTextOptions
from pdfoid.session.engine import EditorSession

log = logging.getLogger(__name__)

app = typer.Typer(add_completion=False)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable DEBUG logging"),
) -> None:
    """pdfoid: find and replace text in PDF documents."""
    configure_logging(verbose)


def _read_pdf(pdf: str) -> Path:
    path = Path(pdf).resolve()
    if not path.is_file():
        typer.echo(f"Not a file: {path}", err=True)
        raise typer.Exit(1)
    return path


def _default_out(path: Path) -> Path:
    return path.with_name(f"{path.stem}.edited{path.suffix or '.pdf'}")


async def _open_session(path: Path, env_file: str | None) -> EditorSession:
    session = EditorSession(settings=EngineSettings.from_env(env_file))
    await session.load_document(path.read_bytes(), path.name)
    return session


@app.command()
def find(
    pdf: str = typer.Argument(..., help="Path to PDF file"),
    search: str = typer.Argument(..., help="Text to search for"),
    case_sensitive: bool = typer.Option(False, "--case-sensitive", help="Match case exactly"),
    whole_word: bool = typer.Option(True, "--whole-word/--substring", help="Require word boundaries around the match"),
    as_json: bool = typer.Option(False, "--json", help="Print matches as JSON"),
    env_file: str | None = typer.Option(None, "--env-file", help="Load PDFOID_* settings from this .env file"),
) -> None:
    """List every match with its page, rectangle and snippet."""
    path = _read_pdf(pdf)
    options = FindTextOptions(search=search, case_sensitive=case_sensitive, whole_word=whole_word)

    async def run() -> list:
        session = await _open_session(path, env_file)
        return await session.find_text_matches(options)

    try:
        matches = asyncio.run(run())
    except PdfoidError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps([m.model_dump() for m in matches], indent=2))
        return
    typer.echo(f"{len(matches)} match(es) for {search!r} in {path.name}")
    for m in matches:
        r = m.rect
        typer.echo(f"  [{m.id}] page {m.page_index + 1} at ({r.x:.1f}, {r.y:.1f}) {r.width:.1f}x{r.height:.1f}: {m.snippet}")


@app.command()
def replace(
    pdf: str = typer.Argument(..., help="Path to PDF file"),
    search: str = typer.Argument(..., help="Text to search for"),
    replacement: str = typer.Argument(..., help="Replacement text (empty string erases)"),
    out: str | None = typer.Option(None, "--out", "-o", help="Output PDF path (default: <name>.edited.pdf)"),
    case_sensitive: bool = typer.Option(False, "--case-sensitive", help="Match case exactly"),
    whole_word: bool = typer.Option(True, "--whole-word/--substring", help="Require word boundaries around the match"),
    env_file: str | None = typer.Option(None, "--env-file", help="Load PDFOID_* settings from this .env file"),
) -> None:
    """Replace every occurrence; matches whose replacement cannot fit are skipped."""
    path = _read_pdf(pdf)
    out_path = Path(out).resolve() if out else _default_out(path)
    options = ReplaceTextOptions(
        search=search,
        replace=replacement,
        case_sensitive=case_sensitive,
        whole_word=whole_word,
    )

    async def run():
        session = await _open_session(path, env_file)
        result = await session.replace_text(options)
        return result, session.export_pdf()

    try:
        result, data = asyncio.run(run())
    except PdfoidError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if result.replacements == 0 and result.skipped > 0:
        typer.echo(f"Replaced 0, skipped {result.skipped}: no replacement fit.", err=True)
        raise typer.Exit(2)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(data)
    typer.echo(f"Replaced {result.replacements}, skipped {result.skipped}.")
    typer.echo(f"Output: {out_path}")


@app.command("replace-match")
def replace_match(
    pdf: str = typer.Argument(..., help="Path to PDF file"),
    match_id: str = typer.Argument(..., help="Match id as printed by `find` (e.g. p0_i3_s6_l5)"),
    replacement: str = typer.Argument(..., help="Replacement text (empty string erases)"),
    search: str | None = typer.Option(
        None,
        "--search",
        help="Run this search first so the match comes from fresh results instead of being re-derived",
    ),
    out: str | None = typer.Option(None, "--out", "-o", help="Output PDF path (default: <name>.edited.pdf)"),
    env_file: str | None = typer.Option(None, "--env-file", help="Load PDFOID_* settings from this .env file"),
) -> None:
    """Replace a single match by id."""
    path = _read_pdf(pdf)
    out_path = Path(out).resolve() if out else _default_out(path)

    async def run():
        session = await _open_session(path, env_file)
        if search:
            await session.find_text_matches(FindTextOptions(search=search))
        outcome = await session.replace_match(match_id, replacement)
        return outcome, session.export_pdf()

    try:
        outcome, data = asyncio.run(run())
    except PdfoidError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if not outcome.replaced:
        typer.echo(f"Not replaced: {outcome.reason}", err=True)
        raise typer.Exit(2)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(data)
    typer.echo(f"Replaced {match_id}. Output: {out_path}")


if __name__ == "__main__":
    app()
