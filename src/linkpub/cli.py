"""Typer CLI entrypoint for linkpub."""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError

from linkpub.builder import build_collection, build_epub, epub_filename
from linkpub.config import EpubVariant, Settings
from linkpub.errors import EpubBuildError
from linkpub.extractor import ArticleExtractionError, fetch_article
from linkpub.log import setup_logging
from linkpub.models import Collection
from linkpub.packager import write_epub

app = typer.Typer(help="Convert web articles into EPUB e-books.", no_args_is_help=True)


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Logging level for extraction progress."),
    log_file: Path | None = typer.Option(None, dir_okay=False),
) -> None:
    """linkpub command group."""

    setup_logging(log_level, log_file)


@app.command()
def convert(
    url: str = typer.Argument(..., help="Article URL."),
    output: Path | None = typer.Option(None, dir_okay=False, help="Defaults to <title>.epub."),
    title: str | None = typer.Option(None, help="Override the extracted article title."),
    variant: EpubVariant = typer.Option(EpubVariant.PLAIN),
    timeout_seconds: int = typer.Option(15, min=1, max=180),
) -> None:
    """Convert a single article into an EPUB."""

    try:
        article = fetch_article(url, timeout_seconds=timeout_seconds).with_title(title)
        collection = Collection.from_article(article)
        data = build_epub(collection, variant)
        target = output or Path(epub_filename(collection.title, variant))
        write_epub(data, target)
    except (ArticleExtractionError, EpubBuildError) as exc:
        typer.echo(f"Conversion failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"Output: {target}")


@app.command()
def build(
    url_file: Path = typer.Option(..., exists=True, readable=True, dir_okay=False),
    output: Path = typer.Option(..., dir_okay=False),
    title: str | None = typer.Option(None, help="Collection title."),
    author: str | None = typer.Option(None, help="Collection author."),
    description: str | None = typer.Option(None, help="Defaults to a numbered list of article titles."),
    variant: EpubVariant = typer.Option(EpubVariant.PLAIN),
    delay_seconds: float = typer.Option(0.5, min=0.0, help="Pause between article requests."),
    continue_on_error: bool = typer.Option(False),
) -> None:
    """Build one EPUB collection from a file of article URLs."""

    try:
        report = build_collection(
            url_file,
            output,
            title=title,
            author=author,
            description=description,
            variant=variant,
            delay_seconds=delay_seconds,
            continue_on_error=continue_on_error,
        )
    except Exception as exc:
        typer.echo(f"Build failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(
        f"Processed {report.total} URL(s): {report.succeeded} succeeded, {report.failed} failed."
    )
    typer.echo(f"Output: {report.output}")

    if report.failures:
        typer.echo("Failures:", err=True)
        for failure in report.failures:
            typer.echo(f"- {failure}", err=True)


@app.command()
def serve(
    host: str | None = typer.Option(None, help="Defaults to HOST or 127.0.0.1."),
    port: int | None = typer.Option(None, min=1, max=65535, help="Defaults to PORT or 3000."),
    env_file: Path | None = typer.Option(None, exists=True, dir_okay=False),
) -> None:
    """Run the HTTP API."""

    import uvicorn

    from linkpub.server import create_app

    try:
        settings = Settings.from_env(env_file)
    except ValidationError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc

    logger = setup_logging(settings.log_level, settings.log_file)
    logger.info("Karakeep integration: %s", "ENABLED" if settings.karakeep_enabled else "DISABLED")

    uvicorn.run(create_app(settings), host=host or settings.host, port=port or settings.port)
