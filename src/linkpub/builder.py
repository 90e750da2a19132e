"""EPUB build entry points for linkpub."""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from linkpub.config import EpubVariant
from linkpub.extractor import ArticleExtractionError, fetch_article
from linkpub.input import load_url_file
from linkpub.models import Article, BuildReport, Collection
from linkpub.normalizer import generate_id, sanitize_filename
from linkpub.packager import package_epub, write_epub
from linkpub.renderer import render_epub_files


def build_epub(
    collection: Collection,
    variant: EpubVariant | str = EpubVariant.PLAIN,
    *,
    identifier: str | None = None,
    built_at: datetime | None = None,
) -> bytes:
    """Render and package a collection into EPUB bytes.

    Raises ``ValidationError`` for an empty collection, ``EncodingError`` when a
    field cannot be embedded and ``PackagingError`` when the archive cannot be
    written. Nothing is returned unless every step succeeds.
    """

    built_at = built_at or datetime.now(timezone.utc)
    files = render_epub_files(
        collection,
        EpubVariant(variant),
        identifier=identifier or generate_id(),
        built_at=built_at,
    )
    return package_epub(files, date_time=built_at.timetuple()[:6])


def epub_filename(title: str, variant: EpubVariant | str = EpubVariant.PLAIN) -> str:
    """Download filename for a built EPUB."""

    suffix = "_with_cover" if EpubVariant(variant) == EpubVariant.COVER else ""
    return f"{sanitize_filename(title)}{suffix}.epub"


def _epub_output_path(output: Path) -> Path:
    return output if output.suffix.lower() == ".epub" else output.with_suffix(".epub")


def _extract_articles(
    urls: list[str],
    *,
    fetch: Callable[[str], Article],
    delay_seconds: float,
    continue_on_error: bool,
    sleep: Callable[[float], None],
) -> tuple[list[Article], list[str]]:
    articles: list[Article] = []
    failures: list[str] = []

    for index, url in enumerate(urls):
        if index > 0 and delay_seconds > 0:
            sleep(delay_seconds)
        try:
            articles.append(fetch(url))
        except ArticleExtractionError as exc:
            message = f"{url}: {exc}"
            if continue_on_error:
                failures.append(message)
                continue
            raise RuntimeError(message) from exc

    return articles, failures


def build_collection(
    url_file: Path,
    output: Path,
    *,
    title: str | None = None,
    author: str | None = None,
    description: str | None = None,
    variant: EpubVariant = EpubVariant.PLAIN,
    delay_seconds: float = 0.5,
    continue_on_error: bool = False,
    fetch: Callable[[str], Article] = fetch_article,
    sleep: Callable[[float], None] = time.sleep,
) -> BuildReport:
    """Extract every URL in url_file and package the results as one EPUB."""

    urls = load_url_file(url_file)
    articles, failures = _extract_articles(
        urls,
        fetch=fetch,
        delay_seconds=delay_seconds,
        continue_on_error=continue_on_error,
        sleep=sleep,
    )

    if not articles:
        raise RuntimeError("No extractable articles were found")

    collection = Collection(title=title, author=author, description=description, articles=articles)
    data = build_epub(collection, variant)
    written = write_epub(data, _epub_output_path(output))

    return BuildReport(
        total=len(urls),
        succeeded=len(articles),
        failed=len(failures),
        output=written,
        failures=failures,
    )
