"""Render the EPUB container documents for a collection of articles."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from importlib.resources import files

from jinja2 import Environment, Template

from linkpub.config import EpubVariant
from linkpub.errors import ValidationError
from linkpub.models import Article, Collection
from linkpub.normalizer import ensure_embeddable, escape_for_xml

MIMETYPE = "application/epub+zip"
UNTITLED_ARTICLE = "Untitled Article"
UNKNOWN_SITE = "unknown"

MIMETYPE_PATH = "mimetype"
CONTAINER_PATH = "META-INF/container.xml"
OPF_PATH = "OEBPS/content.opf"
NCX_PATH = "OEBPS/toc.ncx"
COVER_PATH = "OEBPS/cover.html"
TOC_PAGE_PATH = "OEBPS/toc.html"


@dataclass(frozen=True)
class ManifestItem:
    """A content document listed in the OPF manifest and spine."""

    id: str
    href: str


@dataclass(frozen=True)
class NavPoint:
    id: str
    play_order: int
    label: str
    href: str


@dataclass(frozen=True)
class ChapterView:
    """Article fields after fallbacks, as they appear in a chapter document."""

    number: int
    title: str
    site_name: str
    url: str
    word_count: int | None
    content: str

    @property
    def id(self) -> str:
        return f"chapter{self.number}"

    @property
    def href(self) -> str:
        return f"chapter{self.number}.html"


@lru_cache(maxsize=None)
def _template(name: str) -> Template:
    template_source = files("linkpub.templates").joinpath(name).read_text(encoding="utf-8")
    environment = Environment(autoescape=False, trim_blocks=True, lstrip_blocks=True)
    environment.filters["xml"] = escape_for_xml
    return environment.from_string(template_source)


def _chapter_view(article: Article, number: int) -> ChapterView:
    if not isinstance(article.content, str):
        raise ValidationError(f"Article {number} has no content")

    title = article.title or UNTITLED_ARTICLE
    site_name = article.site_name or UNKNOWN_SITE
    url = article.url or ""

    for field, value in (("title", title), ("site name", site_name), ("URL", url), ("content", article.content)):
        ensure_embeddable(value, f"Article {number} {field}")

    return ChapterView(
        number=number,
        title=title,
        site_name=site_name,
        url=url,
        word_count=article.word_count,
        content=article.content,
    )


def _manifest(chapters: list[ChapterView], variant: EpubVariant) -> list[ManifestItem]:
    items = [ManifestItem(id=chapter.id, href=chapter.href) for chapter in chapters]
    if variant == EpubVariant.COVER:
        items = [ManifestItem(id="cover", href="cover.html"), ManifestItem(id="toc-page", href="toc.html"), *items]
    return items


def _nav_points(chapters: list[ChapterView], variant: EpubVariant) -> list[NavPoint]:
    offset = 1 if variant == EpubVariant.COVER else 0
    points = [
        NavPoint(id=f"navpoint-{chapter.number}", play_order=chapter.number + offset, label=chapter.title, href=chapter.href)
        for chapter in chapters
    ]
    if variant == EpubVariant.COVER:
        points.insert(0, NavPoint(id="navpoint-0", play_order=1, label="Table of Contents", href="toc.html"))
    return points


def _encode(text: str) -> bytes:
    return text.encode("utf-8")


def render_epub_files(
    collection: Collection,
    variant: EpubVariant,
    *,
    identifier: str,
    built_at: datetime,
) -> dict[str, bytes]:
    """Render every file of the EPUB package, keyed by its path inside the archive."""

    if not collection.articles:
        raise ValidationError("Cannot build an EPUB from an empty collection")

    variant = EpubVariant(variant)
    chapters = [_chapter_view(article, number) for number, article in enumerate(collection.articles, start=1)]

    description = collection.resolved_description
    for field, value in (
        ("Collection title", collection.title),
        ("Collection author", collection.author),
        ("Collection description", description),
        ("Collection source", collection.source or ""),
        ("Book identifier", identifier),
    ):
        ensure_embeddable(value, field)

    rendered: dict[str, bytes] = {
        MIMETYPE_PATH: MIMETYPE.encode("ascii"),
        CONTAINER_PATH: _encode(_template("container.xml.j2").render()),
        OPF_PATH: _encode(
            _template("content.opf.j2").render(
                identifier=identifier,
                title=collection.title,
                author=collection.author,
                build_date=built_at.date().isoformat(),
                source=collection.source,
                description=description,
                manifest=_manifest(chapters, variant),
            )
        ),
        NCX_PATH: _encode(
            _template("toc.ncx.j2").render(
                identifier=identifier,
                title=collection.title,
                page_count=collection.estimated_page_count,
                nav_points=_nav_points(chapters, variant),
            )
        ),
    }

    if variant == EpubVariant.COVER:
        rendered[COVER_PATH] = _encode(
            _template("cover.html.j2").render(
                title=collection.title,
                author=collection.author,
                article_count=len(chapters),
                generated_on=built_at.strftime("%B %d, %Y"),
            )
        )
        rendered[TOC_PAGE_PATH] = _encode(_template("toc.html.j2").render(chapters=chapters))

    chapter_template = _template("chapter.html.j2")
    for chapter in chapters:
        rendered[f"OEBPS/{chapter.href}"] = _encode(
            chapter_template.render(
                chapter_label=variant == EpubVariant.COVER,
                number=chapter.number,
                title=chapter.title,
                site_name=chapter.site_name,
                url=chapter.url,
                word_count=chapter.word_count,
                content=chapter.content,
            )
        )

    return rendered
