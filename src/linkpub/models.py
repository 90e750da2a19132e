"""Domain models used by linkpub."""

from __future__ import annotations

import math
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from linkpub.config import Theme

DEFAULT_COLLECTION_TITLE = "Article Collection"
DEFAULT_AUTHOR = "LinkPub"
WORDS_PER_PAGE = 250


class Article(BaseModel):
    """Readable article data extracted from one source URL."""

    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    content: str
    excerpt: str | None = None
    site_name: str | None = Field(default=None, alias="siteName")
    url: str = ""
    word_count: int | None = Field(default=None, alias="wordCount", ge=0)

    def with_title(self, title: str | None) -> "Article":
        """Return a copy with a user-supplied title, ignoring blank overrides."""

        if title is None or not title.strip():
            return self
        return self.model_copy(update={"title": title.strip()})


class Collection(BaseModel):
    """An ordered set of articles packaged as one multi-chapter EPUB."""

    title: str = DEFAULT_COLLECTION_TITLE
    author: str = DEFAULT_AUTHOR
    description: str | None = None
    source: str | None = None
    articles: list[Article] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def default_blank_title(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_COLLECTION_TITLE
        return value.strip() if isinstance(value, str) else value

    @field_validator("author", mode="before")
    @classmethod
    def default_blank_author(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_AUTHOR
        return value.strip() if isinstance(value, str) else value

    @classmethod
    def from_article(cls, article: Article) -> "Collection":
        """Treat a single article as a one-chapter collection."""

        return cls(
            title=article.title or "Untitled Article",
            author=DEFAULT_AUTHOR,
            description=article.excerpt or None,
            source=article.site_name,
            articles=[article],
        )

    @property
    def resolved_description(self) -> str:
        if self.description and self.description.strip():
            return self.description
        return "\n".join(
            f"{index}. {article.title or 'Untitled Article'}"
            for index, article in enumerate(self.articles, start=1)
        )

    @property
    def estimated_page_count(self) -> int:
        """Rough page estimate for NCX metadata; never used to split content."""

        counts = [article.word_count for article in self.articles if article.word_count is not None]
        if not counts:
            return 0
        return math.ceil(sum(counts) / WORDS_PER_PAGE)

    def reorder(self, old_index: int, new_index: int) -> "Collection":
        """Move one article, leaving the order untouched for out-of-range indexes."""

        size = len(self.articles)
        if old_index == new_index or not (0 <= old_index < size and 0 <= new_index < size):
            return self
        articles = list(self.articles)
        moved = articles.pop(old_index)
        articles.insert(new_index, moved)
        return self.model_copy(update={"articles": articles})

    def contents(self) -> list["LibraryContent"]:
        return [
            LibraryContent(title=article.title or "Untitled Article", url=article.url, siteName=article.site_name or "")
            for article in self.articles
        ]


class LibraryContent(BaseModel):
    """One article reference stored in a library sidecar."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    url: str = ""
    site_name: str = Field(default="", alias="siteName")


class LibraryEntry(BaseModel):
    """A saved EPUB in a user's library."""

    model_config = ConfigDict(populate_by_name=True)

    filename: str
    title: str
    description: str = ""
    contents: list[LibraryContent] = Field(default_factory=list)
    created_at: datetime | None = Field(default=None, alias="createdAt")
    modified_at: datetime | None = Field(default=None, alias="modifiedAt")
    size: int = 0


class SessionUser(BaseModel):
    """The subset of a stored user kept in the session cookie."""

    id: str
    username: str
    theme: Theme = Theme.LIGHT
    preferences: dict = Field(default_factory=dict)


class Bookmark(BaseModel):
    """Normalized bookmark imported from Karakeep."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    url: str = ""
    title: str = "Untitled Bookmark"
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    domain: str = "unknown"
    favourited: bool = False
    author: str = ""
    publisher: str = ""
    image_url: str = Field(default="", alias="imageUrl")
    date_published: str = Field(default="", alias="datePublished")


class BuildReport(BaseModel):
    """Final build summary returned by build_collection."""

    total: int
    succeeded: int
    failed: int
    output: Path | None = None
    failures: list[str] = Field(default_factory=list)
