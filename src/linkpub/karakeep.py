"""Client for importing bookmarks from a Karakeep server."""

from __future__ import annotations

import logging
import re
from urllib.parse import urlparse

import httpx
from dateutil.parser import isoparse

from linkpub.models import Bookmark

logger = logging.getLogger(__name__)

_DOMAIN_RE = re.compile(r"^(?:https?://)?(?:www\.)?([^/]+)")


class KarakeepError(RuntimeError):
    """Raised when the Karakeep API request fails."""


def _domain(url: str) -> str:
    if not url:
        return "unknown"
    host = urlparse(url).hostname
    if host:
        return host
    match = _DOMAIN_RE.match(url)
    return match.group(1) if match else "unknown"


def _tags(raw_tags: object) -> list[str]:
    if isinstance(raw_tags, dict):
        raw_tags = list(raw_tags.values())
    if not isinstance(raw_tags, list):
        return []

    tags: list[str] = []
    for tag in raw_tags:
        if isinstance(tag, dict):
            tag = tag.get("name")
        if isinstance(tag, str) and tag:
            tags.append(tag)
    return tags


def _created_at(bookmark: dict):
    raw = bookmark.get("createdAt") or bookmark.get("created_at") or bookmark.get("modifiedAt")
    if not raw:
        return None
    try:
        return isoparse(raw)
    except (TypeError, ValueError):
        return None


def normalize_bookmark(bookmark: dict) -> Bookmark:
    """Flatten a Karakeep bookmark payload into a Bookmark."""

    content = bookmark.get("content") or {}
    url = content.get("url") or bookmark.get("url") or ""
    title = content.get("title") or bookmark.get("title") or content.get("url") or "Untitled Bookmark"
    description = content.get("description") or bookmark.get("description") or bookmark.get("summary") or ""

    return Bookmark(
        id=str(bookmark.get("id", "")),
        url=url,
        title=title,
        description=description,
        tags=_tags(bookmark.get("tags")),
        created_at=_created_at(bookmark),
        domain=_domain(url),
        favourited=bool(bookmark.get("favourited", False)),
        author=content.get("author") or "",
        publisher=content.get("publisher") or "",
        image_url=content.get("imageUrl") or "",
        date_published=content.get("datePublished") or "",
    )


class KarakeepClient:
    """Minimal read-only Karakeep REST client."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        client: httpx.Client | None = None,
        timeout_seconds: float = 20.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = client
        self._timeout_seconds = timeout_seconds

    def _get(self, path: str, params: dict[str, str]) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "User-Agent": "LinkPub/2.0",
        }
        url = f"{self.base_url}{path}"
        if self._client is not None:
            return self._client.get(url, params=params, headers=headers)
        with httpx.Client(timeout=self._timeout_seconds, follow_redirects=True) as client:
            return client.get(url, params=params, headers=headers)

    def fetch_bookmarks(self, limit: int = 100) -> list[Bookmark]:
        """Fetch non-archived bookmarks without their cached page content."""

        params = {"includeContent": "false", "limit": str(limit), "archived": "false"}
        try:
            response = self._get("/bookmarks", params)
        except httpx.HTTPError as exc:
            raise KarakeepError(f"Karakeep request failed: {exc}") from exc

        if response.is_error:
            logger.error("Karakeep API error response: %s", response.text)
            raise KarakeepError(
                f"Karakeep API error: {response.status_code} {response.reason_phrase}: {response.text}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise KarakeepError("Karakeep returned invalid JSON") from exc

        raw_bookmarks = (data.get("bookmarks") or []) if isinstance(data, dict) else []
        logger.info("Retrieved %d bookmarks from Karakeep", len(raw_bookmarks))
        return [normalize_bookmark(item) for item in raw_bookmarks if isinstance(item, dict)]
