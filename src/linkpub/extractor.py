"""Fetch web pages and extract readable article content."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from contextlib import contextmanager
from urllib.parse import urlparse

import httpx
import trafilatura
from bs4 import BeautifulSoup

from linkpub.input import validate_url
from linkpub.models import Article

logger = logging.getLogger(__name__)

MIN_HTML_LENGTH = 100
MIN_CONTENT_LENGTH = 100

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

_BASE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Upgrade-Insecure-Requests": "1",
}


class ArticleExtractionError(RuntimeError):
    """Raised when a page cannot be fetched or has no readable content."""


class ArticleBlockedError(ArticleExtractionError):
    """Raised when the site answers 403 to every user agent."""


def request_headers(url: str, user_agent: str) -> dict[str, str]:
    """Browser-like request headers, with referers some publishers expect."""

    domain = urlparse(url).hostname or ""
    headers = {"User-Agent": user_agent, **_BASE_HEADERS}

    if "medium.com" in domain or "substack.com" in domain:
        headers["Referer"] = f"https://{domain}/"
        headers["Sec-Ch-Ua"] = '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"'
        headers["Sec-Ch-Ua-Mobile"] = "?0"
        headers["Sec-Ch-Ua-Platform"] = '"Windows"'

    if "nytimes.com" in domain or "wsj.com" in domain:
        headers["Referer"] = "https://www.google.com/"

    return headers


def _fragment_from_html(extracted: str) -> BeautifulSoup:
    soup = BeautifulSoup(extracted, "html.parser")
    body = soup.find("body")
    if body is None:
        return soup
    return BeautifulSoup(body.decode_contents(), "html.parser")


def parse_article(html: str, url: str) -> Article:
    """Run readability extraction over a downloaded page."""

    domain = urlparse(url).hostname or "unknown"
    extracted = trafilatura.extract(
        html,
        url=url,
        output_format="html",
        include_images=True,
        include_tables=True,
        include_links=True,
    )
    if not extracted:
        raise ArticleExtractionError("Could not extract readable content from this page")

    fragment = _fragment_from_html(extracted)
    content = fragment.decode(formatter="minimal").strip()
    if len(content) < MIN_CONTENT_LENGTH:
        raise ArticleExtractionError("Could not extract readable content from this page")

    metadata = trafilatura.extract_metadata(html, default_url=url)
    title = getattr(metadata, "title", None) if metadata else None
    site_name = getattr(metadata, "sitename", None) if metadata else None
    excerpt = getattr(metadata, "description", None) if metadata else None

    text = fragment.get_text(" ")
    return Article(
        title=title or "Untitled Article",
        content=content,
        excerpt=excerpt or "",
        site_name=site_name or domain,
        url=url,
        word_count=len(text.split()),
    )


@contextmanager
def _http_client(client: httpx.Client | None, timeout_seconds: float):
    if client is not None:
        yield client
        return

    with httpx.Client(timeout=timeout_seconds, follow_redirects=True) as owned:
        yield owned


def fetch_article(
    url: str,
    *,
    client: httpx.Client | None = None,
    timeout_seconds: float = 15.0,
    retry_delay: float = 2.0,
    forbidden_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Article:
    """Download url and extract it, trying each user agent in turn."""

    try:
        url = validate_url(url)
    except ValueError as exc:
        raise ArticleExtractionError(str(exc)) from exc

    last_error: Exception | None = None
    attempts = len(USER_AGENTS)

    with _http_client(client, timeout_seconds) as http:
        for attempt, user_agent in enumerate(USER_AGENTS, start=1):
            is_last = attempt == attempts
            logger.info("Extracting %s (attempt %d)", url, attempt)
            try:
                response = http.get(url, headers=request_headers(url, user_agent))

                if response.status_code == 403 and not is_last:
                    logger.info("Got 403 from %s, trying next user agent", url)
                    last_error = ArticleBlockedError("HTTP 403: Forbidden")
                    sleep(forbidden_delay)
                    continue

                if response.is_error:
                    raise ArticleExtractionError(f"HTTP {response.status_code}: {response.reason_phrase}")

                html = response.text
                if len(html) < MIN_HTML_LENGTH:
                    raise ArticleExtractionError("Response too short, possible blocking")

                article = parse_article(html, url)
                logger.info("Extracted %r (%s words)", article.title, article.word_count)
                return article
            except (httpx.HTTPError, ArticleExtractionError) as exc:
                last_error = exc
                logger.info("Attempt %d for %s failed: %s", attempt, url, exc)
                if not is_last:
                    sleep(retry_delay)

    logger.error("All extraction attempts failed for %s: %s", url, last_error)
    raise ArticleExtractionError(
        f"Failed to extract article after {attempts} attempts: {last_error}. "
        "This website may be blocking automated access."
    )
