"""URL validation and URL-file ingestion utilities."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from urllib.parse import urlparse


def validate_url(url: str) -> str:
    """Return the stripped URL if it is an absolute http(s) URL."""

    candidate = url.strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in {"http", "https"}:
        raise ValueError(f"Unsupported URL scheme in '{url}'")
    if not parsed.netloc:
        raise ValueError(f"Missing host in '{url}'")
    return candidate


def parse_url_lines(lines: Iterable[str]) -> list[str]:
    """Validate article URLs (one per line), skipping blanks, comments and repeats.

    Repeats are exact string matches: ``https://a.com/x`` and ``https://a.com/x/``
    are both kept.
    """

    seen: set[str] = set()
    urls: list[str] = []

    for line_number, raw_line in enumerate(lines, start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        try:
            url = validate_url(line)
        except ValueError as exc:
            raise ValueError(f"Invalid URL at line {line_number}: {exc}") from exc

        if url in seen:
            continue

        seen.add(url)
        urls.append(url)

    if not urls:
        raise ValueError("No valid URLs found")

    return urls


def load_url_file(path: Path) -> list[str]:
    """Load and validate article URLs from a text file (one URL per line)."""

    if not path.exists() or not path.is_file():
        raise ValueError(f"URL file not found: {path}")

    return parse_url_lines(path.read_text(encoding="utf-8").splitlines())
