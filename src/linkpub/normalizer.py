"""Escaping and identifier helpers for text embedded into EPUB documents."""

from __future__ import annotations

import re
import uuid

from linkpub.errors import EncodingError

FALLBACK_FILENAME = "untitled"
MAX_FILENAME_LENGTH = 50

# Ampersand must come first so the entities added later are not escaped again.
_XML_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
)

_UNSAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9 _-]")
_WHITESPACE_RE = re.compile(r"\s+")
_XML_ILLEGAL_RE = re.compile("[\\x00-\\x08\\x0b\\x0c\\x0e-\\x1f\\ufffe\\uffff]")


def escape_for_xml(text: object) -> str:
    """Escape the five XML special characters; non-strings become ''."""

    if not isinstance(text, str):
        return ""
    for char, entity in _XML_ESCAPES:
        text = text.replace(char, entity)
    return text


def sanitize_filename(title: object) -> str:
    """Reduce a title to a filesystem-safe base name of at most 50 characters."""

    if not isinstance(title, str):
        return FALLBACK_FILENAME
    safe = _UNSAFE_FILENAME_RE.sub("", title)
    safe = _WHITESPACE_RE.sub("_", safe)[:MAX_FILENAME_LENGTH]
    return safe or FALLBACK_FILENAME


def generate_id() -> str:
    """Return a random UUID v4 string used as the book identifier."""

    return str(uuid.uuid4())


def ensure_embeddable(text: str, field: str) -> str:
    """Check that text survives UTF-8 encoding and is legal XML 1.0 character data."""

    try:
        text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise EncodingError(f"{field} cannot be encoded as UTF-8: {exc.reason}") from exc

    match = _XML_ILLEGAL_RE.search(text)
    if match:
        raise EncodingError(
            f"{field} contains a character not allowed in XML (U+{ord(match.group(0)):04X})"
        )
    return text
