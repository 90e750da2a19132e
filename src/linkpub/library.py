"""Per-user EPUB library stored as files with JSON metadata sidecars."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from dateutil.parser import isoparse
from pydantic import ValidationError as PydanticValidationError

from linkpub.models import LibraryContent, LibraryEntry
from linkpub.normalizer import sanitize_filename
from linkpub.packager import write_epub

logger = logging.getLogger(__name__)


class LibraryError(RuntimeError):
    """Base error for library storage failures."""


class InvalidFilenameError(LibraryError):
    """Raised for names that are not plain `.epub` file names."""


class EntryNotFoundError(LibraryError):
    """Raised when a requested EPUB does not exist in the user's library."""


def decode_data_uri(value: str) -> bytes:
    """Decode a base64 data URI (or a bare base64 payload) to bytes."""

    payload = value.split(",", 1)[1] if value.startswith("data:") and "," in value else value
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise LibraryError("EPUB data is not valid base64") from exc


def validate_filename(filename: str) -> str:
    if not filename.endswith(".epub") or ".." in filename or "/" in filename or "\\" in filename:
        raise InvalidFilenameError(f"Invalid filename: {filename}")
    return filename


def _sidecar_path(epub_path: Path) -> Path:
    return epub_path.with_suffix(".json")


def _timestamp(value: float) -> datetime:
    return datetime.fromtimestamp(value, tz=timezone.utc)


class LibraryStore:
    """Saves, lists and deletes EPUBs under ``root/<user_id>``."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def user_dir(self, user_id: str) -> Path:
        if not user_id or "/" in user_id or ".." in user_id:
            raise LibraryError(f"Invalid user id: {user_id!r}")
        return self.root / user_id

    def ensure_user_dir(self, user_id: str) -> Path:
        directory = self.user_dir(user_id)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LibraryError(f"Failed to create storage directory: {exc}") from exc
        return directory

    def save(
        self,
        user_id: str,
        *,
        title: str,
        data: bytes,
        description: str = "",
        contents: Iterable[LibraryContent] = (),
    ) -> LibraryEntry:
        """Store an EPUB under a name derived from its title, replacing any same-named entry."""

        if not title or not data:
            raise LibraryError("Title and EPUB data required")

        directory = self.ensure_user_dir(user_id)
        filename = f"{sanitize_filename(title)}.epub"
        epub_path = directory / filename
        created_at = datetime.now(timezone.utc)
        items = list(contents)

        write_epub(data, epub_path)
        sidecar = {
            "title": title,
            "description": description or "",
            "contents": [item.model_dump(by_alias=True) for item in items],
            "createdAt": created_at.isoformat(),
            "userId": user_id,
        }
        try:
            _sidecar_path(epub_path).write_text(json.dumps(sidecar, indent=2), encoding="utf-8")
        except OSError as exc:
            epub_path.unlink(missing_ok=True)
            raise LibraryError(f"Failed to write metadata for {filename}: {exc}") from exc

        logger.info("EPUB saved: %s for user %s", filename, user_id)
        stats = epub_path.stat()
        return LibraryEntry(
            filename=filename,
            title=title,
            description=description or "",
            contents=items,
            created_at=created_at,
            modified_at=_timestamp(stats.st_mtime),
            size=stats.st_size,
        )

    def _read_entry(self, epub_path: Path) -> LibraryEntry:
        stats = epub_path.stat()
        values: dict = {
            "filename": epub_path.name,
            "title": epub_path.stem,
            "description": "",
            "contents": [],
            "created_at": _timestamp(stats.st_ctime),
        }

        sidecar = _sidecar_path(epub_path)
        if sidecar.exists():
            try:
                saved = json.loads(sidecar.read_text(encoding="utf-8"))
                if not isinstance(saved, dict):
                    raise ValueError("metadata is not a JSON object")
                contents = [LibraryContent.model_validate(item) for item in saved.get("contents") or []]
                created_at = isoparse(saved["createdAt"]) if saved.get("createdAt") else values["created_at"]
                values.update(
                    title=saved.get("title") or values["title"],
                    description=saved.get("description") or "",
                    contents=contents,
                    created_at=created_at,
                )
            except (OSError, TypeError, ValueError, PydanticValidationError) as exc:
                logger.warning("Ignoring unreadable metadata %s: %s", sidecar, exc)

        return LibraryEntry(**values, modified_at=_timestamp(stats.st_mtime), size=stats.st_size)

    def list(self, user_id: str) -> list[LibraryEntry]:
        """Return the user's EPUBs, most recently modified first."""

        directory = self.user_dir(user_id)
        if not directory.is_dir():
            return []

        entries = [self._read_entry(path) for path in directory.glob("*.epub") if path.is_file()]
        return sorted(entries, key=lambda entry: entry.modified_at, reverse=True)

    def path_for(self, user_id: str, filename: str) -> Path:
        epub_path = self.user_dir(user_id) / validate_filename(filename)
        if not epub_path.is_file():
            raise EntryNotFoundError(f"EPUB not found: {filename}")
        return epub_path

    def delete(self, user_id: str, filename: str) -> None:
        epub_path = self.path_for(user_id, filename)
        try:
            epub_path.unlink()
            _sidecar_path(epub_path).unlink(missing_ok=True)
        except OSError as exc:
            raise LibraryError(f"Failed to delete {filename}: {exc}") from exc
        logger.info("EPUB deleted: %s for user %s", filename, user_id)
