"""Serialize rendered EPUB files into an OCF ZIP container."""

from __future__ import annotations

import io
import os
import tempfile
import zipfile
from collections.abc import Mapping
from pathlib import Path

from linkpub.errors import PackagingError
from linkpub.renderer import MIMETYPE, MIMETYPE_PATH

_DEFAULT_DATE_TIME = (1980, 1, 1, 0, 0, 0)


def _zip_info(name: str, date_time: tuple[int, int, int, int, int, int], compress_type: int) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=date_time)
    info.compress_type = compress_type
    info.external_attr = 0o644 << 16
    return info


def package_epub(
    files: Mapping[str, bytes],
    *,
    date_time: tuple[int, int, int, int, int, int] | None = None,
) -> bytes:
    """Return EPUB bytes with an uncompressed `mimetype` as the first entry."""

    stamp = date_time or _DEFAULT_DATE_TIME
    mimetype = files.get(MIMETYPE_PATH, MIMETYPE.encode("ascii"))
    buffer = io.BytesIO()

    try:
        with zipfile.ZipFile(buffer, mode="w") as archive:
            # Readers sniff the format from the first local header, so this entry
            # must lead the archive and stay stored.
            archive.writestr(_zip_info(MIMETYPE_PATH, stamp, zipfile.ZIP_STORED), mimetype)
            for name, content in files.items():
                if name == MIMETYPE_PATH:
                    continue
                archive.writestr(_zip_info(name, stamp, zipfile.ZIP_DEFLATED), content)
    except (OSError, ValueError, TypeError, zipfile.LargeZipFile, MemoryError) as exc:
        raise PackagingError(f"Failed to package EPUB archive: {exc}") from exc

    return buffer.getvalue()


def write_epub(data: bytes, path: Path) -> Path:
    """Write EPUB bytes to path, replacing any existing file only on success."""

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}-", suffix=".tmp", dir=path.parent)
    except OSError as exc:
        raise PackagingError(f"Failed to prepare {path.parent} for writing: {exc}") from exc

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        tmp_path.replace(path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise PackagingError(f"Failed to write EPUB to {path}: {exc}") from exc

    return path
