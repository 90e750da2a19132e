"""Errors raised while building an EPUB."""

from __future__ import annotations


class EpubBuildError(RuntimeError):
    """Base error for EPUB build failures."""


class ValidationError(EpubBuildError):
    """Raised when a collection cannot be packaged, e.g. it has no articles."""


class EncodingError(EpubBuildError):
    """Raised when a string cannot be embedded into an XML document."""


class PackagingError(EpubBuildError):
    """Raised when the EPUB archive cannot be serialized or written."""
