from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import Item


class OpfError(Exception):
    pass


class InvalidReference(OpfError, ValueError):
    """Raised when a caller hands the IRI resolver something that is not a relative path."""


class UnsupportedMediaType(OpfError):
    def __init__(self, item: Optional["Item"], message: Optional[str] = None) -> None:
        self.item = item
        media_type = item.media_type if item is not None else None
        super().__init__(message or f"No supported representation for media type {media_type!r}")


class EntryNotFound(OpfError, KeyError):
    def __init__(self, entry_path: str) -> None:
        self.entry_path = entry_path
        super().__init__(entry_path)

    def __str__(self) -> str:
        return f"Archive entry not found: {self.entry_path}"


class ArchiveUnavailable(OpfError):
    pass
