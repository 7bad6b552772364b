from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .env import read_env_set
from .errors import UnsupportedMediaType
from .models import Item, normalize_media_type

CORE_MEDIA_TYPES = frozenset(
    {
        "image/gif",
        "image/jpeg",
        "image/png",
        "image/svg+xml",
        "image/webp",
        "application/xhtml+xml",
        "application/x-dtbncx+xml",
        "application/vnd.ms-opentype",
        "application/font-woff",
        "font/otf",
        "font/ttf",
        "font/woff",
        "font/woff2",
        "application/smil+xml",
        "application/pls+xml",
        "audio/mpeg",
        "audio/mp4",
        "text/css",
        "text/javascript",
    }
)


@dataclass(frozen=True)
class SupportConfig:
    additional_supported: frozenset[str] = frozenset()
    excluded_supported: frozenset[str] = frozenset()

    @classmethod
    def of(cls, additional: Iterable[str] = (), excluded: Iterable[str] = ()) -> "SupportConfig":
        return cls(
            additional_supported=frozenset(normalize_media_type(value) for value in additional),
            excluded_supported=frozenset(normalize_media_type(value) for value in excluded),
        )

    @classmethod
    def from_env(cls) -> "SupportConfig":
        return cls(
            additional_supported=read_env_set("OPFGRAPH_SUPPORTED_MEDIA_TYPES"),
            excluded_supported=read_env_set("OPFGRAPH_UNSUPPORTED_MEDIA_TYPES"),
        )

    @property
    def supported(self) -> frozenset[str]:
        return (CORE_MEDIA_TYPES | self.additional_supported) - self.excluded_supported


def _binding_handler(item: Item) -> Optional[Item]:
    package = item.package
    if package is None:
        return None
    return package.bindings.handler_for(item.media_type)


def resolve_supported(item: Item, config: Optional[SupportConfig] = None) -> Item:
    """Pick the first representation of ``item`` a reading system can use.

    Each step accepts the item itself when its media type is supported, then a
    binding handler registered for that media type, then moves on to the
    item's fallback. A fallback pointing back into the walked chain ends the
    walk the same way an exhausted chain does.
    """

    supported = (config or SupportConfig()).supported
    visited: set[Item] = set()
    current: Optional[Item] = item
    while current is not None and current not in visited:
        visited.add(current)
        if normalize_media_type(current.media_type) in supported:
            return current
        handler = _binding_handler(current)
        if handler is not None:
            return handler
        current = current.fallback
    raise UnsupportedMediaType(item)
