from __future__ import annotations

import posixpath
from urllib.parse import unquote, urlsplit

from .errors import InvalidReference


def _is_relative_reference(iri: str) -> bool:
    parts = urlsplit(iri)
    return not parts.scheme and not parts.netloc and not iri.startswith("//")


def clean_path_segments(path: str) -> str:
    """Drop empty and "." segments and let ".." pop the previous one."""

    cleaned: list[str] = []
    for segment in path.split("/"):
        if not segment or segment == ".":
            continue
        if segment == "..":
            if cleaned:
                cleaned.pop()
            continue
        cleaned.append(segment)
    return "/".join(cleaned)


def resolve_relative(base_href: str, relative_iri: str) -> str:
    if not _is_relative_reference(relative_iri):
        raise InvalidReference(f"Not relative: {relative_iri!r}")
    if relative_iri.startswith("/"):
        raise InvalidReference(f"Starts with slash: {relative_iri!r}")

    base_path = urlsplit(base_href or "").path
    relative_path = urlsplit(relative_iri).path
    if not relative_path:
        merged = base_path
    else:
        base_dir = posixpath.dirname(base_path)
        merged = f"{base_dir}/{relative_path}" if base_dir else relative_path
    return clean_path_segments(merged)


def resolve_entry_path(rootfile_path: str, href: str) -> str:
    return unquote(resolve_relative(rootfile_path, href))

