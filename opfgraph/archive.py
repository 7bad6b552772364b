from __future__ import annotations

import io
import logging
import posixpath
import zipfile
from pathlib import Path
from typing import BinaryIO, Optional

from .elements import attribute, query, xml_root
from .errors import EntryNotFound
from .models import Package
from .parser import parse

logger = logging.getLogger("opfgraph.archive")

CONTAINER_PATH = "META-INF/container.xml"
PACKAGE_MEDIA_TYPE = "application/oebps-package+xml"


def canonical_entry_name(name: str) -> str:
    normalized = posixpath.normpath((name or "").replace("\\", "/")).lstrip("/")
    while normalized.startswith("../"):
        normalized = normalized[3:]
    return "" if normalized in {"", "."} else normalized


def _zip_entry_index(zf: zipfile.ZipFile) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for info in zf.infolist():
        canonical = canonical_entry_name(info.filename)
        if canonical and canonical not in mapping:
            mapping[canonical] = info.filename
    return mapping


class ZipEntryReader:
    """Reads archive entries on demand, reopening the EPUB file for each call."""

    def __init__(self, epub_file: Path) -> None:
        self.epub_file = Path(epub_file)

    def read(self, entry_path: str) -> bytes:
        with zipfile.ZipFile(self.epub_file, "r") as zf:
            actual = _zip_entry_index(zf).get(canonical_entry_name(entry_path))
            if actual is None:
                raise EntryNotFound(entry_path)
            return zf.read(actual)

    def open(self, entry_path: str) -> BinaryIO:
        return io.BytesIO(self.read(entry_path))


def rootfile_path_from_container(raw: bytes) -> str:
    root = xml_root(raw)
    rootfiles = query(root, "container:rootfiles/container:rootfile")
    preferred: Optional[str] = None
    for node in rootfiles:
        full_path = (attribute(node, "full-path") or "").strip()
        if not full_path:
            continue
        media_type = attribute(node, "media-type")
        if media_type in {None, PACKAGE_MEDIA_TYPE}:
            preferred = full_path
            break
        if preferred is None:
            preferred = full_path
    normalized = canonical_entry_name(preferred or "")
    if not normalized:
        raise EntryNotFound("rootfile in META-INF/container.xml")
    return normalized


def read_package(epub_file: Path) -> Package:
    reader = ZipEntryReader(epub_file)
    rootfile_path = rootfile_path_from_container(reader.read(CONTAINER_PATH))
    logger.debug("reading package document %s from %s", rootfile_path, epub_file)
    return parse(reader.read(rootfile_path), rootfile_path=rootfile_path, reader=reader)
