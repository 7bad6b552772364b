from __future__ import annotations

import logging
from typing import Optional, TypeVar, Union

from lxml import etree as LXML_ET

from .elements import (
    attribute,
    children,
    first_child,
    query,
    split_tokens,
    tag_local_name,
    text_content,
    xml_root,
)
from .models import (
    DCMES,
    DCMES_ELEMENTS,
    ArchiveEntryReader,
    Bindings,
    Guide,
    Identifier,
    Item,
    Itemref,
    Link,
    Manifest,
    MediaTypeBinding,
    Meta,
    Metadata,
    Package,
    Reference,
    Spine,
    Title,
)
from .prefixes import RENDITION_PREFIX, parse_prefix
from .references import resolve_references

logger = logging.getLogger("opfgraph.parser")

_D = TypeVar("_D", bound=DCMES)


def parse(
    opf: Union[bytes, str],
    rootfile_path: str = "",
    reader: Optional[ArchiveEntryReader] = None,
) -> Package:
    """Build a cross-referenced :class:`Package` from Package Document text.

    XML that cannot be parsed raises ``lxml.etree.XMLSyntaxError``; every
    other defect (missing attributes, dangling ids) leaves the affected field
    unset.
    """

    root = xml_root(opf)
    package = _build_package(root)
    package.rootfile_path = rootfile_path
    package.reader = reader
    _build_metadata(first_child(root, "opf:metadata"), package.metadata)
    _build_manifest(first_child(root, "opf:manifest"), package.manifest)
    _build_spine(first_child(root, "opf:spine"), package.spine)
    _build_guide(root, package.guide)
    _build_bindings(first_child(root, "opf:bindings"), package.bindings)
    return resolve_references(package)


def _build_package(root: LXML_ET._Element) -> Package:
    if tag_local_name(root.tag) != "package":
        logger.warning("root element is <%s>, expected <package>", tag_local_name(root.tag))
    prefix = parse_prefix(attribute(root, "prefix"))
    return Package(
        version=attribute(root, "version"),
        xml_lang=attribute(root, "xml:lang"),
        dir=attribute(root, "dir"),
        id=attribute(root, "id"),
        unique_identifier_id=attribute(root, "unique-identifier"),
        prefix=prefix,
        fixed_layout=RENDITION_PREFIX in prefix,
    )


def _fill_dcmes(entity: _D, node: LXML_ET._Element) -> _D:
    entity.content = text_content(node)
    entity.id = attribute(node, "id")
    entity.lang = attribute(node, "xml:lang")
    entity.dir = attribute(node, "dir")
    entity.opf_role = attribute(node, "opf:role")
    entity.opf_file_as = attribute(node, "opf:file-as")
    return entity


def _build_meta(node: LXML_ET._Element) -> Meta:
    content = text_content(node)
    if not content:
        content = (attribute(node, "content") or "").strip()
    return Meta(
        property=attribute(node, "property"),
        id=attribute(node, "id"),
        scheme=attribute(node, "scheme"),
        content=content,
        name=attribute(node, "name"),
        refines_iri=attribute(node, "refines"),
    )


def _build_link(node: LXML_ET._Element) -> Link:
    return Link(
        href=attribute(node, "href"),
        rel=split_tokens(attribute(node, "rel")),
        id=attribute(node, "id"),
        media_type=attribute(node, "media-type"),
        properties=split_tokens(attribute(node, "properties")),
        refines_iri=attribute(node, "refines"),
    )


def _build_metadata(elem: Optional[LXML_ET._Element], metadata: Metadata) -> Metadata:
    if elem is None:
        logger.warning("package has no <metadata> element")
        return metadata

    for node in children(elem, "dc:identifier"):
        identifier = _fill_dcmes(Identifier(), node)
        identifier.opf_scheme = attribute(node, "opf:scheme")
        metadata.identifiers.append(identifier)
    metadata.titles = [_fill_dcmes(Title(), node) for node in children(elem, "dc:title")]
    metadata.languages = [_fill_dcmes(DCMES(), node) for node in children(elem, "dc:language")]
    for element in DCMES_ELEMENTS:
        metadata.dcmes_list(element).extend(
            _fill_dcmes(DCMES(), node) for node in children(elem, f"dc:{element}")
        )
    metadata.rights = [_fill_dcmes(DCMES(), node) for node in children(elem, "dc:rights")]
    metadata.metas = [_build_meta(node) for node in children(elem, "opf:meta")]
    metadata.links = [_build_link(node) for node in children(elem, "opf:link")]
    return metadata


def _build_manifest(elem: Optional[LXML_ET._Element], manifest: Manifest) -> Manifest:
    if elem is None:
        logger.warning("package has no <manifest> element")
        return manifest

    manifest.id = attribute(elem, "id")
    for node in children(elem, "opf:item"):
        item = Item(
            id=attribute(node, "id"),
            href=attribute(node, "href"),
            media_type=attribute(node, "media-type"),
            properties=split_tokens(attribute(node, "properties")),
            media_overlay=attribute(node, "media-overlay"),
            fallback_id=attribute(node, "fallback"),
        )
        if not item.id:
            logger.info("manifest item without id (href=%r)", item.href)
        if not manifest.add(item):
            logger.warning("duplicate manifest item id %r, keeping the first", item.id)
    return manifest


def _build_spine(elem: Optional[LXML_ET._Element], spine: Spine) -> Spine:
    if elem is None:
        logger.warning("package has no <spine> element")
        return spine

    spine.id = attribute(elem, "id")
    spine.toc = attribute(elem, "toc")
    spine.page_progression_direction = attribute(elem, "page-progression-direction")
    for node in children(elem, "opf:itemref"):
        spine.add(
            Itemref(
                idref=attribute(node, "idref"),
                id=attribute(node, "id"),
                linear=attribute(node, "linear") != "no",
                properties=split_tokens(attribute(node, "properties")),
            )
        )
    return spine


def _build_guide(root: LXML_ET._Element, guide: Guide) -> Guide:
    for node in query(root, "opf:guide/opf:reference"):
        guide.references.append(
            Reference(
                type=attribute(node, "type"),
                title=attribute(node, "title"),
                href=attribute(node, "href"),
            )
        )
    return guide


def _build_bindings(elem: Optional[LXML_ET._Element], bindings: Bindings) -> Bindings:
    for node in children(elem, "opf:mediaType"):
        bindings.media_types.append(
            MediaTypeBinding(
                media_type=attribute(node, "media-type"),
                handler_id=attribute(node, "handler"),
            )
        )
    return bindings
