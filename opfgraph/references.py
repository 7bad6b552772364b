from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

from .models import DCMES, Bindings, Link, Manifest, Meta, Metadata, Package

logger = logging.getLogger("opfgraph.references")

MetadataEntity = Union[DCMES, Meta, Link]


@dataclass
class _IdEntry:
    metadata: Optional[MetadataEntity] = None
    refiners: list[Union[Meta, Link]] = field(default_factory=list)


def _build_id_index(metadata: Metadata) -> dict[str, _IdEntry]:
    index: dict[str, _IdEntry] = {}
    for entity in metadata.entities():
        if not entity.id:
            continue
        entry = index.setdefault(entity.id, _IdEntry())
        if entry.metadata is None:
            entry.metadata = entity
        elif entry.metadata is not entity:
            logger.warning("duplicate metadata id %r, keeping the first element", entity.id)

    refining: list[Union[Meta, Link]] = [*metadata.metas, *metadata.links]
    for refiner in refining:
        target_id = refiner.refines_id
        if target_id is None:
            if refiner.refines_iri:
                logger.debug("ignoring non-fragment refines %r", refiner.refines_iri)
            continue
        index.setdefault(target_id, _IdEntry()).refiners.append(refiner)
    return index


def link_refiners(metadata: Metadata) -> None:
    for entity in metadata.entities():
        entity.refiners = []
    for refiner in [*metadata.metas, *metadata.links]:
        refiner.refines = None

    for target_id, entry in _build_id_index(metadata).items():
        if not entry.refiners:
            continue
        if entry.metadata is None:
            logger.debug("orphaned refiners for missing id %r: %d", target_id, len(entry.refiners))
            continue
        entry.metadata.refiners = list(entry.refiners)
        for refiner in entry.refiners:
            refiner.refines = entry.metadata


def link_unique_identifier(metadata: Metadata, unique_identifier_id: Optional[str]) -> None:
    metadata.unique_identifier = None
    if not unique_identifier_id:
        return
    for identifier in metadata.identifiers:
        if identifier.id == unique_identifier_id:
            metadata.unique_identifier = identifier
            return
    logger.debug("no dc:identifier carries unique-identifier id %r", unique_identifier_id)


def link_fallbacks(manifest: Manifest) -> None:
    declared = [(item, item.fallback_id) for item in manifest if item.fallback_id]
    for item in manifest:
        item.fallback = None
        item._fallback_chain = None
    for item, fallback_id in declared:
        target = manifest.get(fallback_id)
        if target is None:
            logger.info("item %r declares missing fallback %r", item.id, fallback_id)
        item.fallback = target


def link_bindings(bindings: Bindings, manifest: Manifest) -> None:
    for binding in bindings:
        binding.handler = manifest.get(binding.handler_id)
        if binding.handler is None:
            logger.info(
                "binding for %r references missing handler %r",
                binding.media_type,
                binding.handler_id,
            )


def _log_dangling_itemrefs(package: Package) -> None:
    for itemref in package.spine.itemrefs:
        if itemref.item is None:
            logger.info("spine itemref points at missing item %r", itemref.idref)


def resolve_references(package: Package) -> Package:
    link_unique_identifier(package.metadata, package.unique_identifier_id)
    link_refiners(package.metadata)
    link_fallbacks(package.manifest)
    link_bindings(package.bindings, package.manifest)
    _log_dangling_itemrefs(package)
    return package
