from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, BinaryIO, Iterator, Optional, Protocol, Union

from lxml import etree as LXML_ET

from .errors import ArchiveUnavailable
from .iri import resolve_entry_path, resolve_relative

if TYPE_CHECKING:
    from .media_types import SupportConfig

CONTENT_DOCUMENT_MEDIA_TYPES = {"application/xhtml+xml", "image/svg+xml"}
DCMES_ELEMENTS = (
    "contributor",
    "coverage",
    "creator",
    "date",
    "description",
    "format",
    "publisher",
    "relation",
    "source",
    "subject",
    "type",
)


class ArchiveEntryReader(Protocol):
    def open(self, entry_path: str) -> BinaryIO: ...


Refiner = Union["Meta", "Link"]


def normalize_media_type(media_type: Optional[str]) -> str:
    return (media_type or "").strip().lower()


@dataclass(eq=False)
class DCMES:
    content: str = ""
    id: Optional[str] = None
    lang: Optional[str] = None
    dir: Optional[str] = None
    opf_role: Optional[str] = None
    opf_file_as: Optional[str] = None
    refiners: list[Refiner] = field(default_factory=list, repr=False)

    def refiner(self, property_name: str) -> Optional[Refiner]:
        for refiner in self.refiners:
            if getattr(refiner, "property", None) == property_name:
                return refiner
        return None

    def _refined_content(self, property_name: str) -> Optional[str]:
        refiner = self.refiner(property_name)
        return refiner.content if isinstance(refiner, Meta) else None

    @property
    def role(self) -> Optional[str]:
        return self._refined_content("role") or self.opf_role

    @property
    def file_as(self) -> Optional[str]:
        return self._refined_content("file-as") or self.opf_file_as

    def __str__(self) -> str:
        return self.content


@dataclass(eq=False)
class Identifier(DCMES):
    opf_scheme: Optional[str] = None

    @property
    def scheme(self) -> Optional[str]:
        return self._refined_content("identifier-type") or self.opf_scheme


@dataclass(eq=False)
class Title(DCMES):
    @property
    def title_type(self) -> Optional[str]:
        return self._refined_content("title-type")

    @property
    def display_seq(self) -> Optional[int]:
        raw = self._refined_content("display-seq")
        try:
            return int(raw) if raw else None
        except ValueError:
            return None


class _Refining:
    refines_iri: Optional[str]

    @property
    def refines_id(self) -> Optional[str]:
        if self.refines_iri and self.refines_iri.startswith("#"):
            return self.refines_iri[1:]
        return None


@dataclass(eq=False)
class Meta(_Refining):
    property: Optional[str] = None
    id: Optional[str] = None
    scheme: Optional[str] = None
    content: str = ""
    name: Optional[str] = None
    refines_iri: Optional[str] = None
    refines: Optional[object] = field(default=None, repr=False)
    refiners: list[Refiner] = field(default_factory=list, repr=False)


@dataclass(eq=False)
class Link(_Refining):
    href: Optional[str] = None
    rel: set[str] = field(default_factory=set)
    id: Optional[str] = None
    media_type: Optional[str] = None
    properties: set[str] = field(default_factory=set)
    refines_iri: Optional[str] = None
    refines: Optional[object] = field(default=None, repr=False)
    refiners: list[Refiner] = field(default_factory=list, repr=False)


@dataclass(eq=False)
class Metadata:
    identifiers: list[Identifier] = field(default_factory=list)
    titles: list[Title] = field(default_factory=list)
    languages: list[DCMES] = field(default_factory=list)
    contributors: list[DCMES] = field(default_factory=list)
    coverages: list[DCMES] = field(default_factory=list)
    creators: list[DCMES] = field(default_factory=list)
    dates: list[DCMES] = field(default_factory=list)
    descriptions: list[DCMES] = field(default_factory=list)
    formats: list[DCMES] = field(default_factory=list)
    publishers: list[DCMES] = field(default_factory=list)
    relations: list[DCMES] = field(default_factory=list)
    rights: list[DCMES] = field(default_factory=list)
    sources: list[DCMES] = field(default_factory=list)
    subjects: list[DCMES] = field(default_factory=list)
    types: list[DCMES] = field(default_factory=list)
    metas: list[Meta] = field(default_factory=list)
    links: list[Link] = field(default_factory=list)
    unique_identifier: Optional[Identifier] = None

    def dcmes_list(self, element: str) -> list[DCMES]:
        if element == "rights":
            return self.rights
        return getattr(self, f"{element}s")

    def entities(self) -> Iterator[Union[DCMES, Meta, Link]]:
        yield from self.identifiers
        yield from self.titles
        yield from self.languages
        for element in DCMES_ELEMENTS:
            yield from self.dcmes_list(element)
        yield from self.rights
        yield from self.metas
        yield from self.links

    @property
    def title(self) -> Optional[str]:
        if not self.titles:
            return None
        for title in self.titles:
            if title.title_type == "main":
                return title.content
        return self.titles[0].content

    def meta_content(self, property_name: str) -> Optional[str]:
        for meta in self.metas:
            if meta.property == property_name and meta.refines_iri is None:
                return meta.content
        return None

    @property
    def modified(self) -> Optional[str]:
        return self.meta_content("dcterms:modified")

    @property
    def release_identifier(self) -> Optional[str]:
        if self.unique_identifier is None:
            return None
        modified = self.modified
        if not modified:
            return self.unique_identifier.content
        return f"{self.unique_identifier.content}@{modified}"


@dataclass(eq=False)
class Item:
    id: Optional[str] = None
    href: Optional[str] = None
    media_type: Optional[str] = None
    properties: set[str] = field(default_factory=set)
    media_overlay: Optional[str] = None
    fallback_id: Optional[str] = None
    fallback: Optional["Item"] = field(default=None, repr=False)
    manifest: Optional["Manifest"] = field(default=None, repr=False)
    _fallback_chain: Optional[list["Item"]] = field(default=None, repr=False)
    _content_document: Optional[LXML_ET._Element] = field(default=None, repr=False)

    @property
    def is_nav(self) -> bool:
        return "nav" in self.properties

    @property
    def is_cover_image(self) -> bool:
        return "cover-image" in self.properties

    @property
    def is_xhtml(self) -> bool:
        return self.media_type == "application/xhtml+xml"

    @property
    def package(self) -> Optional["Package"]:
        return self.manifest.package if self.manifest is not None else None

    @property
    def fallback_chain(self) -> list["Item"]:
        if self._fallback_chain is None:
            chain: list[Item] = []
            visited: set[Item] = set()
            current: Optional[Item] = self
            while current is not None and current not in visited:
                visited.add(current)
                chain.append(current)
                current = current.fallback
            self._fallback_chain = chain
        return list(self._fallback_chain)

    def use_fallback_chain(self, config: Optional["SupportConfig"] = None) -> "Item":
        from .media_types import resolve_supported

        return resolve_supported(self, config)

    def entry_resolved_path(self, rootfile_path: Optional[str] = None) -> str:
        if rootfile_path is None:
            package = self.package
            rootfile_path = package.rootfile_path if package is not None else ""
        return resolve_entry_path(rootfile_path, self.href or "")

    def find_item_by_relative_iri(self, iri: str) -> Optional["Item"]:
        target = resolve_relative(self.href or "", iri)
        if self.manifest is None:
            return None
        for item in self.manifest.items:
            if item.href == target:
                return item
        return None

    @property
    def itemref(self) -> Optional["Itemref"]:
        package = self.package
        if package is None:
            return None
        if not self.id:
            return None
        for itemref in package.spine.itemrefs:
            if itemref.idref == self.id:
                return itemref
        return None

    @property
    def media_overlay_item(self) -> Optional["Item"]:
        if not self.media_overlay or self.manifest is None:
            return None
        return self.manifest.get(self.media_overlay)

    def read(self) -> bytes:
        package = self.package
        if package is None or package.reader is None:
            raise ArchiveUnavailable(f"Item {self.id!r} is not attached to an archive")
        with package.reader.open(self.entry_resolved_path()) as stream:
            return stream.read()

    @property
    def content_document(self) -> Optional[LXML_ET._Element]:
        if self.media_type not in CONTENT_DOCUMENT_MEDIA_TYPES:
            return None
        if self._content_document is None:
            parser = LXML_ET.XMLParser(resolve_entities=False, no_network=True)
            self._content_document = LXML_ET.fromstring(self.read(), parser=parser)
        return self._content_document


@dataclass(eq=False)
class Manifest:
    id: Optional[str] = None
    package: Optional["Package"] = field(default=None, repr=False)
    _items: list[Item] = field(default_factory=list)
    _index: dict[str, Item] = field(default_factory=dict, repr=False)

    def add(self, item: Item) -> bool:
        if item.id:
            if item.id in self._index:
                return False
            self._index[item.id] = item
        item.manifest = self
        self._items.append(item)
        return True

    @property
    def items(self) -> list[Item]:
        return list(self._items)

    def get(self, item_id: Optional[str]) -> Optional[Item]:
        if not item_id:
            return None
        return self._index.get(item_id)

    def __getitem__(self, item_id: str) -> Optional[Item]:
        return self.get(item_id)

    def __contains__(self, item_id: object) -> bool:
        return isinstance(item_id, str) and item_id in self._index

    def __iter__(self) -> Iterator[Item]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    @property
    def navs(self) -> list[Item]:
        return [item for item in self._items if item.is_nav]

    @property
    def nav(self) -> Optional[Item]:
        navs = self.navs
        return navs[0] if navs else None

    @property
    def cover_image(self) -> Optional[Item]:
        for item in self._items:
            if item.is_cover_image:
                return item
        return None


_PAGE_SPREADS = {
    "page-spread-left": "left",
    "page-spread-right": "right",
    "rendition:page-spread-left": "left",
    "rendition:page-spread-right": "right",
    "rendition:page-spread-center": "center",
}
_RENDITION_LAYOUTS = {
    "rendition:layout-pre-paginated": "pre-paginated",
    "rendition:layout-reflowable": "reflowable",
}


@dataclass(eq=False)
class Itemref:
    idref: Optional[str] = None
    id: Optional[str] = None
    linear: bool = True
    properties: set[str] = field(default_factory=set)
    spine: Optional["Spine"] = field(default=None, repr=False)

    @property
    def item(self) -> Optional[Item]:
        if self.spine is None or self.spine.package is None:
            return None
        return self.spine.package.manifest.get(self.idref)

    @property
    def page_spread(self) -> Optional[str]:
        for prop, spread in _PAGE_SPREADS.items():
            if prop in self.properties:
                return spread
        return None

    @property
    def rendition_layout(self) -> Optional[str]:
        package = self.spine.package if self.spine is not None else None
        if package is None or not package.fixed_layout:
            return None
        for prop, layout in _RENDITION_LAYOUTS.items():
            if prop in self.properties:
                return layout
        return package.rendition_layout


@dataclass(eq=False)
class Spine:
    id: Optional[str] = None
    toc: Optional[str] = None
    page_progression_direction: Optional[str] = None
    itemrefs: list[Itemref] = field(default_factory=list)
    package: Optional["Package"] = field(default=None, repr=False)

    def add(self, itemref: Itemref) -> None:
        itemref.spine = self
        self.itemrefs.append(itemref)

    @property
    def items(self) -> list[Item]:
        resolved = (itemref.item for itemref in self.itemrefs)
        return [item for item in resolved if item is not None]

    @property
    def toc_item(self) -> Optional[Item]:
        if self.package is None:
            return None
        return self.package.manifest.get(self.toc)


@dataclass(eq=False)
class Reference:
    type: Optional[str] = None
    title: Optional[str] = None
    href: Optional[str] = None


@dataclass(eq=False)
class Guide:
    references: list[Reference] = field(default_factory=list)

    def reference(self, ref_type: str) -> Optional[Reference]:
        for ref in self.references:
            if ref.type == ref_type:
                return ref
        return None

    def __iter__(self) -> Iterator[Reference]:
        return iter(self.references)

    def __len__(self) -> int:
        return len(self.references)


@dataclass(eq=False)
class MediaTypeBinding:
    media_type: Optional[str] = None
    handler_id: Optional[str] = None
    handler: Optional[Item] = field(default=None, repr=False)


@dataclass(eq=False)
class Bindings:
    media_types: list[MediaTypeBinding] = field(default_factory=list)

    def __getitem__(self, media_type: Optional[str]) -> Optional[MediaTypeBinding]:
        wanted = normalize_media_type(media_type)
        if not wanted:
            return None
        for binding in self.media_types:
            if normalize_media_type(binding.media_type) == wanted:
                return binding
        return None

    def handler_for(self, media_type: Optional[str]) -> Optional[Item]:
        binding = self[media_type]
        return binding.handler if binding is not None else None

    def __iter__(self) -> Iterator[MediaTypeBinding]:
        return iter(self.media_types)

    def __len__(self) -> int:
        return len(self.media_types)


@dataclass(eq=False)
class Package:
    version: Optional[str] = None
    xml_lang: Optional[str] = None
    dir: Optional[str] = None
    id: Optional[str] = None
    unique_identifier_id: Optional[str] = None
    prefix: dict[str, str] = field(default_factory=dict)
    fixed_layout: bool = False
    rootfile_path: str = ""
    reader: Optional[ArchiveEntryReader] = field(default=None, repr=False)
    metadata: Metadata = field(default_factory=Metadata, repr=False)
    manifest: Manifest = field(default_factory=Manifest, repr=False)
    spine: Spine = field(default_factory=Spine, repr=False)
    guide: Guide = field(default_factory=Guide, repr=False)
    bindings: Bindings = field(default_factory=Bindings, repr=False)

    def __post_init__(self) -> None:
        self.manifest.package = self
        self.spine.package = self

    @property
    def unique_identifier(self) -> Optional[Identifier]:
        return self.metadata.unique_identifier

    @property
    def cover_item(self) -> Optional[Item]:
        cover = self.manifest.cover_image
        if cover is not None:
            return cover
        for meta in self.metadata.metas:
            if meta.name == "cover" and meta.content:
                return self.manifest.get(meta.content)
        return None

    @property
    def rendition_layout(self) -> Optional[str]:
        if not self.fixed_layout:
            return None
        return self.metadata.meta_content("rendition:layout") or "reflowable"
