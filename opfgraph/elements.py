from __future__ import annotations

from typing import Optional, Union

from lxml import etree as LXML_ET

OPF_NS = "http://www.idpf.org/2007/opf"
DC_NS = "http://purl.org/dc/elements/1.1/"
XML_NS = "http://www.w3.org/XML/1998/namespace"
CONTAINER_NS = "urn:oasis:names:tc:opendocument:xmlns:container"

NAMESPACES = {
    "opf": OPF_NS,
    "dc": DC_NS,
    "xml": XML_NS,
    "container": CONTAINER_NS,
}


def xml_root(raw: Union[bytes, str]) -> LXML_ET._Element:
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    parser = LXML_ET.XMLParser(resolve_entities=False, no_network=True)
    return LXML_ET.fromstring(raw, parser=parser)


def tag_local_name(tag: object) -> str:
    if not tag or not isinstance(tag, str):
        return ""
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _tag_namespace(tag: str) -> Optional[str]:
    if tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return None


def _split_qname(qname: str) -> tuple[Optional[str], str]:
    prefix, sep, local = qname.rpartition(":")
    if not sep:
        return None, qname
    return NAMESPACES[prefix], local


def children(node: Optional[LXML_ET._Element], qname: str) -> list[LXML_ET._Element]:
    """Child elements named ``qname`` ("opf:item", "dc:title") in document order.

    Un-namespaced children match on their local name so that legacy OPF files
    written without the default namespace still parse.
    """

    if node is None:
        return []
    namespace, local = _split_qname(qname)
    matched: list[LXML_ET._Element] = []
    for child in node:
        tag = child.tag
        if not isinstance(tag, str) or tag_local_name(tag) != local:
            continue
        child_ns = _tag_namespace(tag)
        if child_ns is None or namespace is None or child_ns == namespace:
            matched.append(child)
    return matched


def first_child(node: Optional[LXML_ET._Element], qname: str) -> Optional[LXML_ET._Element]:
    found = children(node, qname)
    return found[0] if found else None


def query(node: Optional[LXML_ET._Element], path: str) -> list[LXML_ET._Element]:
    current = [node] if node is not None else []
    for step in path.split("/"):
        if not step or step == ".":
            continue
        current = [child for parent in current for child in children(parent, step)]
    return current


def attribute(node: Optional[LXML_ET._Element], name: str) -> Optional[str]:
    if node is None:
        return None
    namespace, local = _split_qname(name)
    key = f"{{{namespace}}}{local}" if namespace else local
    value = node.get(key)
    if value is None and namespace == OPF_NS:
        # EPUB 2 files sometimes write opf:scheme/opf:role without the prefix.
        value = node.get(local)
    return value


def text_content(node: Optional[LXML_ET._Element]) -> str:
    if node is None:
        return ""
    return "".join(node.itertext()).strip()


def split_tokens(value: Optional[str]) -> set[str]:
    return {part for part in (value or "").split() if part}
