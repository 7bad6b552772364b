from __future__ import annotations

import logging
import re
from typing import Optional

logger = logging.getLogger("opfgraph.prefixes")

# A bare "token:" introduces the next mapping instead of being read as an IRI.
_PREFIX_ONLY_RE = re.compile(r"^[^:\s]+:$")

RENDITION_PREFIX = "rendition"


def parse_prefix(value: Optional[str]) -> dict[str, str]:
    mapping: dict[str, str] = {}
    tokens = (value or "").split()
    index = 0
    while index < len(tokens):
        token = tokens[index]
        index += 1
        name, sep, iri = token.partition(":")
        if not sep or not name:
            logger.warning("skipping malformed prefix entry %r", token)
            continue
        if iri.startswith("//"):
            logger.warning("skipping stray IRI %r in prefix attribute", token)
            continue
        if not iri:
            if index < len(tokens) and not _PREFIX_ONLY_RE.match(tokens[index]):
                iri = tokens[index]
                index += 1
            else:
                logger.warning("prefix %r has no IRI, skipping", name)
                continue
        mapping[name] = iri
    return mapping
