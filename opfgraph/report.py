from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .errors import UnsupportedMediaType
from .media_types import SupportConfig, resolve_supported
from .models import Item, Package

REPORT_TEMPLATES_DIR = Path(__file__).resolve().parent / "report_templates"
SUMMARY_TEMPLATE = "summary.txt.j2"


@lru_cache(maxsize=1)
def _report_template_env() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(REPORT_TEMPLATES_DIR)),
        autoescape=False,
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def _supported_representation(item: Item, config: SupportConfig) -> Optional[Item]:
    try:
        return resolve_supported(item, config)
    except UnsupportedMediaType:
        return None


def render_summary(package: Package, config: Optional[SupportConfig] = None) -> str:
    config = config or SupportConfig()
    items = [
        {
            "item": item,
            "chain": [link.id for link in item.fallback_chain[1:]],
            "usable": _supported_representation(item, config),
        }
        for item in package.manifest
    ]
    return _report_template_env().get_template(SUMMARY_TEMPLATE).render(
        package=package,
        metadata=package.metadata,
        items=items,
        spine=package.spine,
        guide=package.guide,
        bindings=package.bindings,
    )
