from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

_LIST_SPLIT_RE = re.compile(r"[\s,]+")


def read_env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value not in {None, ""}:
        return value

    file_var = os.getenv(f"{name}_FILE")
    if not file_var:
        return default

    try:
        content = Path(file_var).read_text(encoding="utf-8")
    except OSError:
        return default
    return content.rstrip("\r\n")


def read_env_set(name: str) -> frozenset[str]:
    raw = read_env(name)
    if not raw:
        return frozenset()
    return frozenset(part.strip().lower() for part in _LIST_SPLIT_RE.split(raw) if part.strip())
