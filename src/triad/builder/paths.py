from __future__ import annotations

import re
from typing import List

_PARAM_ANGLE = re.compile(r"<([A-Za-z_][A-Za-z0-9_]*)>")
_PARAM_COLON = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)")
_PARAM_BRACE = re.compile(r"^\{([A-Za-z_][A-Za-z0-9_]*)\}$")
_MULTI_SLASH = re.compile(r"/{2,}")


def normalize_path(path: str) -> str:
    p = (path or "").strip()
    if not p.startswith("/"):
        p = "/" + p

    # normalize common param styles into "{param}"
    p = _PARAM_ANGLE.sub(r"{\1}", p)     # <id> -> {id}
    p = _PARAM_COLON.sub(r"{\1}", p)     # :id  -> {id}

    # collapse accidental double slashes
    p = _MULTI_SLASH.sub("/", p)

    # keep "/" as-is, otherwise strip trailing slash
    if p != "/" and p.endswith("/"):
        p = p[:-1]
    return p


def split_template(path: str) -> List[str]:
    """'/items/{id}' -> ['items', '{id}']; '/' -> []."""
    return [seg for seg in normalize_path(path).strip("/").split("/") if seg]


def param_name(segment: str) -> str | None:
    m = _PARAM_BRACE.match(segment)
    return m.group(1) if m else None
