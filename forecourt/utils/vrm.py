"""Vehicle registration mark helpers."""

from __future__ import annotations

import re

_WHITESPACE = re.compile(r"\s+")


def normalize_vrm(vrm: str | None) -> str:
    """Upper-case a registration and strip all whitespace ("ab12 cde" -> "AB12CDE")."""
    if not vrm:
        return ""
    return _WHITESPACE.sub("", vrm).upper()
