"""YAML frontmatter extraction for markdown documents."""
from __future__ import annotations

import re
from typing import Any, Optional

import yaml

_FRONTMATTER_RE = re.compile(r"^---[ \t]*\n(.*?)\n---[ \t]*(?:\n|$)", re.DOTALL)


def parse_frontmatter(text: str) -> tuple[Optional[dict[str, Any]], str]:
    """Split ``text`` into (frontmatter mapping, body).

    Anything other than a YAML mapping between the fences (missing fences,
    invalid YAML, a list or scalar) yields ``None`` and the untouched text.
    """
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return None, text
    try:
        fm = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        return None, text
    if not isinstance(fm, dict):
        return None, text
    return fm, text[match.end():]
