"""Markdown-with-frontmatter codec for on-disk resources.

Layout::

    ---
    url: "https://example.com/page"
    lastAccessTime: 1705314600123
    ---

    <content verbatim>

Every value is written as a compact JSON literal, so strings are
double-quoted with JSON escapes. Parsing tries JSON first and falls back
to a bare quoted string for documents written without escapes.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any

from crawl_cache.exceptions import DocumentFormatError

_DOCUMENT_RE = re.compile(r"\A---\n(.*?)\n---\n\n(.*)\Z", re.DOTALL)
_QUOTED_RE = re.compile(r'^"(.*)"$')


def _render_value(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _parse_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        unquoted = _QUOTED_RE.sub(r"\1", raw)
        return unquoted.replace("\\n", "\n").replace('\\"', '"')


def render_document(content: str, metadata: Mapping[str, Any]) -> str:
    """Serialize metadata + content. ``None`` values are omitted."""
    lines = [f"{key}: {_render_value(value)}" for key, value in metadata.items() if value is not None]
    header = "\n".join(lines)
    return f"---\n{header}\n---\n\n{content}"


def parse_document(text: str, *, path: str = "") -> tuple[dict[str, Any], str]:
    """Split a stored document into ``(metadata, content)``.

    Raises:
        DocumentFormatError: If the frontmatter block is missing.
    """
    match = _DOCUMENT_RE.match(text)
    if match is None:
        raise DocumentFormatError("Invalid markdown format: missing frontmatter block", path=path)

    header, content = match.groups()
    metadata: dict[str, Any] = {}
    for line in header.split("\n"):
        key, sep, value = line.partition(":")
        if not sep:
            continue
        metadata[key.strip()] = _parse_value(value.strip())
    return metadata, content
