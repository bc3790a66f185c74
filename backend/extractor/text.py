"""Markup cleanup and bounded JSON-array serialization helpers."""
from __future__ import annotations

import json
import re
from typing import Iterable

MAX_JSON_ARRAY_BYTES = 512
EMPTY_JSON_ARRAY = "[]"

TAG_RE = re.compile(r"<[^>]*>")
WHITESPACE_RE = re.compile(r"\s+")

# Only these entities are decoded; "&amp;" goes last so "&amp;lt;" stays "&lt;".
HTML_ENTITIES: tuple[tuple[str, str], ...] = (
    ("&nbsp;", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&amp;", "&"),
)

COUNTRY_SEPARATORS: tuple[tuple[str, str], ...] = (
    (" / ", ", "),
    ("/", ", "),
    ("，", ", "),
)


def strip_tags(markup: str) -> str:
    """Remove markup tags and decode the supported HTML entities."""

    content = TAG_RE.sub("", markup)
    for entity, replacement in HTML_ENTITIES:
        content = content.replace(entity, replacement)
    return content


def clean_text(markup: str) -> str:
    """Strip tags and trim surrounding whitespace."""

    return strip_tags(markup).strip()


def collapse_whitespace(value: str) -> str:
    return WHITESPACE_RE.sub(" ", value).strip()


def normalize_attribute_list(value: str) -> str:
    """Turn ``"A / B / C"`` credit lists into ``"A, B, C"``."""

    return collapse_whitespace(value).replace(" / ", ", ")


def normalize_country_list(value: str) -> str:
    """Unify the separators used for country/region values to ``", "``."""

    normalized = collapse_whitespace(value)
    for separator, replacement in COUNTRY_SEPARATORS:
        normalized = normalized.replace(separator, replacement)
    parts = [part.strip() for part in normalized.split(",")]
    return ", ".join(part for part in parts if part)


def split_delimited(value: str | None, delimiter: str = ",") -> list[str]:
    """Split a delimited string into trimmed, non-empty items."""

    if not value:
        return []
    return [part.strip() for part in value.split(delimiter) if part.strip()]


def dump_json_array(items: Iterable[str]) -> str:
    """Serialize items compactly, keeping non-ASCII text readable."""

    return json.dumps(list(items), ensure_ascii=False, separators=(",", ":"))


def json_byte_length(serialized: str) -> int:
    return len(serialized.encode("utf-8"))


def to_json_array(value: str | None) -> str:
    """Convert a comma-delimited string into a JSON array of trimmed strings."""

    return dump_json_array(split_delimited(value))


def truncate_json_array(serialized: str, max_bytes: int = MAX_JSON_ARRAY_BYTES) -> str:
    """Drop trailing elements until the serialized array fits in ``max_bytes``.

    The surviving items are always a prefix of the original array. Input that
    is not a JSON array of strings collapses to ``"[]"``.
    """

    if json_byte_length(serialized) <= max_bytes:
        return serialized

    try:
        items = json.loads(serialized)
    except ValueError:
        return EMPTY_JSON_ARRAY
    if not isinstance(items, list):
        return EMPTY_JSON_ARRAY

    items = [str(item) for item in items]
    while items:
        candidate = dump_json_array(items)
        if json_byte_length(candidate) <= max_bytes:
            return candidate
        items.pop()
    return EMPTY_JSON_ARRAY


def bounded_json_array(value: str | None, max_bytes: int = MAX_JSON_ARRAY_BYTES) -> str:
    """Serialize a delimited string and cap the result at ``max_bytes``."""

    return truncate_json_array(to_json_array(value), max_bytes=max_bytes)


def truncate_chars(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[:limit]
