"""
Field extraction for the catalog sync pipeline.

Pure, network-free helpers that turn fetched list JSON, search JSON and
detail-page markup into normalized values ready for persistence.
"""
from .dates import parse_date
from .detail import FIELD_RULES, TYPE_PROFILES, DetailFields, FieldRule, extract_detail, extract_field
from .listing import (
    ExtractionError,
    ListDecodeResult,
    ListItem,
    SearchResult,
    decode_list,
    decode_search,
    parse_source_id,
)
from .text import (
    MAX_JSON_ARRAY_BYTES,
    bounded_json_array,
    strip_tags,
    to_json_array,
    truncate_chars,
    truncate_json_array,
)

__all__ = [
    "DetailFields",
    "ExtractionError",
    "FIELD_RULES",
    "FieldRule",
    "ListDecodeResult",
    "ListItem",
    "MAX_JSON_ARRAY_BYTES",
    "SearchResult",
    "TYPE_PROFILES",
    "bounded_json_array",
    "decode_list",
    "decode_search",
    "extract_detail",
    "extract_field",
    "parse_date",
    "parse_source_id",
    "strip_tags",
    "to_json_array",
    "truncate_chars",
    "truncate_json_array",
]
