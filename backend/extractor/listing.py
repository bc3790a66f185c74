"""Decoders for the remote list and episode-search JSON payloads."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class ExtractionError(ValueError):
    """Raised when a fetched document cannot be decoded."""


class RemoteRating(BaseModel):
    value: float | None = None


class RemotePicture(BaseModel):
    normal: str | None = None


class RemoteListItem(BaseModel):
    """One entry of the category list API."""

    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str | None = None
    title: str | None = None
    type: str | None = None
    rating: RemoteRating | None = None
    pic: RemotePicture | None = None


class RemoteListPayload(BaseModel):
    items: list[RemoteListItem] = Field(default_factory=list)


class SearchResult(BaseModel):
    """One play-source aggregate returned by the episode search API."""

    title: str = ""
    source_name: str = ""
    episodes: list[str] = Field(default_factory=list)


class SearchPayload(BaseModel):
    results: list[SearchResult] = Field(default_factory=list)


@dataclass(slots=True)
class ListItem:
    """A list entry with its natural key parsed."""

    source_id: int
    title: str
    type: str
    score: float | None
    cover_url: str


@dataclass(slots=True)
class ListDecodeResult:
    items: list[ListItem] = field(default_factory=list)
    skipped_ids: list[str] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return len(self.skipped_ids)


def _load(document: str | bytes | dict[str, Any]) -> Any:
    if isinstance(document, dict):
        return document
    try:
        return json.loads(document)
    except ValueError as exc:
        raise ExtractionError(f"Invalid JSON document: {exc}") from exc


def parse_source_id(value: str | None) -> int | None:
    """Parse a numeric-string natural key, ``None`` when it is not a positive integer.

    Only plain ASCII digits are accepted: no sign, underscore or other numerals.
    """

    if not isinstance(value, str):
        return None
    value = value.strip()
    if not (value.isascii() and value.isdigit()):
        return None
    source_id = int(value)
    return source_id if source_id > 0 else None


def _list_score(item: RemoteListItem) -> float | None:
    if item.rating is None or item.rating.value is None:
        return None
    value = item.rating.value
    return value if 0 <= value <= 10 else None


def decode_list(document: str | bytes | dict[str, Any]) -> ListDecodeResult:
    """Decode a category list payload, skipping entries with unusable ids."""

    try:
        payload = RemoteListPayload.model_validate(_load(document))
    except ValidationError as exc:
        raise ExtractionError(f"Unexpected list payload: {exc}") from exc

    result = ListDecodeResult()
    for item in payload.items:
        source_id = parse_source_id(item.id)
        if source_id is None:
            logger.warning("Skipping list item with invalid id %r", item.id)
            result.skipped_ids.append(str(item.id))
            continue
        result.items.append(
            ListItem(
                source_id=source_id,
                title=(item.title or "").strip(),
                type=(item.type or "").strip(),
                score=_list_score(item),
                cover_url=(item.pic.normal or "") if item.pic else "",
            )
        )
    return result


def decode_search(document: str | bytes | dict[str, Any]) -> list[SearchResult]:
    """Decode an episode-search payload into its result list."""

    try:
        payload = SearchPayload.model_validate(_load(document))
    except ValidationError as exc:
        raise ExtractionError(f"Unexpected search payload: {exc}") from exc
    return payload.results
