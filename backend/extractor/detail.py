"""Declarative field rules for detail-page markup.

The document is parsed once into a BeautifulSoup tree. Every field is
described by an ordered tuple of locators and a transform: locators are
tried in order and the first one that yields a usable value wins;
``collect`` rules gather the text of every located node instead. Text is
read from the tree, so entities arrive already decoded.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Union

from bs4 import BeautifulSoup, Tag

from .dates import parse_date
from .text import (
    bounded_json_array,
    normalize_attribute_list,
    normalize_country_list,
)

Transform = Callable[[str], Any]
Locator = Callable[[BeautifulSoup], Union[str, list[str], None]]


def parse_document(document: str | BeautifulSoup) -> BeautifulSoup:
    if isinstance(document, BeautifulSoup):
        return document
    return BeautifulSoup(document, "html.parser")


def _label_text(tag: Tag) -> str:
    return tag.get_text().strip().rstrip(":：").strip()


def find_label(soup: BeautifulSoup, label: str) -> Tag | None:
    """Return the ``span.pl`` caption whose text (minus the colon) is ``label``."""

    for tag in soup.select("span.pl"):
        if _label_text(tag) == label:
            return tag
    return None


def labeled_attrs(label: str) -> Locator:
    """``<span class='pl'>导演</span>: <span class='attrs'>...</span>``"""

    def locate(soup: BeautifulSoup) -> str | None:
        caption = find_label(soup, label)
        if caption is None:
            return None
        attrs = caption.find_next_sibling("span", class_="attrs")
        return attrs.get_text() if attrs is not None else None

    return locate


def labeled_value(label: str) -> Locator:
    """``<span class="pl">集数:</span> 24<br/>``, the value ends at the line break."""

    def locate(soup: BeautifulSoup) -> str | None:
        caption = find_label(soup, label)
        if caption is None:
            return None
        parts: list[str] = []
        for sibling in caption.next_siblings:
            if isinstance(sibling, Tag):
                if sibling.name == "br":
                    break
                parts.append(sibling.get_text())
            else:
                parts.append(str(sibling))
        return "".join(parts)

    return locate


def attribute_of(selector: str, attribute: str = "content") -> Locator:
    """``<span property="v:initialReleaseDate" content="2025-01-07(中国大陆)">``"""

    def locate(soup: BeautifulSoup) -> str | None:
        tag = soup.select_one(selector)
        if tag is None:
            return None
        value = tag.get(attribute)
        return value if isinstance(value, str) else None

    return locate


def text_of(selector: str) -> Locator:
    def locate(soup: BeautifulSoup) -> str | None:
        tag = soup.select_one(selector)
        return tag.get_text() if tag is not None else None

    return locate


def texts_of(selector: str) -> Locator:
    def locate(soup: BeautifulSoup) -> list[str]:
        return [tag.get_text() for tag in soup.select(selector)]

    return locate


FIRST_NUMBER_RE = re.compile(r"(\d+)")


def first_number(value: str) -> int | None:
    match = FIRST_NUMBER_RE.search(value)
    return int(match.group(1)) if match else None


def parse_score(value: str) -> float | None:
    try:
        score = float(value.strip())
    except ValueError:
        return None
    return score if 0 <= score <= 10 else None


def year_only(value: str) -> date | None:
    """Last resort for dates: the first plausible 4-digit year as Jan 1st."""

    match = re.search(r"\b((?:19|20|21)\d{2})\b", value)
    return parse_date(match.group(1)) if match else None


def _non_empty(value: str) -> str | None:
    return value or None


@dataclass(frozen=True, slots=True)
class FieldRule:
    """Ordered locators plus the transform applied to the located text."""

    name: str
    locators: tuple[Locator, ...]
    transform: Transform = _non_empty
    collect: bool = False
    joiner: str = ", "

    def apply(self, soup: BeautifulSoup) -> Any:
        if self.collect:
            values: list[str] = []
            for locate in self.locators:
                for raw in locate(soup) or ():
                    text = raw.strip()
                    if text:
                        values.append(text)
            return self.transform(self.joiner.join(values))

        for locate in self.locators:
            raw = locate(soup)
            if raw is None:
                continue
            value = self.transform(raw.strip())
            if value is not None:
                return value
        return None


def _date_rule(name: str, label: str) -> FieldRule:
    return FieldRule(
        name=name,
        locators=(
            attribute_of('[property="v:initialReleaseDate"]'),
            labeled_value(label),
            text_of("span.year"),
        ),
        transform=lambda value: parse_date(value) or year_only(value),
    )


FIELD_RULES: dict[str, FieldRule] = {
    rule.name: rule
    for rule in (
        FieldRule(
            name="director",
            locators=(labeled_attrs("导演"),),
            transform=lambda value: _non_empty(normalize_attribute_list(value)),
        ),
        FieldRule(
            name="actors",
            locators=(labeled_attrs("主演"),),
            transform=lambda value: _non_empty(normalize_attribute_list(value)),
        ),
        FieldRule(
            name="tags",
            locators=(texts_of('[property="v:genre"]'),),
            collect=True,
        ),
        FieldRule(
            name="country",
            locators=(labeled_value("制片国家/地区"),),
            transform=lambda value: _non_empty(normalize_country_list(value)),
        ),
        FieldRule(
            name="score",
            locators=(
                text_of('strong.rating_num[property="v:average"]'),
                text_of("span.rating_num"),
                text_of('[property="v:average"]'),
            ),
            transform=parse_score,
        ),
        _date_rule("release_date", "上映日期"),
        _date_rule("premiere_date", "首播"),
        FieldRule(name="runtime", locators=(labeled_value("片长"),), transform=first_number),
        FieldRule(name="episode_count", locators=(labeled_value("集数"),), transform=first_number),
        FieldRule(
            name="imdb_id",
            locators=(labeled_value("IMDb"),),
            transform=lambda value: next(iter(value.split()), None),
        ),
        FieldRule(
            name="description",
            locators=(text_of('[property="v:summary"]'),),
        ),
    )
}


# Which rules run for each video type. Release date and runtime only apply to
# movies; series carry a premiere date and an episode counter instead.
TYPE_PROFILES: dict[str, tuple[str, ...]] = {
    "movie": (
        "director", "actors", "tags", "country", "score",
        "release_date", "runtime", "imdb_id", "description",
    ),
    "tv": (
        "director", "actors", "tags", "country", "score",
        "premiere_date", "episode_count", "imdb_id", "description",
    ),
    "anime": (
        "director", "actors", "tags", "country", "score",
        "premiere_date", "episode_count", "imdb_id", "description",
    ),
    "tvshow": (
        "actors", "tags", "country", "score",
        "premiere_date", "episode_count", "description",
    ),
    "doc": (
        "tags", "country", "score",
        "premiere_date", "episode_count", "description",
    ),
}


@dataclass(slots=True)
class DetailFields:
    """Normalized values pulled from one detail document.

    List-valued fields are already serialized as byte-capped JSON arrays;
    fields a type's profile does not cover stay ``None``.
    """

    director_json: str | None = None
    actors_json: str | None = None
    tags_json: str | None = None
    country_json: str | None = None
    score: float | None = None
    release_date: date | None = None
    runtime: int | None = None
    episode_count: int | None = None
    imdb_id: str | None = None
    description: str | None = None
    resolved: list[str] = field(default_factory=list)


def extract_field(document: str | BeautifulSoup, name: str) -> Any:
    """Run a single named rule against a document."""

    return FIELD_RULES[name].apply(parse_document(document))


def extract_detail(document: str | BeautifulSoup, video_type: str) -> DetailFields:
    """Apply the rule profile for ``video_type`` to a detail document."""

    try:
        profile = TYPE_PROFILES[video_type]
    except KeyError as exc:
        raise ValueError(f"Unsupported video type: {video_type}") from exc

    soup = parse_document(document)
    fields = DetailFields()
    for name in profile:
        value = extract_field(soup, name)
        if name in ("director", "actors", "tags", "country"):
            # Lists always serialize, an absent value becomes "[]".
            setattr(fields, f"{name}_json", bounded_json_array(value))
        elif name in ("release_date", "premiere_date"):
            fields.release_date = value
        else:
            setattr(fields, name, value)
        if value is not None:
            fields.resolved.append(name)
    return fields
