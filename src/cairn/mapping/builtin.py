"""Built-in index projections for the blog content record types."""

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, ConfigDict

from cairn.mapping.registry import IndexMapping, MappingRegistry


class _IndexedFields(BaseModel):
    """Base for projection models: extra payload fields are not indexed."""

    model_config = ConfigDict(extra="ignore")


class ChatterFields(_IndexedFields):
    """Indexed columns for social posts."""

    date_posted: dt.datetime
    year: int
    month: str
    slug: str
    publish: bool = True


class CheckinFields(_IndexedFields):
    """Indexed columns for venue check-ins."""

    venue_id: str
    latitude: float
    longitude: float
    datetime: dt.datetime
    year: int
    month: str
    slug: str
    publish: bool = True


class FilmFields(_IndexedFields):
    """Indexed columns for watched films."""

    year_watched: int
    date_watched: dt.datetime
    month: str
    slug: str
    rewatch: bool = False
    publish: bool = True
    tmdb_id: str | None = None
    letterboxd_id: str | None = None


class QuoteFields(_IndexedFields):
    """Indexed columns for quotes; the quote text itself stays in the durable store."""

    author: str
    date_added: dt.datetime | None = None
    year: int | None = None
    month: str | None = None
    slug: str | None = None
    publish: bool = True


class ShakespeareFields(_IndexedFields):
    """Indexed columns for Shakespeare paragraphs."""

    work_id: str
    act: int
    scene: int
    character_id: str
    word_count: int
    # ISO string or epoch seconds.
    timestamp: dt.datetime


class TopTenFields(_IndexedFields):
    """Indexed columns for top-ten lists."""

    show: str
    date: str
    timestamp: dt.datetime
    year: int
    month: str
    slug: str


BUILTIN_MAPPINGS: tuple[IndexMapping, ...] = (
    IndexMapping("chatter", "chatter", ChatterFields, frozenset({"slug"})),
    IndexMapping("checkins", "checkins", CheckinFields, frozenset({"slug"})),
    IndexMapping("films", "films", FilmFields, frozenset({"slug"})),
    IndexMapping("quotes", "quotes", QuoteFields, frozenset({"slug"})),
    IndexMapping("shakespeare", "shakespeare", ShakespeareFields),
    IndexMapping("topten", "topten", TopTenFields, frozenset({"slug"})),
)


def build_default_registry() -> MappingRegistry:
    """Return a registry holding every built-in mapping."""
    registry = MappingRegistry()
    for mapping in BUILTIN_MAPPINGS:
        registry.register(mapping)
    return registry
