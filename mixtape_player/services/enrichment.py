"""
Tracklist enrichment rules.

Pure functions deciding which tracks carry placeholder metadata and how
catalog data is merged into them. Tracks correspond by position: track i
merges with catalog track i, and a shorter catalog list leaves the rest
untouched.
"""
import re
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from mixtape_player.services.models import (
    CatalogTrack,
    EnhancementTypes,
    ProductArtist,
    TracklistEntry,
)

_PLACEHOLDER_TITLE_RE = re.compile(r"^Track \d+$", re.IGNORECASE)
_DISAMBIGUATION_RE = re.compile(r"\s*\(\d+\)\s*$")
_VARIOUS = "various"


def is_multi_artist(product_artist: ProductArtist) -> bool:
    """True for compilations, i.e. the product artist is "Various"."""
    if isinstance(product_artist, str):
        return product_artist.strip().lower() == _VARIOUS
    if isinstance(product_artist, (list, tuple)):
        return any(isinstance(a, str) and a.strip().lower() == _VARIOUS for a in product_artist)
    return False


def needs_title_update(track: Optional[TracklistEntry]) -> bool:
    if track is None or not track.title:
        return True
    title = track.title.strip()
    return not title or bool(_PLACEHOLDER_TITLE_RE.match(title))


def needs_artist_update(track: Optional[TracklistEntry], multi_artist: bool) -> bool:
    if not multi_artist:
        return False
    if track is None:
        return True
    artist = (track.artist or "").strip()
    return not artist or artist.lower() == _VARIOUS


def tracklist_needs_update(
    tracklist: Sequence[TracklistEntry], product_artist: ProductArtist = None
) -> bool:
    if not tracklist:
        return False
    multi = is_multi_artist(product_artist)
    return any(needs_title_update(t) or needs_artist_update(t, multi) for t in tracklist)


@dataclass
class EnhancementNeeds:
    title_enhancement_needed: bool
    artist_enhancement_needed: bool
    is_various_artist: bool
    tracks_needing_title_update: int
    tracks_needing_artist_update: int

    @property
    def any_enhancement_needed(self) -> bool:
        return self.title_enhancement_needed or self.artist_enhancement_needed


def analyze_enhancement_needs(
    tracklist: Sequence[TracklistEntry], product_artist: ProductArtist = None
) -> EnhancementNeeds:
    multi = is_multi_artist(product_artist)
    titles = sum(1 for t in tracklist if needs_title_update(t))
    artists = sum(1 for t in tracklist if needs_artist_update(t, multi)) if multi else 0
    return EnhancementNeeds(
        title_enhancement_needed=titles > 0,
        artist_enhancement_needed=artists > 0,
        is_various_artist=multi,
        tracks_needing_title_update=titles,
        tracks_needing_artist_update=artists,
    )


def clean_artist_name(name: str) -> str:
    """Strip catalog disambiguation suffixes: "Name (2)" -> "Name"."""
    return _DISAMBIGUATION_RE.sub("", name or "").strip()


def primary_performer(track: CatalogTrack) -> Optional[str]:
    people = track.artists or track.extraartists
    if not people:
        return None
    return clean_artist_name(people[0].name) or None


def merge_tracklists(
    tracklist: Sequence[TracklistEntry],
    catalog_tracks: Sequence[CatalogTrack],
    product_artist: ProductArtist = None,
    *,
    enhance_titles: bool = True,
    enhance_artists: bool = True,
) -> tuple[list[TracklistEntry], EnhancementTypes]:
    """Fill placeholder titles/artists and missing durations from catalog data.

    Existing, non-placeholder values are never overwritten. The input list
    is not modified; merged entries are copies.
    """
    multi = is_multi_artist(product_artist)
    title_count = 0
    artist_count = 0
    merged: list[TracklistEntry] = []

    for index, track in enumerate(tracklist):
        source = catalog_tracks[index] if index < len(catalog_tracks) else None
        if source is None:
            merged.append(track)
            continue

        updated = replace(track)
        if enhance_titles and needs_title_update(track) and source.title and source.title.strip():
            updated.title = source.title.strip()
            title_count += 1

        if enhance_artists and multi and needs_artist_update(track, multi):
            performer = primary_performer(source)
            if performer:
                updated.artist = performer
                artist_count += 1

        if source.duration and not updated.duration:
            updated.duration = source.duration

        merged.append(updated)

    return merged, EnhancementTypes(
        titles=title_count > 0,
        artists=artist_count > 0,
        title_count=title_count,
        artist_count=artist_count,
    )
