from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, NamedTuple, Optional, Union

ProductArtist = Union[str, list[str], None]


class ProductKey(NamedTuple):
    """Identifies one product across the commerce backend and the content catalog."""

    commerce_id: Optional[str]
    content_id: Optional[str]

    def matches(self, commerce_id: Optional[str], content_id: Optional[str]) -> bool:
        if self.commerce_id and commerce_id and self.commerce_id == commerce_id:
            return True
        return bool(self.content_id and content_id and self.content_id == content_id)


@dataclass
class TracklistEntry:
    """One row of a product tracklist as stored in the content catalog."""

    title: str = ""
    artist: str = ""
    duration: str = ""
    url: str = ""
    number: str = ""
    key: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "TracklistEntry":
        return cls(
            title=data.get("title") or "",
            artist=data.get("artist") or "",
            duration=data.get("duration") or "",
            url=data.get("url") or data.get("audioUrl") or "",
            number=str(data.get("number") or ""),
            key=data.get("_key"),
        )

    def to_dict(self) -> dict:
        out = {
            "title": self.title,
            "artist": self.artist,
            "duration": self.duration,
            "url": self.url,
            "number": self.number,
        }
        if self.key:
            out["_key"] = self.key
        return out


@dataclass
class Track:
    """A playable item. Mutated in place when enrichment lands."""

    title: str
    audio_url: Optional[str] = None
    artist: str = ""
    album: str = ""
    product_id: Optional[str] = None
    content_id: Optional[str] = None
    commerce_id: Optional[str] = None
    product_slug: Optional[str] = None
    product_url: Optional[str] = None
    product_name: Optional[str] = None
    product_image: Optional[str] = None
    track_index: int = 0
    duration: Optional[str] = None
    number: Optional[str] = None

    @classmethod
    def from_listing(
        cls,
        entry: TracklistEntry,
        index: int,
        *,
        product_key: ProductKey,
        product_name: Optional[str] = None,
        product_slug: Optional[str] = None,
        product_image: Optional[str] = None,
    ) -> "Track":
        return cls(
            title=entry.title,
            audio_url=entry.url or None,
            artist=entry.artist,
            album=product_name or "",
            product_id=product_key.commerce_id or product_key.content_id,
            content_id=product_key.content_id,
            commerce_id=product_key.commerce_id,
            product_slug=product_slug,
            product_url=f"/product/{product_slug}" if product_slug else None,
            product_name=product_name,
            product_image=product_image,
            track_index=index,
            duration=entry.duration or None,
            number=entry.number or None,
        )

    def belongs_to(self, product_key: ProductKey) -> bool:
        return product_key.matches(self.commerce_id or self.product_id, self.content_id)


@dataclass
class CatalogArtist:
    name: str
    role: str = ""


@dataclass
class CatalogTrack:
    title: str = ""
    duration: str = ""
    position: str = ""
    artists: list[CatalogArtist] = field(default_factory=list)
    extraartists: list[CatalogArtist] = field(default_factory=list)


@dataclass
class CatalogRelease:
    release_id: str
    tracklist: list[CatalogTrack] = field(default_factory=list)


class EnrichmentStatus(str, Enum):
    NO_TRACKLIST = "no_tracklist"
    CACHED = "cached"
    ALREADY_ENHANCED = "already_enhanced"
    ALREADY_PROCESSED = "already_processed"
    NO_DISCOGS_ID = "no_discogs_id"
    SKIPPED = "skipped"
    DISCOGS_SUCCESS = "discogs_success"
    DISCOGS_ERROR = "discogs_error"
    API_ERROR = "api_error"
    NO_DATA = "no_data"


@dataclass
class EnhancementTypes:
    titles: bool = False
    artists: bool = False
    title_count: int = 0
    artist_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class EnrichmentRequest:
    product_key: ProductKey
    tracklist: list[TracklistEntry]
    product_artist: ProductArtist = None
    release_id: Optional[str] = None
    already_enhanced: bool = False

    @property
    def document_id(self) -> Optional[str]:
        return self.product_key.content_id

    @classmethod
    def from_content(cls, document: dict, commerce_id: Optional[str] = None) -> "EnrichmentRequest":
        """Build a request from a content-catalog product document."""
        release_id = document.get("discogsReleaseId")
        return cls(
            product_key=ProductKey(commerce_id, document.get("_id")),
            tracklist=[TracklistEntry.from_dict(t) for t in document.get("tracklist") or []],
            product_artist=document.get("artist"),
            release_id=str(release_id) if release_id else None,
            already_enhanced=bool(document.get("tracklistEnhanced")),
        )


@dataclass
class EnrichmentResult:
    status: EnrichmentStatus
    tracklist: list[TracklistEntry]
    enhancement_types: Optional[EnhancementTypes] = None


@dataclass
class PersistResult:
    success: bool
    tracklist: list[TracklistEntry] = field(default_factory=list)
    commerce_product_id: Optional[str] = None
    title_enhancements_applied: bool = False
    artist_enhancements_applied: bool = False

    @classmethod
    def failed(cls) -> "PersistResult":
        return cls(success=False)

    @classmethod
    def from_response(cls, data: Any) -> "PersistResult":
        if not isinstance(data, dict):
            return cls.failed()
        return cls(
            success=bool(data.get("success")),
            tracklist=[TracklistEntry.from_dict(t) for t in data.get("tracklist") or []],
            commerce_product_id=data.get("swellProductId"),
            title_enhancements_applied=bool(data.get("titleEnhancementsApplied")),
            artist_enhancements_applied=bool(data.get("artistEnhancementsApplied")),
        )
