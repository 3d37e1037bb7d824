import bisect
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple, Union


@dataclass(frozen=True)
class Item:
    """A song as handed over by the music library."""

    id: str
    title: str
    artist: str
    album: str
    duration: float = 0.0
    file_name: Optional[str] = None
    artwork: "ArtworkState" = field(default_factory=lambda: NO_ARTWORK)
    is_favorite: bool = False

    def with_artwork(self, handle: "StoredArtwork") -> "Item":
        return replace(self, artwork=Artwork(handle))

    def with_favorite(self, value: bool) -> "Item":
        return replace(self, is_favorite=value)


@dataclass(frozen=True)
class SearchQuery:
    title: str
    artist: str
    album: str

    @classmethod
    def for_item(cls, item: Item) -> "SearchQuery":
        return cls(title=item.title or "", artist=item.artist or "", album=item.album or "")


@dataclass(frozen=True)
class CandidateResult:
    image_url: str
    source: str
    confidence: float
    thumbnail_url: Optional[str] = None
    size: Optional[Tuple[int, int]] = None

    def __post_init__(self):
        # Confidence is always present and clamped into [0, 1]
        value = float(self.confidence)
        object.__setattr__(self, "confidence", min(1.0, max(0.0, value)))


@dataclass(frozen=True)
class LyricsCandidate:
    title: str
    artist: str
    content: str
    source: str
    confidence: float
    album: Optional[str] = None
    duration: Optional[float] = None

    def __post_init__(self):
        value = float(self.confidence)
        object.__setattr__(self, "confidence", min(1.0, max(0.0, value)))


@dataclass(frozen=True)
class AssetMetadata:
    item_id: str
    file_name: str
    source: str
    created_at: float
    file_size: int
    thumbnail_file_name: Optional[str] = None
    original_url: Optional[str] = None
    confidence: Optional[float] = None
    dimensions: Optional[Tuple[int, int]] = None


@dataclass(frozen=True)
class StoredArtwork:
    """Local handle returned to callers once an image is in the cache."""

    item_id: str
    path: str
    thumbnail_path: Optional[str]
    metadata: AssetMetadata


class NoArtwork:
    """Explicit absent state; replaces the old "default_album" sentinel string."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "NoArtwork"


@dataclass(frozen=True)
class Artwork:
    handle: StoredArtwork

    def __bool__(self):
        return True


NO_ARTWORK = NoArtwork()
ArtworkState = Union[NoArtwork, Artwork]


@dataclass(frozen=True)
class LyricLine:
    timestamp: float
    text: str


@dataclass
class LyricsDocument:
    item_id: str
    lines: List[LyricLine]
    source: str
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    confidence: Optional[float] = None
    _timestamps: List[float] = field(default_factory=list, init=False, repr=False, compare=False)

    def __post_init__(self):
        self.lines = sorted(self.lines, key=lambda line: line.timestamp)
        self._timestamps = [line.timestamp for line in self.lines]

    def line_at(self, position: float) -> Optional[int]:
        """Index of the line being sung at `position` seconds, None before the first line."""
        index = bisect.bisect_right(self._timestamps, position) - 1
        return index if index >= 0 else None

    def current_line(self, position: float) -> Optional[LyricLine]:
        index = self.line_at(position)
        return self.lines[index] if index is not None else None


@dataclass(frozen=True)
class CleanupReport:
    removed_count: int
    freed_bytes: int = 0
