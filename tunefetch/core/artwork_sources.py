import logging
import random
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from ..config import FetchSettings
from .errors import TransportError
from .models import CandidateResult, SearchQuery
from .similarity import score, weighted_score

logger = logging.getLogger(__name__)

ITUNES_SEARCH_API = "https://itunes.apple.com/search"
LASTFM_API = "https://ws.audioscrobbler.com/2.0/"
PIXABAY_API = "https://pixabay.com/api/"


class ArtworkSource(ABC):
    """
    One tier of the artwork cascade.

    search() never raises for "nothing found" (an empty list is returned);
    TransportError is reserved for network and payload failures.
    Results are sorted by confidence, highest first.
    """

    name = "base"

    def __init__(self, client: Optional[httpx.AsyncClient], settings: FetchSettings):
        self.client = client
        self.settings = settings

    async def search(self, query: SearchQuery) -> List[CandidateResult]:
        try:
            results = await self._search(query)
        except (AttributeError, TypeError, KeyError) as e:
            # Valid JSON, unexpected shape
            raise TransportError(f"{self.name} returned an unexpected payload", cause=e) from e
        # sorted() is stable, so ties keep catalog order
        return sorted(results, key=lambda r: r.confidence, reverse=True)

    @abstractmethod
    async def _search(self, query: SearchQuery) -> List[CandidateResult]:
        pass

    async def _get_json(self, url: str, params: Dict[str, Any]) -> Any:
        try:
            response = await self.client.get(
                url,
                params=params,
                headers={"User-Agent": self.settings.user_agent},
                timeout=self.settings.request_timeout,
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"{self.name} request failed: {e}", cause=e) from e
        except ValueError as e:
            raise TransportError(f"{self.name} returned invalid JSON", cause=e) from e

    def _upgrade(self, url: str) -> str:
        # Purely textual: ".../100x100bb.jpg" -> ".../600x600bb.jpg"
        return url.replace(
            self.settings.artwork_size_token, self.settings.artwork_upgrade_token
        )

    def _upgraded_size(self):
        token = self.settings.artwork_upgrade_token
        try:
            w, h = token.lower().split("x")
            return (int(w), int(h))
        except ValueError:
            return None


class ItunesAlbumSource(ArtworkSource):
    """Tier 1: album search on the iTunes catalog, scored on artist + album."""

    name = "iTunes"

    async def _search(self, query: SearchQuery) -> List[CandidateResult]:
        term = f"{query.artist} {query.album}".strip()
        if not term:
            return []

        data = await self._get_json(
            ITUNES_SEARCH_API,
            {"term": term, "media": "music", "entity": "album", "limit": 5},
        )
        results = []
        for entry in (data or {}).get("results") or []:
            artwork_url = entry.get("artworkUrl100")
            if not artwork_url:
                continue
            confidence = weighted_score(
                [
                    (self.settings.artist_weight, query.artist, entry.get("artistName", "")),
                    (self.settings.album_weight, query.album, entry.get("collectionName", "")),
                ]
            )
            results.append(
                CandidateResult(
                    image_url=self._upgrade(artwork_url),
                    thumbnail_url=artwork_url,
                    size=self._upgraded_size(),
                    source=self.name,
                    confidence=confidence,
                )
            )
        return results


class LastfmAlbumSource(ArtworkSource):
    """
    Tier 2: Last.fm album.getinfo.

    The response describes a single album, so only one candidate is produced
    (the first "extralarge" or "large" image). Confidence uses the same
    artist/album blend when the response carries the names, otherwise the
    configured fixed value.
    """

    name = "Last.fm"

    async def _search(self, query: SearchQuery) -> List[CandidateResult]:
        if not self.settings.lastfm_api_key:
            logger.debug("Last.fm API key not configured, skipping tier")
            return []
        if not query.artist or not query.album:
            return []

        data = await self._get_json(
            LASTFM_API,
            {
                "method": "album.getinfo",
                "api_key": self.settings.lastfm_api_key,
                "artist": query.artist,
                "album": query.album,
                "format": "json",
            },
        )
        album = (data or {}).get("album")
        if not isinstance(album, dict):
            # {"error": 6, "message": "Album not found"}
            return []

        if album.get("artist") and album.get("name"):
            confidence = weighted_score(
                [
                    (self.settings.artist_weight, query.artist, album.get("artist", "")),
                    (self.settings.album_weight, query.album, album.get("name", "")),
                ]
            )
        else:
            confidence = self.settings.secondary_confidence

        for image in album.get("image") or []:
            url = image.get("#text")
            if url and image.get("size") in ("extralarge", "large"):
                return [CandidateResult(image_url=url, source=self.name, confidence=confidence)]
        return []


class ItunesArtistSource(ArtworkSource):
    """Tier 3: artist photo, scored on artist name only."""

    name = "iTunes Artist"

    async def _search(self, query: SearchQuery) -> List[CandidateResult]:
        if not query.artist:
            return []

        data = await self._get_json(
            ITUNES_SEARCH_API,
            {"term": query.artist, "media": "music", "entity": "musicArtist", "limit": 5},
        )
        results = []
        for entry in (data or {}).get("results") or []:
            artwork_url = entry.get("artworkUrl100")
            if not artwork_url:
                continue
            results.append(
                CandidateResult(
                    image_url=self._upgrade(artwork_url),
                    thumbnail_url=artwork_url,
                    size=self._upgraded_size(),
                    source=self.name,
                    confidence=score(query.artist, entry.get("artistName", "")),
                )
            )
        return results


class ThemedImageSource(ArtworkSource):
    """Tier 4: stock photos around "<artist> music". Visual variety, not accuracy."""

    name = "Music Art"

    async def _search(self, query: SearchQuery) -> List[CandidateResult]:
        if not self.settings.pixabay_api_key:
            logger.debug("Pixabay API key not configured, skipping tier")
            return []

        phrase = f"{query.artist} music".strip()
        data = await self._get_json(
            PIXABAY_API,
            {
                "key": self.settings.pixabay_api_key,
                "q": phrase,
                "image_type": "photo",
                "orientation": "all",
                "category": "music",
                "min_width": 400,
                "min_height": 400,
                "per_page": 5,
            },
        )
        results = []
        for hit in (data or {}).get("hits") or []:
            url = hit.get("webformatURL")
            if not url:
                continue
            size = None
            if hit.get("webformatWidth") and hit.get("webformatHeight"):
                size = (int(hit["webformatWidth"]), int(hit["webformatHeight"]))
            results.append(
                CandidateResult(
                    image_url=url,
                    thumbnail_url=hit.get("previewURL"),
                    size=size,
                    source=self.name,
                    confidence=self.settings.themed_confidence,
                )
            )
        return results


class PlaceholderSource(ArtworkSource):
    """Tier 5: terminal fallback. Always exactly one candidate, no network."""

    name = "Default Color"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient],
        settings: FetchSettings,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(client, settings)
        self.rng = rng or random.Random()

    async def _search(self, query: SearchQuery) -> List[CandidateResult]:
        url = self.rng.choice(self.settings.placeholder_urls)
        return [
            CandidateResult(
                image_url=url,
                size=(600, 600),
                source=self.name,
                confidence=self.settings.placeholder_confidence,
            )
        ]


def default_artwork_sources(
    client: httpx.AsyncClient, settings: FetchSettings
) -> List[ArtworkSource]:
    """The canonical five-tier cascade, highest priority first."""
    return [
        ItunesAlbumSource(client, settings),
        LastfmAlbumSource(client, settings),
        ItunesArtistSource(client, settings),
        ThemedImageSource(client, settings),
        PlaceholderSource(client, settings),
    ]
