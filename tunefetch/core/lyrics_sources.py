import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from ..config import FetchSettings
from .errors import TransportError
from .models import LyricsCandidate, SearchQuery
from .similarity import weighted_score

logger = logging.getLogger(__name__)

LRCLIB_SEARCH_API = "https://lrclib.net/api/search"
NETEASE_SEARCH_API = "https://music.163.com/api/search/get/web"
NETEASE_LYRIC_API = "https://music.163.com/api/song/lyric"

# NetEase rejects requests without a browser-like agent
BROWSER_USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"

# Only the top few catalog hits are worth a lyrics lookup
MAX_RESULTS = 3


class LyricsSource(ABC):
    """A lyrics database queried concurrently with its siblings."""

    name = "base"
    user_agent: Optional[str] = None

    def __init__(self, client: httpx.AsyncClient, settings: FetchSettings):
        self.client = client
        self.settings = settings

    async def search(self, query: SearchQuery) -> List[LyricsCandidate]:
        try:
            results = await self._search(query)
        except (AttributeError, TypeError, KeyError) as e:
            raise TransportError(f"{self.name} returned an unexpected payload", cause=e) from e
        return sorted(results, key=lambda r: r.confidence, reverse=True)

    @abstractmethod
    async def _search(self, query: SearchQuery) -> List[LyricsCandidate]:
        pass

    def _confidence(self, query: SearchQuery, title: str, artist: str) -> float:
        return weighted_score(
            [
                (self.settings.lyrics_title_weight, query.title, title),
                (self.settings.lyrics_artist_weight, query.artist, artist),
            ]
        )

    async def _get_json(self, url: str, params: Dict[str, Any]) -> Any:
        try:
            response = await self.client.get(
                url,
                params=params,
                headers={
                    "User-Agent": self.user_agent or self.settings.user_agent,
                    "Accept": "application/json",
                },
                timeout=self.settings.lyrics_timeout,
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"{self.name} request failed: {e}", cause=e) from e
        except ValueError as e:
            raise TransportError(f"{self.name} returned invalid JSON", cause=e) from e


class LrcLibSource(LyricsSource):
    """Open lyrics database; prefers synced (LRC) lyrics over plain text."""

    name = "LrcLib"

    async def _search(self, query: SearchQuery) -> List[LyricsCandidate]:
        if not query.title:
            return []

        params = {"track_name": query.title, "artist_name": query.artist}
        if query.album:
            params["album_name"] = query.album

        data = await self._get_json(LRCLIB_SEARCH_API, params)
        if not isinstance(data, list):
            return []

        results = []
        for entry in data[:MAX_RESULTS]:
            track_name = entry.get("trackName")
            artist_name = entry.get("artistName")
            plain = entry.get("plainLyrics")
            if not track_name or not artist_name or not plain:
                continue
            results.append(
                LyricsCandidate(
                    title=track_name,
                    artist=artist_name,
                    album=entry.get("albumName"),
                    duration=entry.get("duration"),
                    content=entry.get("syncedLyrics") or plain,
                    source=self.name,
                    confidence=self._confidence(query, track_name, artist_name),
                )
            )
        return results


class NeteaseSource(LyricsSource):
    """NetEase Cloud Music: song search followed by one lyric lookup per hit."""

    name = "NetEase"
    user_agent = BROWSER_USER_AGENT

    async def _search(self, query: SearchQuery) -> List[LyricsCandidate]:
        keywords = f"{query.artist} {query.title}".strip()
        if not keywords:
            return []

        data = await self._get_json(
            NETEASE_SEARCH_API,
            {"s": keywords, "type": 1, "offset": 0, "total": "true", "limit": 5},
        )
        songs = ((data or {}).get("result") or {}).get("songs") or []

        results = []
        for song in songs[:MAX_RESULTS]:
            song_id = song.get("id")
            name = song.get("name")
            artists = song.get("artists") or []
            if song_id is None or not name or not artists:
                continue
            artist_name = artists[0].get("name")
            if not artist_name:
                continue

            try:
                content = await self._fetch_lyric(song_id)
            except TransportError as e:
                # One broken lookup should not hide the other hits
                logger.warning(f"NetEase lyric lookup failed for song {song_id}: {e}")
                continue
            if not content:
                continue

            duration = song.get("duration")
            results.append(
                LyricsCandidate(
                    title=name,
                    artist=artist_name,
                    album=(song.get("album") or {}).get("name"),
                    duration=duration / 1000 if duration else None,
                    content=content,
                    source=self.name,
                    confidence=self._confidence(query, name, artist_name),
                )
            )
        return results

    async def _fetch_lyric(self, song_id: int) -> Optional[str]:
        data = await self._get_json(
            NETEASE_LYRIC_API, {"id": song_id, "lv": 1, "kv": 1, "tv": -1}
        )
        return ((data or {}).get("lrc") or {}).get("lyric")


def default_lyrics_sources(
    client: httpx.AsyncClient, settings: FetchSettings
) -> List[LyricsSource]:
    return [LrcLibSource(client, settings), NeteaseSource(client, settings)]
