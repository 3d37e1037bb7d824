import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, List, Optional, Set

from .artwork_store import ArtworkStore
from .downloader import ImageDownloader
from .errors import AlreadyInProgressError, FetchError, NotFoundError
from .lrc import looks_synced, parse_lrc, parse_plain_text
from .lyrics_store import LyricsStore
from .models import Item, LyricsCandidate, LyricsDocument, SearchQuery, StoredArtwork
from .progress import ARTWORK, LYRICS, ProgressTracker
from .resolver import ArtworkResolver, LyricsResolver

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    success_count: int = 0
    failure_count: int = 0
    # Items whose artwork reference changed, for the library to persist
    updated_items: List[Item] = field(default_factory=list)


class _SingleFlight:
    """At most one running acquisition per item id."""

    kind = ""

    def __init__(self):
        self._in_flight: Set[str] = set()

    def is_in_flight(self, item_id: str) -> bool:
        return item_id in self._in_flight

    @contextmanager
    def _claim(self, item_id: str):
        # No await between the check and the add, so this is atomic on the event loop
        if item_id in self._in_flight:
            raise AlreadyInProgressError(f"{self.kind} acquisition for {item_id} is already in progress")
        self._in_flight.add(item_id)
        try:
            yield
        finally:
            self._in_flight.discard(item_id)


class ArtworkAcquirer(_SingleFlight):
    """
    Cache first; on a miss resolve through the tier cascade, download the
    winner and store it. Never retries within one call.
    """

    kind = ARTWORK

    def __init__(
        self,
        resolver: ArtworkResolver,
        downloader: ImageDownloader,
        store: ArtworkStore,
        tracker: ProgressTracker,
        batch_delay: float = 0.5,
        batch_concurrency: int = 1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__()
        self.resolver = resolver
        self.downloader = downloader
        self.store = store
        self.tracker = tracker
        self.batch_delay = batch_delay
        self.batch_concurrency = max(1, batch_concurrency)
        self._sleep = sleep

    async def needs_artwork(self, item: Item) -> bool:
        # A cached image still counts as missing while the item has no reference to it
        return not item.artwork or not await self.store.has(item.id)

    async def acquire(self, item: Item, force: bool = False) -> StoredArtwork:
        with self._claim(item.id):
            if not force:
                cached = await self.store.handle(item.id)
                if cached:
                    logger.debug(f"Artwork cache hit for {item.id}")
                    return cached

            self.tracker.start(ARTWORK, item.id, f"Searching artwork: {item.artist} - {item.album}")
            try:
                handle = await self._download(item)
            except FetchError as e:
                logger.error(f"Artwork acquisition failed for {item.artist} - {item.album}: {e}")
                self.tracker.finish(ARTWORK, item.id, error=str(e))
                raise
            except BaseException as e:
                # Unexpected errors and cancellation still close the progress entry
                self.tracker.finish(ARTWORK, item.id, error=str(e) or type(e).__name__)
                raise

            self.tracker.finish(ARTWORK, item.id)
            return handle

    async def _download(self, item: Item) -> StoredArtwork:
        query = SearchQuery.for_item(item)
        self.tracker.advance(ARTWORK, item.id, 0.1)

        def on_tier(index: int, name: str):
            if index == 0:
                self.tracker.advance(ARTWORK, item.id, 0.3, f"Queried {name}")

        candidate = await self.resolver.resolve(query, on_tier=on_tier)
        self.tracker.advance(ARTWORK, item.id, 0.5)
        self.tracker.advance(ARTWORK, item.id, 0.7, f"Selected artwork from {candidate.source}")

        data = await self.downloader.fetch(candidate.image_url)
        self.tracker.advance(ARTWORK, item.id, 0.9)

        # A cancelled batch must not cut a cache write in half
        handle = await asyncio.shield(
            self.store.put(
                item,
                data,
                source=candidate.source,
                original_url=candidate.image_url,
                confidence=candidate.confidence,
            )
        )
        logger.info(f"Artwork stored for {item.artist} - {item.album} (source: {candidate.source})")
        return handle

    async def acquire_all(
        self,
        items: Iterable[Item],
        on_item: Optional[Callable[[Item, Optional[FetchError]], None]] = None,
    ) -> BatchResult:
        """
        Acquire artwork for every item that still needs it, pausing between
        requests to stay under third-party rate limits.
        """
        pending = [item for item in items if await self.needs_artwork(item)]
        result = BatchResult()
        if not pending:
            return result

        logger.info(f"Batch artwork acquisition started for {len(pending)} items")
        semaphore = asyncio.Semaphore(self.batch_concurrency)
        # Request starts are spaced batch_delay apart whatever the concurrency
        pacing = asyncio.Lock()
        started = False

        async def run(item: Item):
            nonlocal started
            async with semaphore:
                async with pacing:
                    if started and self.batch_delay > 0:
                        await self._sleep(self.batch_delay)
                    started = True
                try:
                    handle = await self.acquire(item)
                except FetchError as e:
                    result.failure_count += 1
                    if on_item:
                        on_item(item, e)
                    return
                result.success_count += 1
                updated = item.with_artwork(handle)
                result.updated_items.append(updated)
                if on_item:
                    on_item(updated, None)

        await asyncio.gather(*(run(item) for item in pending))
        logger.info(
            f"Batch artwork acquisition finished: success {result.success_count}, "
            f"failure {result.failure_count}"
        )
        return result


class LyricsAcquirer(_SingleFlight):
    """
    Stored lyrics first, then a local .lrc/.txt file, then the concurrent
    online search. "Not found" is a normal outcome here.
    """

    kind = LYRICS

    def __init__(self, resolver: LyricsResolver, store: LyricsStore, tracker: ProgressTracker):
        super().__init__()
        self.resolver = resolver
        self.store = store
        self.tracker = tracker

    async def acquire(self, item: Item, force: bool = False) -> LyricsDocument:
        with self._claim(item.id):
            if not force:
                cached = self.store.get(item.id)
                if cached:
                    return cached

            self.tracker.start(LYRICS, item.id, f"Searching lyrics: {item.artist} - {item.title}")
            try:
                document = await self._fetch(item, allow_local=not force)
            except FetchError as e:
                logger.error(f"Lyrics acquisition failed for {item.artist} - {item.title}: {e}")
                self.tracker.finish(LYRICS, item.id, error=str(e))
                raise
            except BaseException as e:
                self.tracker.finish(LYRICS, item.id, error=str(e) or type(e).__name__)
                raise

            self.tracker.finish(LYRICS, item.id)
            return document

    async def _fetch(self, item: Item, allow_local: bool) -> LyricsDocument:
        self.tracker.advance(LYRICS, item.id, 0.1)

        document = await self.store.find_sidecar(item) if allow_local else None
        if document is None:
            self.tracker.advance(LYRICS, item.id, 0.3)
            candidate = await self.resolver.resolve(SearchQuery.for_item(item))
            self.tracker.advance(LYRICS, item.id, 0.8, f"Selected lyrics from {candidate.source}")
            document = to_document(item, candidate)
            if not document.lines:
                raise NotFoundError(f"Lyrics from {candidate.source} contain no lines")

        return await asyncio.shield(self.store.put(document))


def to_document(item: Item, candidate: LyricsCandidate) -> LyricsDocument:
    if looks_synced(candidate.content):
        return parse_lrc(
            candidate.content,
            item_id=item.id,
            source=candidate.source,
            title=candidate.title or item.title,
            artist=candidate.artist or item.artist,
            album=candidate.album or item.album,
            confidence=candidate.confidence,
        )
    return parse_plain_text(
        candidate.content,
        item_id=item.id,
        source=candidate.source,
        duration=candidate.duration or item.duration,
        title=candidate.title or item.title,
        artist=candidate.artist or item.artist,
        album=candidate.album or item.album,
        confidence=candidate.confidence,
    )
