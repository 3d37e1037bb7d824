import logging
from typing import Callable, Dict, Iterable, Optional, Sequence, Union

import httpx
from sqlalchemy.future import select

from ..config import FetchSettings, apply_overrides
from ..db.database import create_engine_for, create_session_factory, init_db
from ..db.models import Setting
from .acquisition import ArtworkAcquirer, BatchResult, LyricsAcquirer
from .artwork_sources import default_artwork_sources
from .artwork_store import ArtworkStore
from .downloader import ImageDownloader
from .lyrics_sources import default_lyrics_sources
from .lyrics_store import LyricsStore
from .models import CleanupReport, Item, LyricsDocument, StoredArtwork
from .progress import ProgressTracker
from .resolver import ArtworkResolver, LyricsResolver

logger = logging.getLogger(__name__)

SourcesFactory = Callable[[httpx.AsyncClient, FetchSettings], Sequence]


class MediaService:
    """
    Composition point for artwork and lyrics acquisition.

    Everything is constructed here and handed down explicitly; the API layer
    holds one instance on the application state.
    """

    def __init__(
        self,
        settings: FetchSettings,
        session_factory,
        client: httpx.AsyncClient,
        tracker: Optional[ProgressTracker] = None,
        artwork_sources_factory: Optional[SourcesFactory] = None,
        lyrics_sources_factory: Optional[SourcesFactory] = None,
    ):
        self.settings = settings
        self.artwork_sources_factory = artwork_sources_factory or default_artwork_sources
        self.lyrics_sources_factory = lyrics_sources_factory or default_lyrics_sources
        self.session_factory = session_factory
        self.client = client
        self.tracker = tracker or ProgressTracker()

        self.artwork_store = ArtworkStore(session_factory, settings)
        self.lyrics_store = LyricsStore(session_factory, settings.lyrics_dir)

        self.artwork = ArtworkAcquirer(
            ArtworkResolver(self.artwork_sources_factory(client, settings)),
            ImageDownloader(client, settings),
            self.artwork_store,
            self.tracker,
            batch_delay=settings.batch_delay,
            batch_concurrency=settings.batch_concurrency,
        )
        self.lyrics = LyricsAcquirer(
            LyricsResolver(self.lyrics_sources_factory(client, settings)),
            self.lyrics_store,
            self.tracker,
        )

    async def start(self):
        await self.artwork_store.load()
        await self.lyrics_store.load()

    def apply_settings(self, settings: FetchSettings):
        """
        Rebuild resolvers and downloader with new tuning values. Caches and the
        in-flight bookkeeping are kept.
        """
        self.settings = settings
        self.artwork.resolver = ArtworkResolver(self.artwork_sources_factory(self.client, settings))
        self.artwork.downloader = ImageDownloader(self.client, settings)
        self.artwork.batch_delay = settings.batch_delay
        self.artwork.batch_concurrency = max(1, settings.batch_concurrency)
        self.lyrics.resolver = LyricsResolver(self.lyrics_sources_factory(self.client, settings))
        self.lyrics_store.lyrics_dir = settings.lyrics_dir
        self.artwork_store.max_image_bytes = settings.max_image_bytes
        self.artwork_store.thumbnail_size = settings.thumbnail_size
        self.artwork_store.image_quality = settings.image_quality
        self.artwork_store.thumbnail_quality = settings.thumbnail_quality
        logger.info("Settings applied to artwork and lyrics resolvers")

    # --- public operations ---

    async def acquire_artwork(self, item: Item, force: bool = False) -> StoredArtwork:
        return await self.artwork.acquire(item, force=force)

    async def acquire_artwork_all(self, items: Iterable[Item], on_item=None) -> BatchResult:
        return await self.artwork.acquire_all(items, on_item=on_item)

    async def acquire_lyrics(self, item: Item, force: bool = False) -> LyricsDocument:
        return await self.lyrics.acquire(item, force=force)

    async def has_artwork(self, item: Union[Item, str]) -> bool:
        return await self.artwork_store.has(_item_id(item))

    def has_lyrics(self, item_id: str) -> bool:
        return self.lyrics_store.has(item_id)

    async def cleanup_unused(self, live_items: Iterable[Union[Item, str]]) -> Dict[str, CleanupReport]:
        live_ids = {_item_id(i) for i in live_items}
        return {
            "artwork": await self.artwork_store.cleanup_orphans(live_ids),
            "lyrics": await self.lyrics_store.cleanup_orphans(live_ids),
        }


def _item_id(item: Union[Item, str]) -> str:
    return item.id if isinstance(item, Item) else str(item)


async def load_setting_overrides(session_factory) -> Dict[str, str]:
    async with session_factory() as session:
        result = await session.execute(select(Setting))
        return {s.key: s.value for s in result.scalars().all()}


class ServiceRuntime:
    """Owns the engine and HTTP client behind a MediaService."""

    def __init__(
        self,
        service: MediaService,
        engine,
        client: httpx.AsyncClient,
        base_settings: FetchSettings,
    ):
        self.service = service
        # Environment defaults; settings-table overrides are applied on top
        self.base_settings = base_settings
        self.engine = engine
        self.client = client

    async def close(self):
        await self.client.aclose()
        await self.engine.dispose()


async def create_runtime(
    settings: Optional[FetchSettings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    tracker: Optional[ProgressTracker] = None,
    artwork_sources_factory=None,
    lyrics_sources_factory=None,
) -> ServiceRuntime:
    base_settings = settings or FetchSettings()
    settings = base_settings
    engine = create_engine_for(settings.database_path)
    await init_db(engine)
    session_factory = create_session_factory(engine)

    overrides = await load_setting_overrides(session_factory)
    if overrides:
        settings = apply_overrides(settings, overrides)

    client = httpx.AsyncClient(transport=transport)
    service = MediaService(
        settings,
        session_factory,
        client,
        tracker=tracker,
        artwork_sources_factory=artwork_sources_factory,
        lyrics_sources_factory=lyrics_sources_factory,
    )
    await service.start()
    logger.info(f"Media service started (data dir: {settings.data_dir})")
    return ServiceRuntime(service, engine, client, base_settings)
