import asyncio
import io
import logging
import os
import time
import uuid
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from fastapi.concurrency import run_in_threadpool
from PIL import Image, ImageOps, UnidentifiedImageError
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select

from ..config import FetchSettings
from ..db.models import ArtworkRecord
from .errors import InvalidAssetError, StorageError
from .models import AssetMetadata, CleanupReport, Item, StoredArtwork

logger = logging.getLogger(__name__)

INVALID_FILENAME_CHARS = ':/\\?%*|"<>'


@dataclass(frozen=True)
class ArtworkStatistics:
    count: int
    total_size: int
    average_size: int


class ArtworkStore:
    """
    Local artwork cache: full-size JPEGs, 150px thumbnails and an index keyed by
    item id.

    The index is loaded once, kept in memory and written through to the
    database after every mutation. Mutations are serialized by a lock so two
    acquisitions finishing at the same time cannot lose an update. Files are
    always written before their metadata, so a failed write never leaves a
    record behind.
    """

    def __init__(self, session_factory, settings: FetchSettings):
        self.session_factory = session_factory
        self.artwork_dir = settings.artwork_dir
        self.thumbnail_dir = settings.thumbnail_dir
        self.max_image_bytes = settings.max_image_bytes
        self.thumbnail_size = settings.thumbnail_size
        self.image_quality = settings.image_quality
        self.thumbnail_quality = settings.thumbnail_quality

        self._index: Dict[str, AssetMetadata] = {}
        self._lock = asyncio.Lock()

    async def load(self):
        await run_in_threadpool(self._setup_directories)

        async with self.session_factory() as session:
            result = await session.execute(select(ArtworkRecord))
            records = result.scalars().all()

        index = {r.item_id: _to_metadata(r) for r in records}

        # Drop records whose file disappeared while we were not running
        dangling = [
            item_id
            for item_id, metadata in index.items()
            if not os.path.exists(self._full_path(metadata.file_name))
        ]
        if dangling:
            logger.warning(f"Dropping {len(dangling)} artwork records with missing files")
            async with self._lock:
                await self._delete_records(dangling)
            for item_id in dangling:
                index.pop(item_id, None)

        self._index = index
        logger.info(f"Loaded {len(index)} artwork records")

    def _setup_directories(self):
        os.makedirs(self.artwork_dir, exist_ok=True)
        os.makedirs(self.thumbnail_dir, exist_ok=True)

    # --- queries ---

    def item_ids(self) -> List[str]:
        return list(self._index.keys())

    async def has(self, item_id: str) -> bool:
        # A record whose file is gone counts as "not cached", not as an error
        metadata = self._index.get(item_id)
        if not metadata:
            return False
        return await run_in_threadpool(os.path.exists, self._full_path(metadata.file_name))

    async def handle(self, item_id: str) -> Optional[StoredArtwork]:
        if not await self.has(item_id):
            return None
        return self._handle_for(self._index[item_id])

    async def get(self, item_id: str, prefer_thumbnail: bool = False) -> Optional[bytes]:
        metadata = self._index.get(item_id)
        if not metadata:
            return None

        if prefer_thumbnail and metadata.thumbnail_file_name:
            data = await run_in_threadpool(
                _read_file, self._thumbnail_path(metadata.thumbnail_file_name)
            )
            if data is not None:
                return data

        return await run_in_threadpool(_read_file, self._full_path(metadata.file_name))

    def statistics(self) -> ArtworkStatistics:
        count = len(self._index)
        total = sum(m.file_size for m in self._index.values())
        return ArtworkStatistics(count=count, total_size=total, average_size=total // count if count else 0)

    def source_statistics(self) -> Dict[str, int]:
        stats: Dict[str, int] = {}
        for metadata in self._index.values():
            stats[metadata.source] = stats.get(metadata.source, 0) + 1
        return stats

    def recent(self, limit: int = 10) -> List[AssetMetadata]:
        return sorted(self._index.values(), key=lambda m: m.created_at, reverse=True)[:limit]

    # --- mutations ---

    async def put(
        self,
        item: Item,
        data: bytes,
        source: str,
        original_url: Optional[str] = None,
        confidence: Optional[float] = None,
    ) -> StoredArtwork:
        """
        Validate, normalise and store an image for `item`.
        Raises InvalidAssetError (nothing written) or StorageError.
        """
        if len(data) > self.max_image_bytes:
            raise InvalidAssetError(
                f"Image for {item.id} is {len(data)} bytes (limit {self.max_image_bytes})"
            )

        full_bytes, thumb_bytes, dimensions = await run_in_threadpool(self._process_image, data)
        file_name, thumbnail_file_name = generate_file_names(item)

        async with self._lock:
            full_path = self._full_path(file_name)
            thumb_path = self._thumbnail_path(thumbnail_file_name)
            try:
                await run_in_threadpool(_write_file, full_path, full_bytes)
                await run_in_threadpool(_write_file, thumb_path, thumb_bytes)
            except OSError as e:
                await run_in_threadpool(_remove_files, [full_path, thumb_path])
                raise StorageError(f"Failed to write artwork for {item.id}: {e}", cause=e) from e

            metadata = AssetMetadata(
                item_id=item.id,
                file_name=file_name,
                thumbnail_file_name=thumbnail_file_name,
                source=source,
                original_url=original_url,
                confidence=confidence,
                created_at=time.time(),
                file_size=len(full_bytes),
                dimensions=dimensions,
            )
            try:
                async with self.session_factory() as session:
                    await session.merge(_to_record(metadata))
                    await session.commit()
            except SQLAlchemyError as e:
                await run_in_threadpool(_remove_files, [full_path, thumb_path])
                raise StorageError(f"Failed to persist artwork index for {item.id}: {e}", cause=e) from e

            previous = self._index.get(item.id)
            self._index[item.id] = metadata

            # Latest write wins; the replaced files are no longer referenced
            if previous:
                await run_in_threadpool(_remove_files, self._paths_for(previous))

        logger.info(f"Stored artwork {file_name} for {item.id} (source: {source})")
        return self._handle_for(metadata)

    async def remove(self, item_id: str) -> bool:
        async with self._lock:
            metadata = self._index.get(item_id)
            if not metadata:
                return False
            await self._delete_records([item_id])
            self._index.pop(item_id, None)
            await run_in_threadpool(_remove_files, self._paths_for(metadata))

        logger.info(f"Removed artwork {metadata.file_name}")
        return True

    async def cleanup_orphans(self, live_item_ids: Iterable[str]) -> CleanupReport:
        live = set(live_item_ids)
        async with self._lock:
            stale = [m for item_id, m in self._index.items() if item_id not in live]
            if not stale:
                logger.info("No unused artwork to clean up")
                return CleanupReport(removed_count=0, freed_bytes=0)

            await self._delete_records([m.item_id for m in stale])
            for metadata in stale:
                self._index.pop(metadata.item_id, None)

            paths = [path for m in stale for path in self._paths_for(m)]
            await run_in_threadpool(_remove_files, paths)

        freed = sum(m.file_size for m in stale)
        logger.info(f"Cleanup removed {len(stale)} unused artworks, freed {freed} bytes")
        return CleanupReport(removed_count=len(stale), freed_bytes=freed)

    async def _delete_records(self, item_ids: List[str]):
        try:
            async with self.session_factory() as session:
                await session.execute(delete(ArtworkRecord).where(ArtworkRecord.item_id.in_(item_ids)))
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update artwork index: {e}", cause=e) from e

    # --- helpers ---

    def _process_image(self, data: bytes) -> Tuple[bytes, bytes, Tuple[int, int]]:
        """Decode, re-encode as JPEG and derive a square thumbnail."""
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                if img.mode != "RGB":
                    img = img.convert("RGB")
                dimensions = img.size

                full_io = io.BytesIO()
                img.save(full_io, format="JPEG", quality=self.image_quality)

                # Aspect-fill into the fixed box, centre crop
                thumb = ImageOps.fit(
                    img, (self.thumbnail_size, self.thumbnail_size), Image.Resampling.LANCZOS
                )
                thumb_io = io.BytesIO()
                thumb.save(thumb_io, format="JPEG", quality=self.thumbnail_quality)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            raise InvalidAssetError(f"Invalid image data: {e}", cause=e) from e

        return full_io.getvalue(), thumb_io.getvalue(), dimensions

    def _full_path(self, file_name: str) -> str:
        return os.path.join(self.artwork_dir, file_name)

    def _thumbnail_path(self, file_name: str) -> str:
        return os.path.join(self.thumbnail_dir, file_name)

    def _paths_for(self, metadata: AssetMetadata) -> List[str]:
        paths = [self._full_path(metadata.file_name)]
        if metadata.thumbnail_file_name:
            paths.append(self._thumbnail_path(metadata.thumbnail_file_name))
        return paths

    def _handle_for(self, metadata: AssetMetadata) -> StoredArtwork:
        return StoredArtwork(
            item_id=metadata.item_id,
            path=self._full_path(metadata.file_name),
            thumbnail_path=(
                self._thumbnail_path(metadata.thumbnail_file_name)
                if metadata.thumbnail_file_name
                else None
            ),
            metadata=metadata,
        )


def sanitize_file_name(value: str, limit: int = 50) -> str:
    cleaned = "".join("_" if c in INVALID_FILENAME_CHARS or ord(c) < 32 else c for c in value or "")
    cleaned = cleaned.strip().strip(".")[:limit].strip()
    return cleaned or "unknown"


def generate_file_names(item: Item) -> Tuple[str, str]:
    """
    "<artist>_<album>_<timestamp>_<random>.jpg" plus a "thumb_" twin.
    The random part keeps items sharing an artist/album pair apart.
    """
    stem = (
        f"{sanitize_file_name(item.artist)}_{sanitize_file_name(item.album)}"
        f"_{int(time.time())}_{uuid.uuid4().hex[:8]}"
    )
    return f"{stem}.jpg", f"thumb_{stem}.jpg"


def _read_file(path: str) -> Optional[bytes]:
    try:
        with open(path, "rb") as f:
            return f.read()
    except FileNotFoundError:
        return None


def _write_file(path: str, data: bytes):
    # Write to a temp name first so a crash never leaves a truncated asset
    tmp_path = f"{path}.part"
    with open(tmp_path, "wb") as f:
        f.write(data)
    os.replace(tmp_path, path)


def _remove_files(paths: List[str]):
    for path in paths:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove {path}: {e}")


def _to_metadata(record: ArtworkRecord) -> AssetMetadata:
    dimensions = None
    if record.width and record.height:
        dimensions = (record.width, record.height)
    return AssetMetadata(
        item_id=record.item_id,
        file_name=record.file_name,
        thumbnail_file_name=record.thumbnail_file_name,
        source=record.source,
        original_url=record.original_url,
        confidence=record.confidence,
        created_at=record.created_at,
        file_size=record.file_size,
        dimensions=dimensions,
    )


def _to_record(metadata: AssetMetadata) -> ArtworkRecord:
    width, height = metadata.dimensions or (None, None)
    return ArtworkRecord(
        item_id=metadata.item_id,
        file_name=metadata.file_name,
        thumbnail_file_name=metadata.thumbnail_file_name,
        source=metadata.source,
        original_url=metadata.original_url,
        confidence=metadata.confidence,
        created_at=metadata.created_at,
        file_size=metadata.file_size,
        width=width,
        height=height,
    )
