import asyncio
import logging
import os
from typing import Dict, Iterable, List, Optional, Tuple

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select

from ..db.models import LyricsRecord
from .errors import StorageError
from .lrc import looks_synced, parse_lrc, parse_plain_text, render_lrc
from .models import CleanupReport, Item, LyricsDocument

logger = logging.getLogger(__name__)

LOCAL_SOURCE = "local"
SIDECAR_EXTENSIONS = [".lrc", ".txt"]


class LyricsStore:
    """
    Lyrics documents keyed by item id, held in memory and written through to
    the `lyrics` table as rendered LRC text.
    """

    def __init__(self, session_factory, lyrics_dir: Optional[str] = None):
        self.session_factory = session_factory
        self.lyrics_dir = lyrics_dir
        self._documents: Dict[str, LyricsDocument] = {}
        self._lock = asyncio.Lock()

    async def load(self):
        async with self.session_factory() as session:
            result = await session.execute(select(LyricsRecord))
            records = result.scalars().all()

        self._documents = {
            r.item_id: parse_lrc(
                r.content,
                item_id=r.item_id,
                source=r.source,
                title=r.title,
                artist=r.artist,
                album=r.album,
                confidence=r.confidence,
            )
            for r in records
        }
        logger.info(f"Loaded lyrics for {len(self._documents)} items")

    def has(self, item_id: str) -> bool:
        return item_id in self._documents

    def get(self, item_id: str) -> Optional[LyricsDocument]:
        return self._documents.get(item_id)

    def item_ids(self) -> List[str]:
        return list(self._documents.keys())

    async def put(self, document: LyricsDocument) -> LyricsDocument:
        record = LyricsRecord(
            item_id=document.item_id,
            title=document.title,
            artist=document.artist,
            album=document.album,
            source=document.source,
            confidence=document.confidence,
            content=render_lrc(document),
        )
        async with self._lock:
            try:
                async with self.session_factory() as session:
                    await session.merge(record)
                    await session.commit()
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to persist lyrics for {document.item_id}: {e}", cause=e) from e
            self._documents[document.item_id] = document

        logger.info(f"Stored lyrics for {document.item_id} (source: {document.source})")
        return document

    async def remove(self, item_id: str) -> bool:
        async with self._lock:
            if item_id not in self._documents:
                return False
            await self._delete_records([item_id])
            self._documents.pop(item_id, None)
        return True

    async def cleanup_orphans(self, live_item_ids: Iterable[str]) -> CleanupReport:
        live = set(live_item_ids)
        async with self._lock:
            stale = [item_id for item_id in self._documents if item_id not in live]
            if stale:
                await self._delete_records(stale)
                for item_id in stale:
                    self._documents.pop(item_id, None)

        if stale:
            logger.info(f"Cleanup removed lyrics for {len(stale)} unused items")
        return CleanupReport(removed_count=len(stale))

    async def _delete_records(self, item_ids: List[str]):
        try:
            async with self.session_factory() as session:
                await session.execute(delete(LyricsRecord).where(LyricsRecord.item_id.in_(item_ids)))
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update lyrics index: {e}", cause=e) from e

    # --- local sidecar files ---

    async def find_sidecar(self, item: Item) -> Optional[LyricsDocument]:
        """Look for <name>.lrc / <name>.txt next to the library before going online."""
        if not self.lyrics_dir:
            return None
        found = await run_in_threadpool(self._read_sidecar, item)
        if not found:
            return None
        path, content = found

        if path.lower().endswith(".lrc") or looks_synced(content):
            document = parse_lrc(
                content,
                item_id=item.id,
                source=LOCAL_SOURCE,
                title=item.title,
                artist=item.artist,
                album=item.album,
            )
        else:
            document = parse_plain_text(
                content,
                item_id=item.id,
                source=LOCAL_SOURCE,
                duration=item.duration,
                title=item.title,
                artist=item.artist,
                album=item.album,
            )

        if not document.lines:
            return None
        logger.info(f"Found local lyrics file {path}")
        return document

    def _read_sidecar(self, item: Item) -> Optional[Tuple[str, str]]:
        names = []
        if item.file_name:
            names.append(os.path.splitext(item.file_name)[0])
        if item.title:
            names.append(item.title)
            names.append(f"{item.artist} - {item.title}")

        for name in names:
            if os.sep in name:
                continue
            for ext in SIDECAR_EXTENSIONS:
                path = os.path.join(self.lyrics_dir, f"{name}{ext}")
                if not os.path.isfile(path):
                    continue
                try:
                    with open(path, "r", encoding="utf-8") as f:
                        return path, f.read()
                except (OSError, UnicodeDecodeError) as e:
                    logger.warning(f"Cannot read lyrics file {path}: {e}")
        return None
