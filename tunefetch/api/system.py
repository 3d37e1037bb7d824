import logging
from typing import List

from fastapi import APIRouter, Depends

from ..core.errors import FetchError
from ..core.service import MediaService
from .deps import get_service, to_http_error
from .schemas import CleanupRequest, ProgressModel
from .websocket import manager

router = APIRouter(prefix="/api", tags=["system"])
logger = logging.getLogger(__name__)


@router.post("/cleanup")
async def cleanup(request: CleanupRequest, service: MediaService = Depends(get_service)):
    """Delete cached artwork and lyrics for items no longer in the library."""
    try:
        reports = await service.cleanup_unused(request.live_item_ids)
    except FetchError as e:
        raise to_http_error(e)

    artwork = reports["artwork"]
    lyrics = reports["lyrics"]
    await manager.broadcast(
        f"Cleanup complete: {artwork.removed_count} artworks, {lyrics.removed_count} lyrics removed"
    )
    return {
        "status": "ok",
        "artwork_removed": artwork.removed_count,
        "freed_bytes": artwork.freed_bytes,
        "lyrics_removed": lyrics.removed_count,
    }


@router.get("/progress", response_model=List[ProgressModel])
async def get_progress(service: MediaService = Depends(get_service)):
    return service.tracker.snapshot()
