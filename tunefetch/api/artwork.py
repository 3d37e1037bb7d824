import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import Response

from ..core.errors import FetchError
from ..core.models import Item
from ..core.service import MediaService
from .deps import get_service, to_http_error
from .schemas import ArtworkModel, ArtworkStatsModel, BatchRequest, ItemModel
from .websocket import manager, notify

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/artwork", tags=["artwork"])


@router.post("", response_model=ArtworkModel)
async def acquire_artwork(
    item: ItemModel,
    force: bool = False,
    service: MediaService = Depends(get_service),
):
    """
    Return cached artwork for the item, or resolve and download it.
    `force` skips the cache and replaces the stored image.
    """
    try:
        handle = await service.acquire_artwork(item.to_item(), force=force)
    except FetchError as e:
        raise to_http_error(e)
    return ArtworkModel.from_handle(handle)


async def batch_task(service: MediaService, items):
    logger.info("Batch artwork task started")

    def on_item(item: Item, error: Optional[FetchError]):
        notify(
            {
                "type": "artwork_batch_item",
                "item_id": item.id,
                "ok": error is None,
                "error": str(error) if error else None,
            }
        )

    result = await service.acquire_artwork_all(items, on_item=on_item)
    await manager.broadcast_json(
        {
            "type": "artwork_batch_complete",
            "success_count": result.success_count,
            "failure_count": result.failure_count,
        }
    )


@router.post("/batch")
async def acquire_artwork_batch(
    request: BatchRequest,
    background_tasks: BackgroundTasks,
    service: MediaService = Depends(get_service),
):
    items = [i.to_item() for i in request.items]
    background_tasks.add_task(batch_task, service, items)
    return {"status": "accepted", "count": len(items)}


@router.get("/stats", response_model=ArtworkStatsModel)
async def get_artwork_stats(limit: int = 10, service: MediaService = Depends(get_service)):
    store = service.artwork_store
    stats = store.statistics()
    return ArtworkStatsModel(
        count=stats.count,
        total_size=stats.total_size,
        average_size=stats.average_size,
        sources=store.source_statistics(),
        recent=[ArtworkModel.from_metadata(m) for m in store.recent(limit)],
    )


@router.get("/{item_id}")
async def get_artwork(
    item_id: str,
    thumbnail: bool = False,
    service: MediaService = Depends(get_service),
):
    """
    Get the cached JPEG for the item. The thumbnail falls back to the full image.
    """
    data = await service.artwork_store.get(item_id, prefer_thumbnail=thumbnail)
    if data is None:
        # Return 404 so frontend can show placeholder
        raise HTTPException(status_code=404, detail="Artwork not found")
    return Response(content=data, media_type="image/jpeg")


@router.get("/{item_id}/exists")
async def artwork_exists(item_id: str, service: MediaService = Depends(get_service)):
    return {"item_id": item_id, "exists": await service.has_artwork(item_id)}


@router.delete("/{item_id}")
async def delete_artwork(item_id: str, service: MediaService = Depends(get_service)):
    try:
        removed = await service.artwork_store.remove(item_id)
    except FetchError as e:
        raise to_http_error(e)
    if not removed:
        raise HTTPException(status_code=404, detail="Artwork not found")
    return {"status": "ok", "item_id": item_id}
