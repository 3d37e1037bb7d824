import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse

from ..core.errors import FetchError
from ..core.lrc import render_lrc
from ..core.service import MediaService
from .deps import get_service, to_http_error
from .schemas import ItemModel, LyricsModel

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/lyrics", tags=["lyrics"])


@router.post("", response_model=LyricsModel)
async def acquire_lyrics(
    item: ItemModel,
    force: bool = False,
    service: MediaService = Depends(get_service),
):
    try:
        document = await service.acquire_lyrics(item.to_item(), force=force)
    except FetchError as e:
        raise to_http_error(e)
    return LyricsModel.from_document(document)


@router.get("/{item_id}", response_model=LyricsModel)
async def get_lyrics(item_id: str, service: MediaService = Depends(get_service)):
    document = service.lyrics_store.get(item_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Lyrics not found")
    return LyricsModel.from_document(document)


@router.get("/{item_id}/lrc", response_class=PlainTextResponse)
async def get_lyrics_lrc(item_id: str, service: MediaService = Depends(get_service)):
    document = service.lyrics_store.get(item_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Lyrics not found")
    return PlainTextResponse(render_lrc(document))


@router.get("/{item_id}/exists")
async def lyrics_exist(item_id: str, service: MediaService = Depends(get_service)):
    return {"item_id": item_id, "exists": service.has_lyrics(item_id)}


@router.delete("/{item_id}")
async def delete_lyrics(item_id: str, service: MediaService = Depends(get_service)):
    try:
        removed = await service.lyrics_store.remove(item_id)
    except FetchError as e:
        raise to_http_error(e)
    if not removed:
        raise HTTPException(status_code=404, detail="Lyrics not found")
    return {"status": "ok", "item_id": item_id}
