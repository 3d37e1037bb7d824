import io

import httpx
import pytest
import pytest_asyncio
from PIL import Image

from tunefetch.core.errors import NotFoundError
from tunefetch.core.models import Item
from tunefetch.core.service import create_runtime

# Unit Test: Media Service
# 目的: 合成ポイント (MediaService) 経由で取得・存在確認・クリーンアップ・設定反映が行えるか検証する。


def _jpeg() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (64, 64), (0, 128, 255)).save(buf, format="JPEG")
    return buf.getvalue()


def handler(request: httpx.Request) -> httpx.Response:
    # iTunes/LrcLib/NetEase は0件、プレースホルダー画像のみ返す
    if request.url.host == "itunes.apple.com":
        return httpx.Response(200, json={"results": []})
    if request.url.host == "lrclib.net":
        return httpx.Response(200, json=[])
    if request.url.host == "music.163.com":
        return httpx.Response(200, json={"result": {"songs": []}})
    if request.url.host == "placehold.co":
        return httpx.Response(200, content=_jpeg())
    return httpx.Response(404)


@pytest_asyncio.fixture
async def runtime(settings):
    rt = await create_runtime(settings, transport=httpx.MockTransport(handler))
    yield rt
    await rt.close()


def song(item_id):
    return Item(id=item_id, title="Song", artist="NONEXISTENT_ARTIST_999", album="FAKE_ALBUM_XYZ")


@pytest.mark.asyncio
async def test_artwork_always_succeeds_and_cleanup(runtime):
    """
    [MediaService] アートワークは常に成功し、未使用分はクリーンアップされる

    期待値:
    1. 全ティア0件でもプレースホルダーで保存される
    2. has_artwork は Item と ID の両方を受け付ける
    3. cleanup_unused 後、live 以外は False
    """
    service = runtime.service
    keep, drop = song("keep"), song("drop")

    handle = await service.acquire_artwork(keep)
    await service.acquire_artwork(drop)

    assert handle.metadata.source == "Default Color"
    assert await service.has_artwork(keep)
    assert await service.has_artwork("drop")

    reports = await service.cleanup_unused([keep])

    assert reports["artwork"].removed_count == 1
    assert reports["lyrics"].removed_count == 0
    assert await service.has_artwork("keep")
    assert not await service.has_artwork("drop")


@pytest.mark.asyncio
async def test_lyrics_not_found_and_has_lyrics(runtime):
    """
    [MediaService] 歌詞が見つからない場合は NotFoundError、has_lyrics は False
    """
    with pytest.raises(NotFoundError):
        await runtime.service.acquire_lyrics(song("keep"))
    assert runtime.service.has_lyrics("keep") is False


@pytest.mark.asyncio
async def test_batch_updates_items(runtime):
    """
    [MediaService] 一括取得で更新済みアイテムが返る

    期待値:
    1. 2件とも成功
    2. 2回目は取得済みのため対象0件
    """
    items = [song("a"), song("b")]

    result = await runtime.service.acquire_artwork_all(items)
    assert result.success_count == 2
    assert all(item.artwork for item in result.updated_items)

    result = await runtime.service.acquire_artwork_all(items)
    assert (result.success_count, result.failure_count) == (0, 0)


@pytest.mark.asyncio
async def test_apply_settings(runtime):
    """
    [MediaService] 設定変更は次回の取得から有効、キャッシュは維持される
    """
    service = runtime.service
    await service.acquire_artwork(song("keep"))

    service.apply_settings(service.settings.model_copy(update={"placeholder_confidence": 0.2, "batch_delay": 1.0}))

    assert service.artwork.batch_delay == 1.0
    assert await service.has_artwork("keep")
    handle = await service.acquire_artwork(song("next"))
    assert handle.metadata.confidence == pytest.approx(0.2)
