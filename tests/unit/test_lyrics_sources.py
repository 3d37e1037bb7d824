import httpx
import pytest

from tunefetch.core.errors import TransportError
from tunefetch.core.lyrics_sources import BROWSER_USER_AGENT, LrcLibSource, NeteaseSource, default_lyrics_sources
from tunefetch.core.models import SearchQuery
from tunefetch.core.resolver import LyricsResolver

# Unit Test: Lyrics Source Adapters
# 目的: LrcLib / NetEase のレスポンスが正しく歌詞候補に変換されるか検証する。

QUERY = SearchQuery(title="Shape of You", artist="Ed Sheeran", album="÷ (Divide)")


@pytest.mark.asyncio
async def test_lrclib_prefers_synced_lyrics(settings):
    """
    [LrcLib] 同期歌詞を優先し、プレーン歌詞のないエントリは除外

    期待値:
    1. syncedLyrics があればそれを本文にする
    2. plainLyrics のないエントリは除外
    3. 信頼度降順
    """
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(
            200,
            json=[
                {"trackName": "Shape of You (Remix)", "artistName": "Ed Sheeran", "plainLyrics": "remix"},
                {
                    "trackName": "Shape of You",
                    "artistName": "Ed Sheeran",
                    "albumName": "÷ (Divide)",
                    "duration": 233.0,
                    "plainLyrics": "The club isn't the best place",
                    "syncedLyrics": "[00:09.50]The club isn't the best place",
                },
                {"trackName": "Shape of You", "artistName": "Ed Sheeran", "plainLyrics": None},
            ],
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        results = await LrcLibSource(client, settings).search(QUERY)

    assert len(results) == 2
    assert results[0].confidence == pytest.approx(1.0)
    assert results[0].content.startswith("[00:09.50]")
    assert results[0].duration == pytest.approx(233.0)
    assert results[1].content == "remix"
    assert requests[0].url.params["track_name"] == "Shape of You"
    assert requests[0].url.params["album_name"] == "÷ (Divide)"


@pytest.mark.asyncio
async def test_lrclib_without_title(settings):
    """
    [LrcLib] タイトルが空なら問い合わせない
    """

    def handler(request):
        raise AssertionError("no request expected")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        assert await LrcLibSource(client, settings).search(SearchQuery(title="", artist="x", album="")) == []


@pytest.mark.asyncio
async def test_netease_search_and_lyric_lookup(settings):
    """
    [NetEase] 曲検索 → 曲ごとの歌詞取得

    条件:
    1. 2曲ヒットし、1曲目の歌詞取得は 500 エラー
    2. ブラウザ相当の User-Agent が必要

    期待値:
    1. 失敗した曲はスキップされ、残りの曲が候補になること
    2. duration はミリ秒から秒に変換されること
    """
    agents = set()

    def handler(request):
        agents.add(request.headers["User-Agent"])
        if request.url.path.endswith("/search/get/web"):
            return httpx.Response(
                200,
                json={
                    "result": {
                        "songs": [
                            {"id": 1, "name": "Shape of You", "artists": [{"name": "Cover Band"}]},
                            {
                                "id": 2,
                                "name": "Shape of You",
                                "artists": [{"name": "Ed Sheeran"}],
                                "album": {"name": "÷"},
                                "duration": 233000,
                            },
                        ]
                    }
                },
            )
        if request.url.params["id"] == "1":
            return httpx.Response(500)
        return httpx.Response(200, json={"lrc": {"lyric": "[00:09.50]The club"}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        results = await NeteaseSource(client, settings).search(QUERY)

    assert len(results) == 1
    assert results[0].artist == "Ed Sheeran"
    assert results[0].duration == pytest.approx(233.0)
    assert results[0].album == "÷"
    assert results[0].source == "NetEase"
    assert agents == {BROWSER_USER_AGENT}


def test_default_lyrics_sources(settings):
    """
    [Lyrics] 既定のソース構成
    """
    assert [s.name for s in default_lyrics_sources(None, settings)] == ["LrcLib", "NetEase"]


@pytest.mark.asyncio
async def test_unexpected_payload_does_not_hide_other_source(settings):
    """
    [Lyrics] 片方のソースが想定外の形のJSONを返しても、もう片方の結果が採用される

    条件:
    1. LrcLib は ["oops"] を返す
    2. NetEase は正常な曲と歌詞を返す

    期待値:
    1. LrcLib 単体の検索は TransportError
    2. 並行検索の結果は NetEase の候補
    """

    def handler(request):
        if request.url.host == "lrclib.net":
            return httpx.Response(200, json=["oops"])
        if request.url.path.endswith("/search/get/web"):
            return httpx.Response(
                200,
                json={"result": {"songs": [{"id": 7, "name": "Shape of You", "artists": [{"name": "Ed Sheeran"}]}]}},
            )
        return httpx.Response(200, json={"lrc": {"lyric": "[00:09.50]The club"}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(TransportError):
            await LrcLibSource(client, settings).search(QUERY)

        best = await LyricsResolver(default_lyrics_sources(client, settings)).resolve(QUERY)

    assert best.source == "NetEase"
    assert best.content == "[00:09.50]The club"
