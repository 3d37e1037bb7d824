import asyncio

import pytest

from tunefetch.config import FetchSettings
from tunefetch.core.artwork_sources import ArtworkSource, PlaceholderSource
from tunefetch.core.errors import NotFoundError, TransportError
from tunefetch.core.lyrics_sources import LyricsSource
from tunefetch.core.models import CandidateResult, LyricsCandidate, SearchQuery
from tunefetch.core.resolver import ArtworkResolver, LyricsResolver, pick_best

# Unit Test: Fallback Resolver
# 目的: アートワークの逐次カスケードと歌詞の並行検索が仕様通りに動作するか検証する。

QUERY = SearchQuery(title="Shape of You", artist="Ed Sheeran", album="÷ (Divide)")


def candidate(url, confidence, source="fake"):
    return CandidateResult(image_url=url, source=source, confidence=confidence)


class FakeArtworkSource(ArtworkSource):
    def __init__(self, name, results=None, error=None):
        super().__init__(None, FetchSettings())
        self.name = name
        self.results = results or []
        self.error = error
        self.calls = 0

    async def _search(self, query):
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.results)


class FakeLyricsSource(LyricsSource):
    def __init__(self, name, results=None, error=None, delay=0.0):
        super().__init__(None, FetchSettings())
        self.name = name
        self.results = results or []
        self.error = error
        self.delay = delay

    async def _search(self, query):
        await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.results)


def lyrics(source, confidence):
    return LyricsCandidate(title="t", artist="a", content="[00:01.00]la", source=source, confidence=confidence)


@pytest.mark.asyncio
async def test_first_tier_short_circuits():
    """
    [ArtworkResolver] 1番目のティアがヒットしたら以降は呼ばれない

    期待値:
    1. ティア1の最高信頼度の候補が返ること
    2. ティア2以降の search が一度も呼ばれないこと
    """
    tier1 = FakeArtworkSource("one", [candidate("low", 0.3), candidate("exact", 1.0)])
    later = [FakeArtworkSource(f"t{i}", [candidate("x", 0.9)]) for i in range(2, 6)]

    best = await ArtworkResolver([tier1, *later]).resolve(QUERY)

    assert best.image_url == "exact"
    assert tier1.calls == 1
    assert all(source.calls == 0 for source in later)


@pytest.mark.asyncio
async def test_empty_and_failing_tiers_fall_through():
    """
    [ArtworkResolver] 空のティアと失敗したティアは次へ進む

    条件:
    1. ティア1は空、ティア2は TransportError
    2. ティア3がヒット

    期待値:
    1. ティア3の候補が返ること
    2. on_tier がティア順に呼ばれること
    """
    tiers = [
        FakeArtworkSource("one"),
        FakeArtworkSource("two", error=TransportError("boom")),
        FakeArtworkSource("three", [candidate("artist", 1.0, source="three")]),
        FakeArtworkSource("four", [candidate("never", 1.0)]),
    ]
    seen = []

    best = await ArtworkResolver(tiers).resolve(QUERY, on_tier=lambda i, name: seen.append((i, name)))

    assert best.source == "three"
    assert seen == [(0, "one"), (1, "two"), (2, "three")]
    assert tiers[3].calls == 0


@pytest.mark.asyncio
async def test_placeholder_tier_guarantees_success():
    """
    [ArtworkResolver] 全ティアが空でも終端ティアで必ず成功する

    期待値:
    信頼度 0.1 のプレースホルダー候補が返ること
    """
    settings = FetchSettings()
    tiers = [FakeArtworkSource(f"t{i}") for i in range(4)]
    tiers.append(PlaceholderSource(None, settings))

    best = await ArtworkResolver(tiers).resolve(
        SearchQuery(title="", artist="NONEXISTENT_ARTIST_999", album="FAKE_ALBUM_XYZ")
    )

    assert best.source == "Default Color"
    assert best.confidence == pytest.approx(0.1)
    assert best.image_url in settings.placeholder_urls


@pytest.mark.asyncio
async def test_without_terminal_tier_not_found():
    """
    [ArtworkResolver] 終端ティアを外した構成では NotFoundError
    """
    with pytest.raises(NotFoundError):
        await ArtworkResolver([FakeArtworkSource("one"), FakeArtworkSource("two")]).resolve(QUERY)

    with pytest.raises(ValueError):
        ArtworkResolver([])


def test_pick_best_tie_keeps_first():
    """
    [pick_best] 同率の場合は最初の候補
    """
    results = [candidate("a", 0.5), candidate("b", 0.9), candidate("c", 0.9)]
    assert pick_best(results).image_url == "b"


@pytest.mark.asyncio
async def test_lyrics_merge_resorted_regardless_of_completion():
    """
    [LyricsResolver] 完了順に関係なく信頼度降順にマージされる

    条件:
    信頼度の高い候補を持つソースの方が遅く完了する

    期待値:
    1. マージ結果が降順であること
    2. resolve は最高信頼度の候補を返すこと
    """
    fast = FakeLyricsSource("fast", [lyrics("fast", 0.5), lyrics("fast", 0.2)])
    slow = FakeLyricsSource("slow", [lyrics("slow", 0.9), lyrics("slow", 0.4)], delay=0.05)
    resolver = LyricsResolver([fast, slow])

    merged = await resolver.search_all(QUERY)
    assert [c.confidence for c in merged] == sorted((c.confidence for c in merged), reverse=True)
    assert [c.confidence for c in merged] == [0.9, 0.5, 0.4, 0.2]

    best = await resolver.resolve(QUERY)
    assert best.source == "slow"


@pytest.mark.asyncio
async def test_lyrics_transport_error_is_skipped():
    """
    [LyricsResolver] 一部ソースの通信エラーは無視される
    """
    resolver = LyricsResolver(
        [FakeLyricsSource("broken", error=TransportError("down")), FakeLyricsSource("ok", [lyrics("ok", 0.7)])]
    )
    best = await resolver.resolve(QUERY)
    assert best.source == "ok"


@pytest.mark.asyncio
async def test_lyrics_not_found_and_unexpected_errors():
    """
    [LyricsResolver] 全ソースが空/失敗なら NotFoundError、想定外の例外は伝播する
    """
    resolver = LyricsResolver([FakeLyricsSource("a"), FakeLyricsSource("b", error=TransportError("down"))])
    with pytest.raises(NotFoundError):
        await resolver.resolve(QUERY)

    resolver = LyricsResolver([FakeLyricsSource("bug", error=RuntimeError("bug"))])
    with pytest.raises(RuntimeError):
        await resolver.resolve(QUERY)
