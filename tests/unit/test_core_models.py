import pytest

from tunefetch.core.models import NO_ARTWORK, Artwork, AssetMetadata, CandidateResult, Item, StoredArtwork

# Unit Test: Core data model
# 目的: アイテムのアートワーク状態とスコアのクランプを検証する。


def test_item_artwork_state():
    """
    [Item] アートワーク参照とお気に入りフラグ

    期待値:
    1. 初期状態は NO_ARTWORK (偽)
    2. with_artwork / with_favorite は新しいインスタンスを返し、元は不変
    """
    item = Item(id="song-1", title="t", artist="a", album="b")
    assert item.artwork is NO_ARTWORK
    assert not item.artwork

    handle = StoredArtwork(
        item_id="song-1",
        path="/data/artworks/x.jpg",
        thumbnail_path=None,
        metadata=AssetMetadata(item_id="song-1", file_name="x.jpg", source="iTunes", created_at=0.0, file_size=1),
    )
    updated = item.with_artwork(handle).with_favorite(True)

    assert isinstance(updated.artwork, Artwork)
    assert updated.artwork.handle.path == "/data/artworks/x.jpg"
    assert updated.is_favorite
    assert not item.artwork
    assert not item.is_favorite


@pytest.mark.parametrize("raw,expected", [(1.3, 1.0), (-0.2, 0.0), (0.42, 0.42)])
def test_candidate_confidence_clamped(raw, expected):
    """
    [CandidateResult] 信頼度は [0, 1] にクランプされる
    """
    assert CandidateResult(image_url="u", source="s", confidence=raw).confidence == pytest.approx(expected)
