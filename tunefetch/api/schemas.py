from typing import List, Optional

from pydantic import BaseModel

from ..core.models import AssetMetadata, Item, LyricsDocument, StoredArtwork


class ItemModel(BaseModel):
    id: str
    title: str = ""
    artist: str = ""
    album: str = ""
    duration: float = 0.0
    file_name: Optional[str] = None

    def to_item(self) -> Item:
        return Item(
            id=self.id,
            title=self.title,
            artist=self.artist,
            album=self.album,
            duration=self.duration,
            file_name=self.file_name,
        )


class ArtworkModel(BaseModel):
    item_id: str
    file_name: str
    thumbnail_file_name: Optional[str] = None
    source: str
    original_url: Optional[str] = None
    confidence: Optional[float] = None
    created_at: float
    file_size: int
    width: Optional[int] = None
    height: Optional[int] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_metadata(cls, metadata: AssetMetadata) -> "ArtworkModel":
        width, height = metadata.dimensions or (None, None)
        return cls(
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

    @classmethod
    def from_handle(cls, handle: StoredArtwork) -> "ArtworkModel":
        return cls.from_metadata(handle.metadata)


class ArtworkStatsModel(BaseModel):
    count: int
    total_size: int
    average_size: float
    sources: dict
    recent: List[ArtworkModel]


class BatchRequest(BaseModel):
    items: List[ItemModel]


class LyricLineModel(BaseModel):
    timestamp: float
    text: str

    class Config:
        from_attributes = True


class LyricsModel(BaseModel):
    item_id: str
    source: str
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    confidence: Optional[float] = None
    lines: List[LyricLineModel]

    class Config:
        from_attributes = True

    @classmethod
    def from_document(cls, document: LyricsDocument) -> "LyricsModel":
        return cls.model_validate(document)


class CleanupRequest(BaseModel):
    live_item_ids: List[str]


class ProgressModel(BaseModel):
    kind: str
    item_id: str
    in_progress: bool
    fraction: float
    message: Optional[str] = None
    error: Optional[str] = None

    class Config:
        from_attributes = True
