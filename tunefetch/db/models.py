from datetime import datetime

from sqlalchemy import Column, Float, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String, primary_key=True, index=True)
    value = Column(String)


class ArtworkRecord(Base):
    __tablename__ = "artworks"

    # One record per item; a new download replaces the previous row
    item_id = Column(String, primary_key=True, index=True)
    file_name = Column(String, nullable=False)
    thumbnail_file_name = Column(String, nullable=True)

    # Which tier produced the image ("iTunes", "Last.fm", "Default Color", ...)
    source = Column(String, nullable=False)
    original_url = Column(String, nullable=True)
    confidence = Column(Float, nullable=True)

    created_at = Column(Float, default=lambda: datetime.now().timestamp())
    file_size = Column(Integer, nullable=False)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)


class LyricsRecord(Base):
    __tablename__ = "lyrics"

    item_id = Column(String, primary_key=True, index=True)
    title = Column(String)
    artist = Column(String)
    album = Column(String)
    source = Column(String, nullable=False)
    confidence = Column(Float, nullable=True)
    # Stored as rendered LRC text
    content = Column(Text, nullable=False)
    created_at = Column(Float, default=lambda: datetime.now().timestamp())
