import logging
import os
from typing import Dict, List, Optional

from pydantic import BaseModel, ValidationError, field_validator

logger = logging.getLogger(__name__)

# Data directory holds the index database plus the artwork/thumbnail folders
DATA_DIR = os.getenv("TUNEFETCH_DATA_DIR", "./data")

DEFAULT_PLACEHOLDER_URLS = [
    "https://placehold.co/600x600/FF6B6B/FFFFFF/png?text=%E2%99%AA",  # red
    "https://placehold.co/600x600/4ECDC4/FFFFFF/png?text=%E2%99%AB",  # teal
    "https://placehold.co/600x600/45B7D1/FFFFFF/png?text=%E2%99%AA",  # blue
    "https://placehold.co/600x600/96CEB4/FFFFFF/png?text=%E2%99%AB",  # green
    "https://placehold.co/600x600/FFEAA7/333333/png?text=%E2%99%AA",  # yellow
]


class FetchSettings(BaseModel):
    data_dir: str = DATA_DIR
    lyrics_dir: Optional[str] = os.getenv("TUNEFETCH_LYRICS_DIR")

    user_agent: str = "tunefetch/1.0 (music artwork and lyrics fetcher)"
    request_timeout: float = 30.0
    lyrics_timeout: float = 15.0

    # Asset cache
    max_image_bytes: int = 5 * 1024 * 1024
    thumbnail_size: int = 150
    image_quality: int = 80
    thumbnail_quality: int = 60

    # Catalog URLs expose "100x100" thumbnails; swap the token for a larger variant
    artwork_size_token: str = "100x100"
    artwork_upgrade_token: str = "600x600"

    # Confidence weights (empirical)
    artist_weight: float = 0.4
    album_weight: float = 0.6
    lyrics_title_weight: float = 0.6
    lyrics_artist_weight: float = 0.4

    secondary_confidence: float = 0.8
    themed_confidence: float = 0.6
    placeholder_confidence: float = 0.1
    placeholder_urls: List[str] = DEFAULT_PLACEHOLDER_URLS

    lastfm_api_key: Optional[str] = os.getenv("TUNEFETCH_LASTFM_API_KEY")
    pixabay_api_key: Optional[str] = os.getenv("TUNEFETCH_PIXABAY_API_KEY")

    # Batch acquisition
    batch_delay: float = 0.5
    batch_concurrency: int = 1

    @field_validator("placeholder_urls")
    @classmethod
    def _require_placeholders(cls, value: List[str]) -> List[str]:
        # The terminal tier must always have something to offer
        if not value:
            raise ValueError("at least one placeholder URL is required")
        return value

    @property
    def database_path(self) -> str:
        return os.path.join(self.data_dir, "tunefetch_index.db")

    @property
    def artwork_dir(self) -> str:
        return os.path.join(self.data_dir, "artworks")

    @property
    def thumbnail_dir(self) -> str:
        return os.path.join(self.data_dir, "thumbnails")


# Keys that may be changed through the settings table at runtime.
# data_dir is fixed for the lifetime of the process.
EDITABLE_KEYS = [k for k in FetchSettings.model_fields if k != "data_dir"]

# An empty string clears these
OPTIONAL_KEYS = ["lyrics_dir", "lastfm_api_key", "pixabay_api_key"]


def apply_overrides(base: FetchSettings, overrides: Dict[str, str]) -> FetchSettings:
    """
    Merge string key/value rows from the settings table into `base`.
    Unknown keys are ignored with a warning; invalid values raise ValidationError.
    """
    values = base.model_dump()
    for key, value in overrides.items():
        if key not in EDITABLE_KEYS:
            logger.warning(f"Ignoring unknown setting: {key}")
            continue
        if key == "placeholder_urls":
            values[key] = [u.strip() for u in value.split(",") if u.strip()]
        elif value == "" and key in OPTIONAL_KEYS:
            values[key] = None
        else:
            values[key] = value
    return FetchSettings.model_validate(values)


def validate_override(key: str, value: str) -> Optional[str]:
    """Returns an error message if the key/value pair cannot be applied."""
    if key not in EDITABLE_KEYS:
        return f"Unknown setting: {key}"
    try:
        apply_overrides(FetchSettings(), {key: value})
    except ValidationError as e:
        return str(e.errors()[0].get("msg", "invalid value"))
    return None
