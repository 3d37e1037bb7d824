from typing import Optional


class FetchError(Exception):
    """Base class for artwork/lyrics acquisition failures."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class NotFoundError(FetchError):
    """No source produced a candidate (lyrics only)."""


class InvalidAssetError(FetchError):
    """Downloaded bytes are not a decodable image or exceed the size ceiling."""


class TransportError(FetchError):
    """Network failure, timeout, non-2xx response or unparsable payload."""


class AlreadyInProgressError(FetchError):
    """An acquisition for the same item is already running."""


class StorageError(FetchError):
    """Writing an asset file or the index failed."""
