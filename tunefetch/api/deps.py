from fastapi import HTTPException, Request

from ..core.errors import (
    AlreadyInProgressError,
    FetchError,
    InvalidAssetError,
    NotFoundError,
    StorageError,
    TransportError,
)
from ..core.service import MediaService, ServiceRuntime

# Checked in order; subclasses before FetchError
ERROR_STATUS = [
    (NotFoundError, 404),
    (AlreadyInProgressError, 409),
    (InvalidAssetError, 422),
    (TransportError, 502),
    (StorageError, 500),
    (FetchError, 500),
]


def get_runtime(request: Request) -> ServiceRuntime:
    return request.app.state.runtime


def get_service(request: Request) -> MediaService:
    return request.app.state.runtime.service


async def get_db(request: Request):
    async with get_service(request).session_factory() as session:
        yield session


def to_http_error(error: FetchError) -> HTTPException:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return HTTPException(status_code=status, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
