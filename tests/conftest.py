import io

import pytest
import pytest_asyncio
from PIL import Image

from tunefetch.config import FetchSettings
from tunefetch.db.database import create_engine_for, create_session_factory, init_db


def _make_image(size=(300, 200), color=(200, 30, 30), fmt="PNG") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def make_image():
    """テスト用の画像バイト列を生成する関数"""
    return _make_image


@pytest.fixture
def settings(tmp_path):
    return FetchSettings(
        data_dir=str(tmp_path / "data"),
        lyrics_dir=str(tmp_path / "lyrics"),
        lastfm_api_key=None,
        pixabay_api_key=None,
        batch_delay=0.0,
    )


@pytest_asyncio.fixture
async def session_factory(settings):
    engine = create_engine_for(settings.database_path)
    await init_db(engine)
    yield create_session_factory(engine)
    await engine.dispose()
