import io

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from tunefetch.config import FetchSettings
from tunefetch.main import create_app


def _jpeg(color) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (640, 640), color).save(buf, format="JPEG")
    return buf.getvalue()


class FakeNetwork:
    """
    外部API (iTunes / Last.fm / LrcLib / NetEase) と画像ホストを模倣する。
    テストごとに返すデータを書き換えて使う。
    """

    def __init__(self):
        self.itunes_albums = []
        self.itunes_artists = []
        self.lastfm_album = None
        self.lrclib = []
        self.netease_songs = []
        self.netease_lyrics = {}
        self.images = {}
        self.calls = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = request.url
        self.calls.append(str(url))

        if url.host == "itunes.apple.com":
            entity = url.params.get("entity")
            results = self.itunes_albums if entity == "album" else self.itunes_artists
            return httpx.Response(200, json={"results": results})
        if url.host == "ws.audioscrobbler.com":
            if self.lastfm_album is None:
                return httpx.Response(200, json={"error": 6, "message": "Album not found"})
            return httpx.Response(200, json={"album": self.lastfm_album})
        if url.host == "lrclib.net":
            return httpx.Response(200, json=self.lrclib)
        if url.host == "music.163.com":
            if url.path.endswith("/search/get/web"):
                return httpx.Response(200, json={"result": {"songs": self.netease_songs}})
            lyric = self.netease_lyrics.get(url.params.get("id"))
            return httpx.Response(200, json={"lrc": {"lyric": lyric}} if lyric else {})
        if url.host == "placehold.co":
            return httpx.Response(200, content=_jpeg((255, 107, 107)))

        key = f"{url.scheme}://{url.host}{url.path}"
        if key in self.images:
            return httpx.Response(200, content=self.images[key])
        return httpx.Response(404)


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def jpeg():
    return _jpeg


@pytest.fixture
def fetch_settings(tmp_path):
    return FetchSettings(
        data_dir=str(tmp_path / "data"),
        lyrics_dir=None,
        lastfm_api_key=None,
        pixabay_api_key=None,
        batch_delay=0.0,
    )


@pytest.fixture
def client(fetch_settings, network):
    app = create_app(fetch_settings, transport=httpx.MockTransport(network.handler))
    with TestClient(app) as c:
        yield c
