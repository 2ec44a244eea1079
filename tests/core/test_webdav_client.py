import asyncio

import aiohttp
import pytest
from aiowebdav2.client import Client
from aiowebdav2.exceptions import RemoteResourceNotFoundError, UnauthorizedError

from davmedia_backend.adapters.webdav import WebDavClient, WebDavClientFactory
from davmedia_backend.shared import WebDavAuthError, WebDavError, WebDavNotFoundError

PAYLOAD = b"0123456789"


def _bare(exc_type):
    """Instance of a library exception without running its constructor."""
    return exc_type.__new__(exc_type)


class FakeDav:
    """Stands in for the aiowebdav2 client."""

    def __init__(self, listings=None, *, error=None, chunk=4):
        self.listings = listings or {}
        self.error = error
        self.chunk = chunk
        self.listed = []

    async def list_with_infos(self, path):
        self.listed.append(path)
        if self.error is not None:
            raise self.error
        return self.listings[path]

    async def download_iter(self, path):
        if self.error is not None:
            raise self.error

        async def _chunks():
            for i in range(0, len(PAYLOAD), self.chunk):
                yield PAYLOAD[i: i + self.chunk]

        return _chunks()


LISTING = {
    "/media": [
        {"path": "/dav/media/", "name": None, "isdir": True, "size": None, "modified": None},
        {"path": "/dav/media/clip.mp4", "name": "clip.mp4", "isdir": False, "size": "10", "modified": None},
        {"path": "/dav/media/raw/", "name": "raw", "isdir": True, "size": None, "modified": None},
    ]
}


@pytest.mark.asyncio
async def test_list_directory_maps_children() -> None:
    dav = FakeDav(LISTING)
    client = WebDavClient("https://dav.example.com/dav/", "alice", "secret", dav=dav)

    items = await client.list_directory("media/")

    assert dav.listed == ["/media"]
    assert [(i.path, i.type, i.size) for i in items] == [("/media/clip.mp4", "file", 10), ("/media/raw", "directory", 0)]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "expected", "status"),
    [
        (_bare(UnauthorizedError), WebDavAuthError, 401),
        (_bare(RemoteResourceNotFoundError), WebDavNotFoundError, 404),
        (aiohttp.ClientResponseError(None, (), status=403), WebDavAuthError, 403),
        (aiohttp.ClientConnectionError("refused"), WebDavError, None),
        (asyncio.TimeoutError(), WebDavError, None),
    ],
)
async def test_library_errors_are_translated(error, expected, status) -> None:
    client = WebDavClient("https://dav.example.com", "alice", "secret", dav=FakeDav(error=error))

    with pytest.raises(expected) as excinfo:
        await client.list_directory("/media")

    assert excinfo.value.status == status
    assert excinfo.value.path == "/media"


@pytest.mark.asyncio
async def test_read_stream_supports_ranges() -> None:
    client = WebDavClient("https://dav.example.com", "alice", "secret", dav=FakeDav())

    whole = b"".join([c async for c in client.open_read_stream("/media/clip.mp4")])
    part = b"".join([c async for c in client.open_read_stream("/media/clip.mp4", start=2, end=5)])
    tail = b"".join([c async for c in client.open_read_stream("/media/clip.mp4", start=7)])

    assert whole == PAYLOAD
    assert part == b"2345"
    assert tail == b"789"


@pytest.mark.asyncio
async def test_read_stream_translates_errors() -> None:
    client = WebDavClient("https://dav.example.com", "alice", "secret", dav=FakeDav(error=_bare(RemoteResourceNotFoundError)))

    with pytest.raises(WebDavNotFoundError):
        async for _chunk in client.open_read_stream("/missing.mp4"):
            pass


@pytest.mark.asyncio
async def test_default_client_uses_library_and_closes_session() -> None:
    client = WebDavClient("https://dav.example.com/dav", "alice", "secret")

    dav = client._get_dav()
    session = client._session
    await client.aclose()

    assert isinstance(dav, Client)
    assert session.closed
    assert client._dav is None


@pytest.mark.asyncio
async def test_factory_caches_clients_per_credentials() -> None:
    factory = WebDavClientFactory()

    first = factory.get("https://dav.example.com/", "alice", "a")
    again = factory.get("https://dav.example.com", "alice", "a")
    other = factory.get("https://dav.example.com", "alice", "b")
    await factory.aclose()

    assert first is again
    assert first is not other
