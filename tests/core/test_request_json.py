import pytest

from davmedia_backend.routes.core import request_json as rq


class _DummyContent:
    def __init__(self, chunks, exc=None):
        self._chunks = chunks
        self._exc = exc

    async def iter_chunked(self, _size):
        if self._exc is not None:
            raise self._exc
        for chunk in self._chunks:
            yield chunk


class _DummyRequest:
    def __init__(self, headers=None, chunks=None, exc=None):
        self.headers = headers or {}
        self.content = _DummyContent(chunks or [], exc=exc)


async def _read(chunks, **kwargs):
    return await rq._read_json(_DummyRequest(chunks=chunks), **kwargs)


@pytest.mark.asyncio
async def test_read_json_joins_chunks() -> None:
    req = _DummyRequest(
        headers={"Content-Type": "application/json", "Content-Length": "9"},
        chunks=[b'{"k":', b'"v"}'],
    )
    out = await rq._read_json(req, max_bytes=2048)
    assert out.ok
    assert out.data == {"k": "v"}


@pytest.mark.asyncio
async def test_empty_body_is_empty_object() -> None:
    assert (await _read([])).data == {}


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"\xff", b"{", b"[]"])
async def test_bad_bodies_are_invalid_json(body) -> None:
    assert (await _read([body])).code == "INVALID_JSON"


@pytest.mark.asyncio
async def test_declared_length_over_limit_is_rejected_before_reading() -> None:
    req = _DummyRequest(headers={"Content-Length": "5000"}, exc=AssertionError("body must not be read"))

    out = await rq._read_json(req, max_bytes=rq.MIN_JSON_BYTES)

    assert out.code == "INVALID_INPUT"
    assert out.meta == {"limit": rq.MIN_JSON_BYTES, "size": 5000}


@pytest.mark.asyncio
async def test_read_json_rejects_stream_over_limit_despite_small_header() -> None:
    req = _DummyRequest(
        headers={"Content-Type": "application/json", "Content-Length": "2"},
        chunks=[b"{", b'"k":"', b"x" * 2048, b'"}'],
    )
    out = await rq._read_json(req, max_bytes=rq.MIN_JSON_BYTES)
    assert out.ok is False
    assert out.code == "INVALID_INPUT"


@pytest.mark.asyncio
async def test_unreadable_body_and_bad_length_header() -> None:
    broken = await rq._read_json(_DummyRequest(exc=RuntimeError("boom")))
    odd_header = await rq._read_json(_DummyRequest(headers={"Content-Length": "nan"}, chunks=[b"{}"]))

    assert broken.code == "INVALID_JSON"
    assert odd_header.data == {}


def test_default_limit_comes_from_config() -> None:
    from davmedia_backend import config

    assert config.MAX_JSON_BYTES >= rq.MIN_JSON_BYTES
