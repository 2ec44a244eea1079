import asyncio

import pytest

from davmedia_backend.features.scan.cache import ScanCache
from davmedia_backend.features.scan.models import MediaFileEntry, ScanResult
from davmedia_backend.shared import ScanCacheError

from ..webdav_fakes import FakeClock

URL = "https://dav.example.com/remote.php/dav"


def _result(root: str, names: list[str], **kwargs) -> ScanResult:
    files = [
        MediaFileEntry(
            full_path=f"{root.rstrip('/')}/{name}",
            base_name=name,
            size_bytes=10 * (i + 1),
            kind="video" if name.endswith(".mp4") else "image",
            last_modified="Tue, 02 Jan 2024 10:00:00 GMT",
        )
        for i, name in enumerate(names)
    ]
    return ScanResult.from_files(root, files, scan_duration_ms=42, **kwargs)


@pytest.mark.asyncio
async def test_get_returns_none_when_missing(db) -> None:
    cache = ScanCache(db)
    assert await cache.get(URL, "alice", "/photos") is None


@pytest.mark.asyncio
async def test_save_then_get_returns_same_files(db) -> None:
    cache = ScanCache(db)
    saved = _result("/photos", ["a.jpg", "b.mp4", "c.png"])

    entry = await cache.save(URL, "alice", "/photos", saved, {"maxDepth": 3})
    loaded = await cache.get(URL, "alice", "/photos")

    assert loaded is not None
    assert loaded.result.files == saved.files
    assert loaded.result.total_files == 3
    assert loaded.result.image_count == 2
    assert loaded.result.video_count == 1
    assert loaded.settings == {"maxDepth": 3}
    assert loaded.last_scan == entry.last_scan


@pytest.mark.asyncio
async def test_key_normalizes_trailing_slashes(db) -> None:
    cache = ScanCache(db)
    await cache.save(URL + "/", "alice", "/photos/", _result("/photos", ["a.jpg"]))

    assert await cache.get(URL, "alice", "/photos") is not None


@pytest.mark.asyncio
async def test_save_replaces_previous_entry(db) -> None:
    cache = ScanCache(db)
    await cache.save(URL, "alice", "/photos", _result("/photos", ["a.jpg", "b.jpg"]))
    await cache.save(URL, "alice", "/photos", _result("/photos", ["c.jpg"]))

    loaded = await cache.get(URL, "alice", "/photos")
    assert [f.base_name for f in loaded.result.files] == ["c.jpg"]
    assert len(await cache.list_by_server(URL, "alice")) == 1


@pytest.mark.asyncio
async def test_truncation_fields_survive_storage(db) -> None:
    cache = ScanCache(db)
    await cache.save(
        URL, "alice", "/big", _result("/big", ["a.jpg"], truncated_by="max_files", failed_directories=2)
    )

    loaded = await cache.get(URL, "alice", "/big")
    assert loaded.result.truncated is True
    assert loaded.result.truncated_by == "max_files"
    assert loaded.result.failed_directories == 2


@pytest.mark.asyncio
async def test_list_by_server_is_scoped_to_account(db) -> None:
    cache = ScanCache(db)
    await cache.save(URL, "alice", "/a", _result("/a", ["1.jpg"]))
    await cache.save(URL, "alice", "/b", _result("/b", ["2.jpg", "3.jpg"]))
    await cache.save(URL, "bob", "/a", _result("/a", ["4.jpg"]))

    entries = await cache.list_by_server(URL, "alice")

    assert sorted(e.path for e in entries) == ["/a", "/b"]
    assert all(e.result.files == () for e in entries)
    with_files = await cache.list_by_server(URL, "alice", include_files=True)
    assert sum(len(e.result.files) for e in with_files) == 3


@pytest.mark.asyncio
async def test_delete_reports_whether_entry_existed(db) -> None:
    cache = ScanCache(db)
    await cache.save(URL, "alice", "/a", _result("/a", ["1.jpg"]))

    assert await cache.delete(URL, "alice", "/a") is True
    assert await cache.delete(URL, "alice", "/a") is False
    assert await cache.get(URL, "alice", "/a") is None


@pytest.mark.asyncio
async def test_cleanup_removes_only_old_entries(db) -> None:
    clock = FakeClock()
    cache = ScanCache(db, clock=clock)
    await cache.save(URL, "alice", "/old", _result("/old", ["1.jpg"]))
    clock.advance(8 * 86400)
    await cache.save(URL, "alice", "/new", _result("/new", ["2.jpg"]))

    removed = await cache.cleanup(max_age_days=7)

    assert removed == 1
    assert [e.path for e in await cache.list_all()] == ["/new"]


@pytest.mark.asyncio
async def test_storage_failure_raises_scan_cache_error(db) -> None:
    cache = ScanCache(db)
    await db.aexecute("DROP TABLE scan_cache")

    with pytest.raises(ScanCacheError):
        await cache.get(URL, "alice", "/a")


@pytest.mark.asyncio
async def test_concurrent_saves_leave_one_whole_entry(db) -> None:
    cache = ScanCache(db)
    first = _result("/photos", ["a.jpg", "b.jpg", "c.jpg"])
    second = _result("/photos", ["x.mp4", "y.mp4"])

    await asyncio.gather(
        cache.save(URL, "alice", "/photos", first),
        cache.save(URL, "alice", "/photos/", second),
    )

    loaded = await cache.get(URL, "alice", "/photos")
    names = [f.base_name for f in loaded.result.files]
    assert names in (["a.jpg", "b.jpg", "c.jpg"], ["x.mp4", "y.mp4"])
    assert loaded.result.total_files == len(names)
    assert len(await cache.list_by_server(URL, "alice")) == 1


@pytest.mark.asyncio
async def test_key_locks_are_released_after_use(db) -> None:
    cache = ScanCache(db)

    await asyncio.gather(*(cache.save(URL, "alice", f"/p{i}", _result(f"/p{i}", ["a.jpg"])) for i in range(5)))
    await cache.delete(URL, "alice", "/p0")

    assert cache._key_locks == {}
