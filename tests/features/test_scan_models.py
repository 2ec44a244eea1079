import pytest

from davmedia_backend.features.scan.models import (
    CacheEntry,
    MediaFileEntry,
    ScanOutcome,
    ScanProgress,
    ScanResult,
    ScanSettings,
    normalize_target,
)
from davmedia_backend.shared import classify_file, is_media_file


@pytest.mark.parametrize(
    ("name", "kind"),
    [
        ("photo.jpg", "image"),
        ("PHOTO.JPEG", "image"),
        ("scan.TiFf", "image"),
        ("clip.mp4", "video"),
        ("clip.M2TS", "video"),
        ("/deep/path/movie.mkv", "video"),
        ("notes.txt", "none"),
        ("archive.jpg.zip", "none"),
        ("noextension", "none"),
        (".jpg", "none"),
        ("", "none"),
    ],
)
def test_classify_file(name: str, kind: str) -> None:
    assert classify_file(name) == kind
    assert is_media_file(name) is (kind != "none")


def test_settings_accept_camel_and_snake_case() -> None:
    camel = ScanSettings.from_payload({"batchSize": 5, "maxDepth": 2, "maxFiles": 50, "timeoutMs": 1000})
    snake = ScanSettings.from_payload({"batch_size": 5, "max_depth": 2, "max_files": 50, "timeout_ms": 1000})

    assert camel == snake == ScanSettings(batch_size=5, max_depth=2, max_files=50, timeout_ms=1000)


def test_settings_fill_defaults_and_clamp() -> None:
    settings = ScanSettings.from_payload({"batchSize": 10_000, "maxDepth": -3, "maxFiles": "oops"})

    assert settings.batch_size == 100
    assert settings.max_depth == 0
    assert settings.max_files == ScanSettings().max_files
    assert settings.timeout_ms == ScanSettings().timeout_ms
    assert ScanSettings.from_payload(None) == ScanSettings()


def test_settings_split_across_paths() -> None:
    settings = ScanSettings(batch_size=10, max_depth=4, max_files=1000, timeout_ms=90_000)

    split = settings.split_across(3)

    assert split.max_files == 333
    assert split.timeout_ms == 30_000
    assert split.batch_size == 10
    assert split.max_depth == 4
    assert settings.split_across(0) == settings


@pytest.mark.parametrize(
    ("scanned", "total", "pct"),
    [(0, 0, 0), (1, 3, 33), (2, 3, 67), (3, 3, 100), (5, 4, 100), (0, 10, 0)],
)
def test_compute_percentage(scanned: int, total: int, pct: int) -> None:
    assert ScanProgress.compute_percentage(scanned, total) == pct


def test_result_counts_derive_from_files() -> None:
    files = [
        MediaFileEntry("/a/1.jpg", "1.jpg", 1, "image"),
        MediaFileEntry("/a/2.webm", "2.webm", 2, "video"),
        MediaFileEntry("/a/3.png", "3.png", 3, "image"),
    ]

    result = ScanResult.from_files("/a", files, scan_duration_ms=7, truncated_by="timeout")

    assert (result.total_files, result.image_count, result.video_count) == (3, 2, 1)
    assert result.truncated is True
    assert result.summary()["truncated_by"] == "timeout"


def test_file_entry_restores_from_stored_dict() -> None:
    entry = MediaFileEntry.from_dict({"filename": "/x/clip.MOV", "size": "12"})

    assert entry.base_name == "clip.MOV"
    assert entry.kind == "video"
    assert entry.size_bytes == 12


def test_normalize_target_strips_slashes() -> None:
    assert normalize_target("https://dav.example.com/", "alice", "photos/") == (
        "https://dav.example.com",
        "alice",
        "/photos",
    )


def test_outcome_and_cache_entry_dicts() -> None:
    result = ScanResult.from_files("/a", [], scan_duration_ms=0)
    entry = CacheEntry("https://dav", "alice", "/a", result, last_scan=0.0)

    outcome = ScanOutcome(status="cached", result=result, last_scan=0.0).to_dict()

    assert outcome["from_cache"] is True
    assert outcome["task_running"] is False
    assert outcome["result"]["total_files"] == 0
    assert entry.summary()["lastScan"] == outcome["last_scan"]
