import asyncio

import pytest

from davmedia_backend.features.scan.tasks import ScanTaskRegistry

from ..webdav_fakes import FakeClock

URL = "https://dav.example.com"


def _registry(clock: FakeClock | None = None, **kwargs) -> ScanTaskRegistry:
    return ScanTaskRegistry(
        completed_ttl=300,
        failed_ttl=60,
        stale_age=1800,
        sweep_interval=600,
        clock=clock or FakeClock(),
        **kwargs,
    )


def test_same_key_while_running_returns_same_id() -> None:
    reg = _registry()

    first = reg.start_task(URL, "alice", ["/b", "/a"])
    second = reg.start_task(URL + "/", "alice", ["/a/", "/b"])

    assert first == second
    assert reg.is_task_running(URL, "alice", ["/a", "/b"])


def test_try_start_reports_join() -> None:
    reg = _registry()

    task_id, started = reg.try_start_task(URL, "alice", ["/a"])
    joined_id, joined_started = reg.try_start_task(URL, "alice", ["/a"])

    assert started is True
    assert joined_started is False
    assert joined_id == task_id


def test_different_accounts_get_different_tasks() -> None:
    reg = _registry()

    assert reg.start_task(URL, "alice", ["/a"]) != reg.start_task(URL, "bob", ["/a"])


def test_new_id_after_completion() -> None:
    reg = _registry()
    first = reg.start_task(URL, "alice", ["/a"])
    assert reg.complete_task(first) is True

    second = reg.start_task(URL, "alice", ["/a"])

    assert second != first
    assert reg.get_task(first).status == "completed"


def test_running_multi_path_task_covers_single_path() -> None:
    reg = _registry()
    multi = reg.start_task(URL, "alice", ["/a", "/b"])

    running = reg.get_running_task(URL, "alice", ["/a"])

    assert running is not None
    assert running.task_id == multi
    assert reg.start_task(URL, "alice", ["/b"]) == multi


def test_get_running_task_returns_a_copy() -> None:
    reg = _registry()
    task_id = reg.start_task(URL, "alice", ["/a"])

    copy = reg.get_running_task(URL, "alice", ["/a"])
    copy.status = "failed"

    assert reg.get_task(task_id).status == "running"


def test_completed_task_expires_after_ttl() -> None:
    clock = FakeClock()
    reg = _registry(clock)
    task_id = reg.start_task(URL, "alice", ["/a"])
    reg.complete_task(task_id)

    clock.advance(299)
    assert reg.get_task(task_id) is not None
    clock.advance(2)
    assert reg.get_task(task_id) is None


def test_failed_task_expires_after_ttl_and_keeps_error() -> None:
    clock = FakeClock()
    reg = _registry(clock)
    task_id = reg.start_task(URL, "alice", ["/a"])
    reg.fail_task(task_id, "server unreachable")

    record = reg.get_task(task_id)
    assert record.status == "failed"
    assert record.error_message == "server unreachable"
    assert reg.is_task_running(URL, "alice", ["/a"]) is False

    clock.advance(61)
    assert reg.get_task(task_id) is None


def test_sweep_removes_stale_running_task() -> None:
    clock = FakeClock()
    reg = _registry(clock)
    task_id = reg.start_task(URL, "alice", ["/a"])

    clock.advance(1801)

    assert reg.cleanup_expired_tasks() == 1
    assert reg.get_task(task_id) is None
    assert reg.start_task(URL, "alice", ["/a"]) != task_id


def test_finishing_unknown_task_is_a_noop() -> None:
    reg = _registry()

    assert reg.complete_task("scan-missing") is False
    assert reg.fail_task("scan-missing", "x") is False


def test_paths_being_scanned_are_filtered() -> None:
    reg = _registry()
    reg.start_task(URL, "alice", ["/a", "/b"])

    assert reg.is_path_being_scanned(URL, "alice", "/a")
    assert not reg.is_path_being_scanned(URL, "alice", "/c")
    assert not reg.is_path_being_scanned(URL, "bob", "/a")
    assert reg.get_paths_to_scan(URL, "alice", ["/c", "/a", "/d", "/b"]) == ["/c", "/d"]


def test_list_tasks_newest_first() -> None:
    clock = FakeClock()
    reg = _registry(clock)
    older = reg.start_task(URL, "alice", ["/a"])
    clock.advance(1)
    newer = reg.start_task(URL, "alice", ["/b"])

    assert [t.task_id for t in reg.list_tasks()] == [newer, older]


@pytest.mark.asyncio
async def test_sweeper_runs_periodically() -> None:
    clock = FakeClock()
    reg = ScanTaskRegistry(completed_ttl=0, failed_ttl=0, stale_age=1800, sweep_interval=0.01, clock=clock)
    task_id = reg.start_task(URL, "alice", ["/a"])
    clock.advance(1801)

    reg.start_sweeper()
    try:
        for _ in range(50):
            await asyncio.sleep(0.01)
            if not reg._tasks:
                break
    finally:
        await reg.stop_sweeper()

    assert task_id not in reg._tasks
