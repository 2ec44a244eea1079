"""
In-memory stand-ins for a WebDAV server, used across the scan tests.
"""
from __future__ import annotations

import asyncio
import posixpath

from davmedia_backend.adapters.webdav import WebDavItem
from davmedia_backend.shared import WebDavAuthError, WebDavError


class FakeWebDav:
    """
    `tree` maps a directory path to its children; child names ending in "/"
    are directories.
    """

    def __init__(self, tree, *, failing=(), auth_failing=(), gate=None, on_list=None):
        self.tree = {k: list(v) for k, v in tree.items()}
        self.failing = set(failing)
        self.auth_failing = set(auth_failing)
        self.gate = gate
        self.on_list = on_list
        self.calls = []

    async def list_directory(self, path):
        self.calls.append(path)
        if self.on_list is not None:
            self.on_list(path)
        if self.gate is not None:
            await self.gate.wait()
        if path in self.auth_failing:
            raise WebDavAuthError(f"Access denied (401) for {path}", status=401, path=path)
        if path in self.failing:
            raise WebDavError(f"Unexpected status 500 for {path}", status=500, path=path)
        if path not in self.tree:
            raise WebDavError(f"Not found: {path}", status=404, path=path)
        items = []
        for child in self.tree[path]:
            is_dir = child.endswith("/")
            name = child.rstrip("/")
            items.append(
                WebDavItem(
                    path=posixpath.join(path, name),
                    name=name,
                    type="directory" if is_dir else "file",
                    size=0 if is_dir else 100,
                    last_modified="Mon, 01 Jan 2024 00:00:00 GMT",
                )
            )
        return items


class FakeClientFactory:
    """Hands out the same fake for every credential triple."""

    def __init__(self, client):
        self.client = client
        self.requested = []

    def get(self, url, username, password):
        self.requested.append((url, username, password))
        return self.client

    async def aclose(self):
        return None


class FakeClock:
    def __init__(self, start=1_000_000.0):
        self.now = float(start)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += float(seconds)


def flat_tree(count, *, images=True):
    """Root directory holding `count` media files and nothing else."""
    ext = "jpg" if images else "mp4"
    return {"/": [f"f{i}.{ext}" for i in range(count)]}


async def wait_until(predicate, *, attempts=200, interval=0.01):
    for _ in range(attempts):
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()
