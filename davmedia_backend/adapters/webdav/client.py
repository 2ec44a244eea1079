"""
WebDAV client built on aiowebdav2.

The scanner needs two capabilities: a one-level directory listing and a
streaming read. Failures are raised as `WebDavError` subclasses, never
returned as empty listings; swallowing per-directory errors is the walker's
decision.
"""
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any, Optional
from urllib.parse import urlsplit

import aiohttp
from aiowebdav2.client import Client, ClientOptions
from aiowebdav2.exceptions import RemoteResourceNotFoundError, UnauthorizedError
from aiowebdav2.exceptions import WebDavError as DavProtocolError

from ...config import WEBDAV_REQUEST_TIMEOUT
from ...shared import WebDavAuthError, WebDavError, WebDavNotFoundError, get_logger
from .items import WebDavItem, item_from_info, normalize_remote_path

logger = get_logger(__name__)


def _translate(exc: BaseException, action: str, path: str) -> WebDavError:
    """Map an aiowebdav2 / aiohttp failure onto our exception hierarchy."""
    if isinstance(exc, aiohttp.ClientResponseError):
        status: Optional[int] = exc.status
    else:
        code = getattr(exc, "code", None)
        status = code if isinstance(code, int) else None
    if isinstance(exc, UnauthorizedError) or status in (401, 403):
        return WebDavAuthError(f"Access denied ({status or 401}) for {path}", status=status or 401, path=path)
    if isinstance(exc, RemoteResourceNotFoundError) or status == 404:
        return WebDavNotFoundError(f"Not found: {path}", status=404, path=path)
    if isinstance(exc, DavProtocolError):
        return WebDavError(f"{action} failed for {path}: {type(exc).__name__}", status=status, path=path)
    return WebDavError(f"{action} failed for {path}: {exc}", status=status, path=path)


class WebDavClient:
    """
    Async WebDAV client bound to one server + credentials.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        *,
        timeout: float = WEBDAV_REQUEST_TIMEOUT,
        dav: Optional[Any] = None,
    ) -> None:
        self.base_url = str(base_url or "").rstrip("/")
        self.username = username
        self._password = password
        self._timeout = aiohttp.ClientTimeout(total=float(timeout))
        self._base_path = urlsplit(self.base_url).path or "/"
        self._dav = dav
        self._owns_dav = dav is None
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_dav(self) -> Any:
        if self._dav is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._dav = Client(
                url=self.base_url,
                username=self.username or "",
                password=self._password or "",
                options=ClientOptions(session=self._session),
            )
        return self._dav

    async def list_directory(self, path: str) -> list[WebDavItem]:
        """List the immediate children of `path`."""
        remote = normalize_remote_path(path)
        dav = self._get_dav()
        try:
            infos = await dav.list_with_infos(remote)
        except (DavProtocolError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise _translate(exc, "Listing", remote) from exc

        items: list[WebDavItem] = []
        for info in infos or []:
            item = item_from_info(info, base_path=self._base_path, parent=remote)
            if item is not None:
                items.append(item)
        return items

    async def open_read_stream(
        self,
        path: str,
        *,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> AsyncIterator[bytes]:
        """
        Stream the bytes of a remote file, optionally only `start`..`end` (inclusive).
        """
        remote = normalize_remote_path(path)
        first = max(0, int(start or 0))
        last = None if end is None else int(end)
        offset = 0
        dav = self._get_dav()
        try:
            chunks = await dav.download_iter(remote)
            async for chunk in chunks:
                lo, hi = offset, offset + len(chunk)
                offset = hi
                if hi <= first:
                    continue
                piece = chunk[max(0, first - lo):]
                if last is not None and hi > last + 1:
                    piece = piece[: max(0, last + 1 - max(lo, first))]
                if piece:
                    yield piece
                if last is not None and offset > last:
                    break
        except (DavProtocolError, aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise _translate(exc, "Read", remote) from exc

    async def aclose(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        if self._owns_dav:
            self._dav = None


class WebDavClientFactory:
    """
    Hands out one cached client per (url, username, password).
    """

    def __init__(self, *, timeout: float = WEBDAV_REQUEST_TIMEOUT) -> None:
        self._timeout = timeout
        self._clients: dict[tuple[str, str, str], WebDavClient] = {}

    def get(self, url: str, username: str, password: str) -> WebDavClient:
        key = (str(url or "").rstrip("/"), str(username or ""), str(password or ""))
        client = self._clients.get(key)
        if client is None:
            client = WebDavClient(key[0], key[1], key[2], timeout=self._timeout)
            self._clients[key] = client
            logger.debug("Created WebDAV client for %s (user=%s)", key[0], key[1])
        return client

    async def aclose(self) -> None:
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            try:
                await client.aclose()
            except Exception as exc:
                logger.debug("Error closing WebDAV client: %s", exc)
