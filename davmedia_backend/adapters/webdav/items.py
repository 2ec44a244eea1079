"""
Listing items and remote path helpers.
"""
from __future__ import annotations

import posixpath
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal, Optional
from urllib.parse import urlsplit

from ...utils import parse_bool

ItemType = Literal["file", "directory"]


@dataclass(frozen=True)
class WebDavItem:
    """One child entry of a directory listing."""

    path: str
    name: str
    type: ItemType
    size: int = 0
    last_modified: Optional[str] = None

    @property
    def is_dir(self) -> bool:
        return self.type == "directory"


def normalize_remote_path(path: str) -> str:
    """Return an absolute, slash-normalized remote path without a trailing slash (except root)."""
    raw = str(path or "/").replace("\\", "/").strip()
    if not raw.startswith("/"):
        raw = "/" + raw
    norm = posixpath.normpath(raw)
    # posixpath keeps a leading '//' as-is
    if norm.startswith("//"):
        norm = "/" + norm.lstrip("/")
    return norm


def strip_base_path(path: str, base_path: str) -> str:
    """Map a server-absolute path to one relative to the WebDAV root."""
    raw = urlsplit(path).path if "://" in path else path
    norm = normalize_remote_path(raw)
    base = normalize_remote_path(base_path)
    if base != "/":
        if norm == base:
            return "/"
        if norm.startswith(base + "/"):
            return norm[len(base):]
    return norm


def item_from_info(info: Mapping[str, Any], *, base_path: str, parent: str) -> Optional[WebDavItem]:
    """
    Build a `WebDavItem` from one `list_with_infos` entry.

    Returns None for the entry describing `parent` itself.
    """
    raw_path = info.get("path") or ""
    if raw_path:
        path = strip_base_path(str(raw_path), base_path)
    elif info.get("name"):
        path = normalize_remote_path(posixpath.join(parent, str(info["name"])))
    else:
        return None
    if path == normalize_remote_path(parent):
        return None
    is_dir = parse_bool(info.get("isdir"), False)
    try:
        size = int(info.get("size") or 0)
    except (TypeError, ValueError):
        size = 0
    return WebDavItem(
        path=path,
        name=posixpath.basename(path) or path,
        type="directory" if is_dir else "file",
        size=0 if is_dir else size,
        last_modified=info.get("modified") or None,
    )
