"""
Domain exceptions and helpers for sanitizing error messages before they reach clients.
"""
from __future__ import annotations

import os
import re
from typing import Any

from .log import get_logger

logger = get_logger(__name__)
_DEBUG_MODE = os.getenv("DAVMEDIA_DEBUG", "").strip().lower() in ("1", "true", "yes", "on")
_WINDOWS_PATH_RE = re.compile(r"[A-Za-z]:\\[^\s]+")
_UNC_PATH_RE = re.compile(r"\\\\[^\s\\]+\\[^\s]+")
_UNIX_PATH_RE = re.compile(r"(?<![A-Za-z0-9:/?&=#%])/(?!/)[^\s#?]+")


class WebDavError(Exception):
    """A WebDAV request failed (network error or unexpected HTTP status)."""

    def __init__(self, message: str, *, status: int | None = None, path: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.path = path


class WebDavAuthError(WebDavError):
    """The server rejected the supplied credentials (401/403)."""


class WebDavNotFoundError(WebDavError):
    """The requested resource does not exist (404)."""


class ScanCacheError(Exception):
    """The scan cache store could not be read or written."""


class ScanLogError(Exception):
    """The scan log store could not be read or written."""


def _mask_paths(value: str) -> str:
    """Mask path-looking substrings to avoid leaking server structure."""
    cleaned = _WINDOWS_PATH_RE.sub("[path]", value)
    cleaned = _UNC_PATH_RE.sub("[path]", cleaned)
    cleaned = _UNIX_PATH_RE.sub("[path]", cleaned)
    return cleaned


def sanitize_error_message(exc: Any, fallback: str) -> str:
    """
    Build a safe error message for clients.

    Args:
        exc: Exception or raw value to sanitize.
        fallback: Fallback message to show when nothing meaningful remains.

    Returns:
        A string suitable for inclusion in API responses.
    """
    if not fallback:
        fallback = "An error occurred"

    if exc is None:
        return fallback

    try:
        raw = str(exc)
    except Exception:
        raw = ""

    if not raw:
        return fallback

    if _DEBUG_MODE:
        logger.debug("Unsanitized error payload: %s", raw)
        return f"{fallback}: {raw[:200]}"

    sanitized = _mask_paths(raw.replace(os.getcwd(), "[cwd]"))
    sanitized = " ".join(sanitized.splitlines()).strip()

    if sanitized:
        return f"{fallback}: {sanitized[:200]}"
    return fallback
