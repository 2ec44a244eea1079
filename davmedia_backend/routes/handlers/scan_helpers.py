"""
Request parsing and error mapping shared by the scan, cache and log routes.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

from davmedia_backend.features.scan.models import normalize_server_url
from davmedia_backend.shared import (
    ErrorCode,
    Result,
    ScanCacheError,
    ScanLogError,
    WebDavAuthError,
    WebDavError,
    get_logger,
    sanitize_error_message,
)

logger = get_logger(__name__)

MAX_PATHS_PER_REQUEST = 200


def parse_target(source: Mapping[str, Any], *, need_password: bool = False) -> Result[dict]:
    """
    Pull `url`, `username` (and optionally `password`) out of a JSON body or query.
    `server_url`/`webdav_url` are accepted as aliases for `url`.
    """
    url = normalize_server_url(source.get("url") or source.get("server_url") or source.get("webdav_url") or "")
    if not url:
        return Result.Err(ErrorCode.INVALID_INPUT, "Missing 'url'")
    if not url.startswith(("http://", "https://")):
        return Result.Err(ErrorCode.INVALID_INPUT, "'url' must be an http(s) URL")
    target = {
        "url": url,
        "username": str(source.get("username") or ""),
    }
    if need_password:
        target["password"] = str(source.get("password") or "")
    return Result.Ok(target)


def parse_path(source: Mapping[str, Any]) -> Result[str]:
    path = source.get("path")
    if not isinstance(path, str) or not path.strip():
        return Result.Err(ErrorCode.INVALID_INPUT, "Missing 'path'")
    return Result.Ok(path.strip())


def parse_paths(value: Any) -> Result[list]:
    """Accept a JSON list of paths or a comma-separated string (query strings)."""
    if isinstance(value, str):
        items = [p.strip() for p in value.split(",")]
    elif isinstance(value, (list, tuple)):
        items = [p.strip() for p in value if isinstance(p, str)]
    else:
        items = []
    items = [p for p in items if p]
    if not items:
        return Result.Err(ErrorCode.INVALID_INPUT, "Missing 'paths'")
    if len(items) > MAX_PATHS_PER_REQUEST:
        return Result.Err(ErrorCode.INVALID_INPUT, f"Too many paths (max {MAX_PATHS_PER_REQUEST})")
    return Result.Ok(items)


def error_result(exc: Exception, fallback: str, *, path: Optional[str] = None) -> Result[Any]:
    """Map a scan-side exception to an error envelope with a sanitized message."""
    if isinstance(exc, WebDavAuthError):
        code = ErrorCode.AUTH_FAILED
    elif isinstance(exc, WebDavError):
        code = ErrorCode.WEBDAV_ERROR
    elif isinstance(exc, (ScanCacheError, ScanLogError)):
        code = ErrorCode.DB_ERROR
    else:
        code = ErrorCode.SCAN_FAILED
    logger.warning("%s (path=%s): %s", fallback, path, exc)
    meta = {"path": path} if path else {}
    return Result.Err(code, sanitize_error_message(exc, fallback), **meta)
