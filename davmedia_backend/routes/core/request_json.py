"""
Size-limited JSON body parsing. Never raises to handlers.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from aiohttp import web

from davmedia_backend.config import MAX_JSON_BYTES
from davmedia_backend.shared import ErrorCode, Result

MIN_JSON_BYTES = 1024
_CHUNK_BYTES = 64 * 1024


def _too_large(limit: int, size: int) -> Result[dict]:
    return Result.Err(ErrorCode.INVALID_INPUT, f"JSON body too large ({size} > {limit})", limit=limit, size=size)


def _declared_length(request: web.Request) -> Optional[int]:
    try:
        return int(request.headers.get("Content-Length") or "")
    except ValueError:
        return None


async def _read_json(request: web.Request, *, max_bytes: Optional[int] = None) -> Result[dict]:
    """
    Read the body as a JSON object of at most `max_bytes` (default
    `DAVMEDIA_MAX_JSON_SIZE`). An empty body reads as `{}`.
    """
    limit = max(MIN_JSON_BYTES, int(max_bytes) if max_bytes is not None else MAX_JSON_BYTES)
    declared = _declared_length(request)
    if declared is not None and declared > limit:
        return _too_large(limit, declared)

    body = bytearray()
    try:
        async for chunk in request.content.iter_chunked(_CHUNK_BYTES):
            body.extend(chunk)
            if len(body) > limit:
                return _too_large(limit, len(body))
    except Exception as exc:
        return Result.Err(ErrorCode.INVALID_JSON, f"Failed to read request body: {exc}")

    try:
        parsed: Any = json.loads(body.decode("utf-8")) if body else {}
    except ValueError as exc:
        return Result.Err(ErrorCode.INVALID_JSON, f"Invalid JSON body: {exc}")
    if not isinstance(parsed, dict):
        return Result.Err(ErrorCode.INVALID_JSON, "JSON body must be an object")
    return Result.Ok(parsed)
