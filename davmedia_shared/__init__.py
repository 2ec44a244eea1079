"""Shared utilities for the DavMedia scan service."""
from .errors import (
    ScanCacheError,
    ScanLogError,
    WebDavAuthError,
    WebDavError,
    WebDavNotFoundError,
    sanitize_error_message,
)
from .log import get_logger, log_structured, log_success, request_id_var
from .result import Result
from .time import format_timestamp, ms, now, timer
from .types import EXTENSIONS, ErrorCode, MediaKind, classify_file, is_media_file

__all__ = [
    "Result",
    "get_logger",
    "log_success",
    "log_structured",
    "request_id_var",
    "now",
    "ms",
    "format_timestamp",
    "timer",
    "MediaKind",
    "ErrorCode",
    "EXTENSIONS",
    "classify_file",
    "is_media_file",
    "sanitize_error_message",
    "WebDavError",
    "WebDavAuthError",
    "WebDavNotFoundError",
    "ScanCacheError",
    "ScanLogError",
]
