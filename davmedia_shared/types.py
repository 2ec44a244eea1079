"""
Shared types, enums, and constants.
"""
import posixpath
from enum import Enum
from typing import Final, Literal

# File type classifications
MediaKind = Literal["image", "video", "none"]


# Error codes
class ErrorCode(str, Enum):
    """Standardized error codes (string enum)."""

    # Client / validation
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_JSON = "INVALID_JSON"
    NOT_FOUND = "NOT_FOUND"

    # Service availability
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    # Server / infrastructure
    DB_ERROR = "DB_ERROR"
    TIMEOUT = "TIMEOUT"

    # Remote storage
    WEBDAV_ERROR = "WEBDAV_ERROR"
    AUTH_FAILED = "AUTH_FAILED"

    # Operation errors
    SCAN_FAILED = "SCAN_FAILED"


# File extensions by kind
EXTENSIONS: Final[dict[str, frozenset[str]]] = {
    "image": frozenset({
        ".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".tiff", ".tif", ".svg", ".ico",
    }),
    "video": frozenset({
        ".mp4", ".webm", ".mov", ".avi", ".mkv", ".flv", ".wmv", ".m4v",
        ".3gp", ".ogv", ".ts", ".mts", ".m2ts",
    }),
}


def classify_file(filename: str) -> MediaKind:
    """
    Classify a file by extension (case-insensitive).

    Args:
        filename: File name or remote path

    Returns:
        "image", "video" or "none"
    """
    ext = posixpath.splitext(str(filename or ""))[1].lower()
    if ext in EXTENSIONS["image"]:
        return "image"
    if ext in EXTENSIONS["video"]:
        return "video"
    return "none"


def is_media_file(filename: str) -> bool:
    return classify_file(filename) != "none"
