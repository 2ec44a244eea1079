"""
WebDAV adapter.
"""
from .client import WebDavClient, WebDavClientFactory
from .items import WebDavItem, item_from_info, normalize_remote_path

__all__ = [
    "WebDavClient",
    "WebDavClientFactory",
    "WebDavItem",
    "item_from_info",
    "normalize_remote_path",
]
