"""Backend-facing alias for shared utilities.

Backend modules import from here (`from ..shared import ...`) so the shared
package can be swapped or vendored in one place.
"""

from __future__ import annotations

import davmedia_shared as _root_shared

Result = _root_shared.Result
ErrorCode = _root_shared.ErrorCode
get_logger = _root_shared.get_logger
log_success = _root_shared.log_success
log_structured = _root_shared.log_structured
request_id_var = _root_shared.request_id_var
classify_file = _root_shared.classify_file
is_media_file = _root_shared.is_media_file
sanitize_error_message = _root_shared.sanitize_error_message
format_timestamp = _root_shared.format_timestamp
ms = _root_shared.ms
timer = _root_shared.timer
MediaKind = _root_shared.MediaKind
EXTENSIONS = _root_shared.EXTENSIONS
WebDavError = _root_shared.WebDavError
WebDavAuthError = _root_shared.WebDavAuthError
WebDavNotFoundError = _root_shared.WebDavNotFoundError
ScanCacheError = _root_shared.ScanCacheError
ScanLogError = _root_shared.ScanLogError

__all__ = list(_root_shared.__all__)
