"""
Adapters for external systems (SQLite storage, WebDAV servers).
"""
