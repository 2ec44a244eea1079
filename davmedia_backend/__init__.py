"""
DavMedia scan service backend.
"""
