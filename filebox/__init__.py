"""
FileBox — Hierarchical folder/file namespace with single-owner locks.

Core services:
    FileManager       — create/upload/rename/delete/toggle-lock with re-listing
    ListingProvider   — ordered children of a folder or the root
    PathResolver      — breadcrumb ancestor chains
    LockGuard         — single-owner lock rules
"""

__version__ = "1.0.0"
__all__ = ["engine", "db", "namespace", "storage", "utilities"]
