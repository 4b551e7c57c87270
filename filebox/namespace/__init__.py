"""
FileBox Namespace — folders, files, listings, breadcrumbs and locks.

Data flow:
    caller → FileManager → LockGuard (pre-check) → NodeStore write
           → ListingProvider + PathResolver re-query → OperationResult
"""

from filebox.namespace.guard import LockDecision, LockGuard
from filebox.namespace.listing import ListingProvider
from filebox.namespace.models import ROOT, File, Folder, FolderView, Listing, Node, UserInfo
from filebox.namespace.orchestrator import FileManager, OperationResult, UploadItem
from filebox.namespace.paths import PathResolver
from filebox.namespace.store import (
    MemoryNodeStore,
    MemoryUserDirectory,
    SqlNodeStore,
    SqlUserDirectory,
)

__all__ = [
    "ROOT",
    "File",
    "FileManager",
    "Folder",
    "FolderView",
    "Listing",
    "ListingProvider",
    "LockDecision",
    "LockGuard",
    "MemoryNodeStore",
    "MemoryUserDirectory",
    "Node",
    "OperationResult",
    "PathResolver",
    "SqlNodeStore",
    "SqlUserDirectory",
    "UploadItem",
    "UserInfo",
]
