"""
FileBox Error Hierarchy — Structured exceptions for every namespace operation.

Every error carries the operation and node it concerns so the failure can be
logged as JSON and surfaced to the presentation layer as a notification.

Hierarchy:
    FileBoxError
    ├── FileBoxValidationError      — Input rejected locally (no store call made)
    ├── FileBoxAuthRequired         — No authenticated actor
    ├── FileBoxAuthorizationDenied  — Lock guard denial (carries owner contact)
    ├── FileBoxBusyError            — Another mutation on the node is in flight
    ├── FileBoxConfigError          — Invalid filebox.yaml
    └── FileBoxPersistenceError     — Directory / storage / user lookup failed
        ├── FileBoxNotFoundError    — Point lookup returned nothing
        └── FileBoxStorageError     — Object storage write failed
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class FileBoxError(Exception):
    """
    Base error for all FileBox failures.
    All context is serializable to JSON for the structured log files.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.execution_id: Optional[str] = context.get("execution_id")
        self.operation: Optional[str] = context.get("operation")
        self.node_id: Optional[str] = context.get("node_id")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "execution_id": self.execution_id,
            "operation": self.operation,
            "node_id": self.node_id,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("execution_id", "operation", "node_id")
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.node_id:
            parts.append(f"node_id={self.node_id}")
        return " | ".join(parts)


class FileBoxValidationError(FileBoxError):
    """
    Input validation failed (empty name, unknown parent kind, non-empty folder).
    Raised before any collaborator is contacted.
    """

    def __init__(self, message: str, **context: Any):
        self.field: Optional[str] = context.get("field")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["field"] = self.field
        return d


class FileBoxAuthRequired(FileBoxError):
    """No authenticated actor for a mutating operation."""
    pass


class FileBoxAuthorizationDenied(FileBoxError):
    """
    Lock guard denial. Carries the blocking owner's id and public contact so
    the requester knows whom to ask.
    """

    def __init__(self, message: str, **context: Any):
        self.user_id: Optional[str] = context.get("user_id")
        self.owner_id: Optional[str] = context.get("owner_id")
        self.owner_contact: Optional[str] = context.get("owner_contact")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["user_id"] = self.user_id
        d["owner_id"] = self.owner_id
        d["owner_contact"] = self.owner_contact
        return d


class FileBoxBusyError(FileBoxError):
    """A mutation on the same node (or an upload batch) is already in flight."""
    pass


class FileBoxConfigError(FileBoxError):
    """Configuration error — invalid filebox.yaml."""
    pass


class FileBoxPersistenceError(FileBoxError):
    """A directory, storage or user-lookup collaborator failed."""

    def __init__(self, message: str, **context: Any):
        self.collection: Optional[str] = context.get("collection")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["collection"] = self.collection
        return d


class FileBoxNotFoundError(FileBoxPersistenceError):
    """Point lookup by id returned no row."""
    pass


class FileBoxStorageError(FileBoxPersistenceError):
    """Object storage rejected the binary write."""

    def __init__(self, message: str, **context: Any):
        self.status_code: Optional[int] = context.get("status_code")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["status_code"] = self.status_code
        return d
