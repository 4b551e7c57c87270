"""
FileBox Execution Context — the current actor for each request.

The session/auth layer (outside this package) sets an ExecutionContext once it
has authenticated the user; every mutating namespace operation reads it back.
No context means no authenticated actor.

Usage:
    from filebox.engine.context import (
        ExecutionContext,
        set_execution_context,
        get_execution_context,
        require_execution_context,
    )
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from filebox.engine.errors import FileBoxAuthRequired

current_execution_context: ContextVar[Optional["ExecutionContext"]] = ContextVar(
    "execution_context", default=None
)


@dataclass
class ExecutionContext:
    """Per-request actor identity. Populated by the auth layer on login."""

    user_id: str
    email: str = ""
    username: str = ""
    execution_id: str = field(default_factory=lambda: f"exec_{uuid.uuid4().hex[:12]}")
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging."""
        return {
            "user_id": self.user_id,
            "email": self.email,
            "username": self.username,
            "execution_id": self.execution_id,
            "session_id": self.session_id,
        }


def set_execution_context(ctx: ExecutionContext) -> None:
    """Set the execution context for the current thread/task."""
    current_execution_context.set(ctx)


def get_execution_context() -> Optional[ExecutionContext]:
    """Get the current execution context. Returns None if not set."""
    return current_execution_context.get()


def require_execution_context() -> ExecutionContext:
    """Get execution context or raise FileBoxAuthRequired if not set."""
    ctx = get_execution_context()
    if ctx is None:
        raise FileBoxAuthRequired("No authenticated user")
    return ctx


def clear_execution_context() -> None:
    """Clear the execution context (e.g., on logout or request end)."""
    current_execution_context.set(None)
