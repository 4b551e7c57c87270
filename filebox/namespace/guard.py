"""
FileBox Lock Guard — single-owner lock rules for folders and files.

Toggle-lock:
- Unlocked node: anyone may lock it and becomes the owner (first mover wins,
  independent of who created the node).
- Locked node, actor is the owner: unlock permitted, owner_id left as-is.
- Locked node, actor is not the owner: denied; the denial names the owner's
  contact so the requester knows whom to ask.

Rename / delete:
- protect_rename_delete=True: a node locked by another actor can be neither
  renamed nor deleted.
- protect_rename_delete=False: legacy behaviour, rename and delete ignore the
  lock entirely.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from filebox.engine.errors import FileBoxAuthorizationDenied
from filebox.namespace.models import Node
from filebox.namespace.store import UserDirectory

logger = logging.getLogger("filebox.namespace.guard")

UNLOCK_DENIED_MESSAGE = "This item can only be unlocked by user: {contact}"
MUTATION_DENIED_MESSAGE = "This item is locked and can only be {verb} by user: {contact}"

MUTATION_VERBS = {"rename": "renamed", "delete": "deleted"}


@dataclass(frozen=True)
class LockDecision:
    """Outcome of a guard check. ``changes`` is the patch to apply when allowed."""

    allowed: bool
    operation: str
    node_id: str
    changes: Optional[Dict[str, Any]] = None
    owner_id: Optional[str] = None
    owner_contact: Optional[str] = None
    reason: Optional[str] = None

    def raise_if_denied(self, user_id: str) -> None:
        if not self.allowed:
            raise FileBoxAuthorizationDenied(
                self.reason or "Operation denied",
                operation=self.operation,
                node_id=self.node_id,
                user_id=user_id,
                owner_id=self.owner_id,
                owner_contact=self.owner_contact,
            )


class LockGuard:
    """Decides whether toggle-lock, rename and delete are permitted."""

    def __init__(self, users: UserDirectory, protect_rename_delete: bool = True):
        self._users = users
        self._protect_rename_delete = protect_rename_delete

    @property
    def protects_rename_delete(self) -> bool:
        return self._protect_rename_delete

    def check_toggle(self, node: Node, user_id: str) -> LockDecision:
        if not node.is_private:
            return LockDecision(
                allowed=True,
                operation="toggle_lock",
                node_id=node.id,
                changes={"is_private": True, "owner_id": user_id},
                owner_id=user_id,
            )
        if node.owner_id == user_id:
            return LockDecision(
                allowed=True,
                operation="toggle_lock",
                node_id=node.id,
                changes={"is_private": False},
                owner_id=node.owner_id,
            )
        contact = self._users.contact_for(node.owner_id)
        logger.info(f"Unlock of '{node.id}' by '{user_id}' denied; owner is '{node.owner_id}'")
        return LockDecision(
            allowed=False,
            operation="toggle_lock",
            node_id=node.id,
            owner_id=node.owner_id,
            owner_contact=contact,
            reason=UNLOCK_DENIED_MESSAGE.format(contact=contact),
        )

    def check_mutation(self, node: Node, user_id: str, operation: str) -> LockDecision:
        """Check rename or delete against the lock policy."""
        if operation not in MUTATION_VERBS:
            raise ValueError(f"Unknown guarded operation '{operation}'")
        if not self._protect_rename_delete or not node.locked_by_other(user_id):
            return LockDecision(allowed=True, operation=operation, node_id=node.id)

        contact = self._users.contact_for(node.owner_id)
        logger.info(f"{operation} of '{node.id}' by '{user_id}' denied; owner is '{node.owner_id}'")
        return LockDecision(
            allowed=False,
            operation=operation,
            node_id=node.id,
            owner_id=node.owner_id,
            owner_contact=contact,
            reason=MUTATION_DENIED_MESSAGE.format(verb=MUTATION_VERBS[operation], contact=contact),
        )

    def enforce_toggle(self, node: Node, user_id: str) -> Dict[str, Any]:
        """Return the patch for a permitted toggle, or raise FileBoxAuthorizationDenied."""
        decision = self.check_toggle(node, user_id)
        decision.raise_if_denied(user_id)
        return decision.changes or {}

    def enforce_mutation(self, node: Node, user_id: str, operation: str) -> None:
        self.check_mutation(node, user_id, operation).raise_if_denied(user_id)
