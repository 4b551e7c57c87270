"""
FileBox Namespace Models — Folder and File nodes plus the read views built on them.

Node: shared identity, placement and lock fields.
Folder: container node; the only valid parent for other nodes.
File: leaf node referencing externally stored binary content.
Listing / FolderView: what the presentation layer renders for one folder.

Root is not a node: a node whose parent_id is None lives at the root.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field

from filebox.utilities.utils import split_extension

ROOT = None

NodeKind = Literal["folder", "file"]


def new_node_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Node(BaseModel):
    """
    A Folder or File in the hierarchical namespace.

    owner_id is authoritative only while is_private is True; after an unlock it
    keeps the last lock holder.
    """

    id: str = Field(default_factory=new_node_id, description="Opaque immutable identifier")
    name: str = Field(min_length=1, description="Display name")
    parent_id: Optional[str] = Field(default=None, description="Parent folder id, None at root")
    is_private: bool = Field(default=False, description="Lock flag")
    owner_id: str = Field(description="User holding (or last holding) the lock")
    creator_id: str = Field(description="User who created the node")
    created_at: datetime = Field(default_factory=utcnow)

    kind: NodeKind = "folder"

    def locked_by_other(self, user_id: str) -> bool:
        return self.is_private and self.owner_id != user_id


class Folder(Node):
    kind: Literal["folder"] = "folder"


class File(Node):
    kind: Literal["file"] = "file"
    size_bytes: int = Field(default=0, ge=0)
    mime_type: str = "application/octet-stream"
    content_ref: str = Field(description="Public URL of the stored content")

    @property
    def extension(self) -> Optional[str]:
        return split_extension(self.name)[1]

    @property
    def stem(self) -> str:
        return split_extension(self.name)[0]


AnyNode = Union[Folder, File]


class UserInfo(BaseModel):
    """Public directory entry for a user."""

    id: str
    email: str
    username: Optional[str] = None


class Listing(BaseModel):
    """Direct children of one folder (or the root), each list ordered by name."""

    folder_id: Optional[str] = None
    folders: List[Folder] = Field(default_factory=list)
    files: List[File] = Field(default_factory=list)

    @property
    def names(self) -> List[str]:
        return [f.name for f in self.folders] + [f.name for f in self.files]

    def __len__(self) -> int:
        return len(self.folders) + len(self.files)


class FolderView(BaseModel):
    """Listing plus breadcrumb trail for the folder currently displayed."""

    listing: Listing
    breadcrumb: List[Folder] = Field(default_factory=list)

    @property
    def folder_id(self) -> Optional[str]:
        return self.listing.folder_id
