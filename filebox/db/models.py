"""
FileBox Tables — the two node collections and the user directory.

1. users    — public user directory (contact email for lock denials)
2. folders  — folder nodes, parent_id nullable (NULL = root)
3. files    — file nodes, folder_id nullable (NULL = root)

user_id is the creator; owner_id is the current (or last) lock holder.
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Column, Index, String, Text

from filebox.db.base import Base, TimestampMixin
from filebox.engine.config import NAME_COLUMN_LENGTH


class UserRow(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<UserRow(id='{self.id}', email='{self.email}')>"


class FolderRow(Base, TimestampMixin):
    __tablename__ = "folders"

    id = Column(String(64), primary_key=True)
    name = Column(String(NAME_COLUMN_LENGTH), nullable=False)
    # No FK: deletes do not cascade at the database level and stale
    # references must stay readable for partial breadcrumbs.
    parent_id = Column(String(64), nullable=True, index=True)
    is_private = Column(Boolean, default=False, nullable=False)
    user_id = Column(String(64), nullable=False)
    owner_id = Column(String(64), nullable=False)

    __table_args__ = (
        Index("ix_folders_parent_name", "parent_id", "name"),
    )

    def __repr__(self) -> str:
        return f"<FolderRow(id='{self.id}', name='{self.name}', parent_id={self.parent_id!r})>"


class FileRow(Base, TimestampMixin):
    __tablename__ = "files"

    id = Column(String(64), primary_key=True)
    name = Column(String(NAME_COLUMN_LENGTH), nullable=False)
    size = Column(BigInteger, default=0, nullable=False)
    type = Column(String(255), nullable=False)
    url = Column(Text, nullable=False)
    folder_id = Column(String(64), nullable=True, index=True)
    is_private = Column(Boolean, default=False, nullable=False)
    user_id = Column(String(64), nullable=False)
    owner_id = Column(String(64), nullable=False)

    __table_args__ = (
        CheckConstraint("size >= 0", name="ck_files_size_non_negative"),
        Index("ix_files_folder_name", "folder_id", "name"),
    )

    def __repr__(self) -> str:
        return f"<FileRow(id='{self.id}', name='{self.name}', folder_id={self.folder_id!r})>"
