"""FileBox Object Storage — backends that hold binary file content."""

from filebox.storage.backends import (
    HttpObjectStorage,
    LocalObjectStorage,
    ObjectStorage,
    StoredObject,
    make_object_key,
)

__all__ = [
    "HttpObjectStorage",
    "LocalObjectStorage",
    "ObjectStorage",
    "StoredObject",
    "make_object_key",
]
