"""
FileBox Object Storage — binary content lives outside the namespace.

The namespace core only keeps the public URL returned here (File.content_ref).
Keys are scoped by user id: "{user_id}/{random}.{ext}".

Backends:
- LocalObjectStorage: files under {root}/{bucket}/{key}, streamed in chunks.
- HttpObjectStorage: remote bucket API over httpx
  (POST {base_url}/object/{bucket}/{key}; public URL
  {base_url}/object/public/{bucket}/{key}).
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Protocol

import httpx

from filebox.engine.errors import FileBoxStorageError
from filebox.utilities.utils import split_extension

logger = logging.getLogger("filebox.storage")

CHUNK_SIZE = 8192


@dataclass(frozen=True)
class StoredObject:
    key: str
    url: str
    size_bytes: int
    sha256: Optional[str] = None


class ObjectStorage(Protocol):
    backend: str

    def put(self, key: str, data: BinaryIO, mime_type: str = "application/octet-stream") -> StoredObject: ...


def make_object_key(user_id: str, filename: str) -> str:
    """Random, collision-free key under the user's prefix; keeps the extension."""
    _, ext = split_extension(filename)
    token = uuid.uuid4().hex
    return f"{user_id}/{token}.{ext}" if ext else f"{user_id}/{token}"


class LocalObjectStorage:
    """Filesystem-backed object storage."""

    backend = "local"

    def __init__(self, root: str, base_url: str, bucket: str = "files"):
        self._bucket_root = (Path(root) / bucket).resolve()
        self._base_url = base_url.rstrip("/")
        self._bucket = bucket

    def _path_for(self, key: str) -> Path:
        path = (self._bucket_root / key).resolve()
        if not path.is_relative_to(self._bucket_root):
            raise FileBoxStorageError(f"Invalid object key '{key}'", key=key)
        return path

    def put(self, key: str, data: BinaryIO, mime_type: str = "application/octet-stream") -> StoredObject:
        path = self._path_for(key)
        bytes_written = 0
        file_hash = hashlib.sha256()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as f:
                while True:
                    chunk = data.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    f.write(chunk)
                    file_hash.update(chunk)
                    bytes_written += len(chunk)
        except OSError as e:
            raise FileBoxStorageError(f"Could not store object '{key}': {e}", key=key) from e

        digest = file_hash.hexdigest()
        logger.info(f"Stored: {key} ({bytes_written} bytes, sha256={digest[:12]})")
        return StoredObject(
            key=key,
            url=f"{self._base_url}/{self._bucket}/{key}",
            size_bytes=bytes_written,
            sha256=digest,
        )

    def open(self, key: str) -> BinaryIO:
        return open(self._path_for(key), "rb")

    def __repr__(self) -> str:
        return f"<LocalObjectStorage root='{self._bucket_root}'>"


class HttpObjectStorage:
    """Remote bucket storage reached through httpx."""

    backend = "http"

    def __init__(
        self,
        base_url: str,
        bucket: str = "files",
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._bucket = bucket
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout, connect=10.0),
            headers=headers,
        )

    def public_url(self, key: str) -> str:
        return f"{self._base_url}/object/public/{self._bucket}/{key}"

    def put(self, key: str, data: BinaryIO, mime_type: str = "application/octet-stream") -> StoredObject:
        content = data.read()
        file_hash = hashlib.sha256(content).hexdigest()
        url = f"{self._base_url}/object/{self._bucket}/{key}"
        try:
            response = self._client.post(url, content=content, headers={"Content-Type": mime_type})
        except httpx.HTTPError as e:
            raise FileBoxStorageError(f"Upload of '{key}' failed: {e}", key=key) from e

        if response.status_code >= 400:
            raise FileBoxStorageError(
                f"Upload of '{key}' rejected with HTTP {response.status_code}",
                key=key,
                status_code=response.status_code,
                response_body=response.text[:500],
            )

        logger.info(f"Uploaded: {key} ({len(content)} bytes) to bucket '{self._bucket}'")
        return StoredObject(key=key, url=self.public_url(key), size_bytes=len(content), sha256=file_hash)

    def close(self) -> None:
        self._client.close()

    def __repr__(self) -> str:
        return f"<HttpObjectStorage base_url='{self._base_url}' bucket='{self._bucket}'>"
