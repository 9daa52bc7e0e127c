# -*- coding: utf-8 -*-
"""Objects — blob storage for meal photos + the image reference URL format.

An image reference is a download URL of the form::

    {base_url}/v0/b/{bucket}/o/{percent-encoded object path}?alt=media

The object path is encoded as a single path segment (``/`` becomes ``%2F``). Anything
that writes image references must keep that shape or the retention sweep cannot map the
reference back to its object.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Optional
from urllib.parse import quote, unquote

logger = logging.getLogger(__name__)

_OBJECT_MARKER = "/o/"


class ObjectStoreError(Exception):
    """Raised when the object store cannot complete an operation."""


class ObjectNotFoundError(ObjectStoreError):
    """Raised when the requested object does not exist."""


def build_image_ref(base_url: str, bucket: str, object_path: str) -> str:
    return f"{base_url.rstrip('/')}/v0/b/{bucket}/o/{quote(object_path, safe='')}?alt=media"


def extract_object_path(image_ref: object) -> Optional[str]:
    """Recover the object path from an image reference, or None if it has no usable path."""
    if not isinstance(image_ref, str):
        return None
    idx = image_ref.find(_OBJECT_MARKER)
    if idx < 0:
        return None
    encoded = image_ref[idx + len(_OBJECT_MARKER):]
    encoded = encoded.split("?", 1)[0].split("#", 1)[0]
    if not encoded:
        return None
    path = unquote(encoded).strip()
    return path or None


class ObjectStore(ABC):
    @abstractmethod
    async def put(self, object_path: str, data: bytes, *, content_type: str = "application/octet-stream") -> str:
        """Store ``data`` and return its image reference."""

    @abstractmethod
    async def delete(self, object_path: str) -> None:
        """Delete one object; raises :class:`ObjectNotFoundError` if it is absent."""

    @abstractmethod
    async def exists(self, object_path: str) -> bool: ...


class LocalObjectStore(ObjectStore):
    """Filesystem-backed bucket laid out as ``{root}/{bucket}/{object path}``."""

    def __init__(self, root: Path, *, bucket: str, base_url: str) -> None:
        self.root = root
        self.bucket = bucket
        self.base_url = base_url

    def resolve(self, object_path: str) -> Path:
        parts = PurePosixPath(object_path.strip("/")).parts
        if not parts or any(part in ("", ".", "..") for part in parts):
            raise ObjectStoreError(f"Invalid object path: {object_path!r}")
        return self.root / self.bucket / Path(*parts)

    def image_ref(self, object_path: str) -> str:
        return build_image_ref(self.base_url, self.bucket, object_path)

    async def put(self, object_path: str, data: bytes, *, content_type: str = "application/octet-stream") -> str:
        fp = self.resolve(object_path)
        try:
            await asyncio.to_thread(_write_bytes, fp, data)
        except OSError as exc:
            raise ObjectStoreError(f"Failed to write {object_path}: {exc}") from exc
        logger.debug("stored object %s (%d bytes, %s)", object_path, len(data), content_type)
        return self.image_ref(object_path)

    async def delete(self, object_path: str) -> None:
        fp = self.resolve(object_path)
        try:
            await asyncio.to_thread(fp.unlink)
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(f"No such object: {object_path}") from exc
        except OSError as exc:
            raise ObjectStoreError(f"Failed to delete {object_path}: {exc}") from exc

    async def exists(self, object_path: str) -> bool:
        return await asyncio.to_thread(self.resolve(object_path).is_file)


def _write_bytes(fp: Path, data: bytes) -> None:
    fp.parent.mkdir(parents=True, exist_ok=True)
    fp.write_bytes(data)
