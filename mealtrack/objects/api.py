# -*- coding: utf-8 -*-
"""Objects — download endpoint backing the image reference URLs.

Photos live under ``users/{user_id}/``; only that user may download them.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from ..auth.security import get_current_user
from ..services import get_object_store
from .storage import LocalObjectStore, ObjectStore, ObjectStoreError

router = APIRouter(prefix="/objects", tags=["Objects"])


@router.get("/v0/b/{bucket}/o/{object_path:path}", include_in_schema=False)
def download_object(
    bucket: str,
    object_path: str,
    user: dict = Depends(get_current_user),
    objects: ObjectStore = Depends(get_object_store),
):
    if not isinstance(objects, LocalObjectStore) or bucket != objects.bucket:
        raise HTTPException(status_code=404, detail="Object not found")
    try:
        fp = objects.resolve(object_path)
    except ObjectStoreError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    # Someone else's photo looks the same as a missing one.
    if not object_path.strip("/").startswith(f"users/{user['id']}/") or not fp.is_file():
        raise HTTPException(status_code=404, detail="Object not found")
    return FileResponse(fp)
