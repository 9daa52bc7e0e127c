# -*- coding: utf-8 -*-
"""Shared store instances and the services built on them (FastAPI dependencies)."""

from __future__ import annotations

from typing import Optional

from fastapi import Depends

from .config import settings
from .docstore import DocumentStore, SqliteDocumentStore
from .objects.storage import LocalObjectStore, ObjectStore
from .quota.ledger import QuotaLedger
from .retention.analyzer import StorageUsageAnalyzer
from .retention.policy import resolve_policy
from .retention.preferences import TierPreferenceManager
from .retention.sweeper import RetentionSweeper

_document_store: Optional[DocumentStore] = None
_object_store: Optional[ObjectStore] = None


def get_document_store() -> DocumentStore:
    global _document_store
    if _document_store is None:
        _document_store = SqliteDocumentStore(settings.app_db_path)
    return _document_store


def get_object_store() -> ObjectStore:
    global _object_store
    if _object_store is None:
        _object_store = LocalObjectStore(
            settings.objects_root,
            bucket=settings.bucket,
            base_url=settings.objects_base_url,
        )
    return _object_store


def get_quota_ledger(documents: DocumentStore = Depends(get_document_store)) -> QuotaLedger:
    return QuotaLedger(documents, daily_limit=settings.daily_analysis_limit)


def get_usage_analyzer(documents: DocumentStore = Depends(get_document_store)) -> StorageUsageAnalyzer:
    return StorageUsageAnalyzer(documents)


def get_preference_manager(documents: DocumentStore = Depends(get_document_store)) -> TierPreferenceManager:
    return TierPreferenceManager(documents)


def get_sweeper(
    documents: DocumentStore = Depends(get_document_store),
    objects: ObjectStore = Depends(get_object_store),
) -> RetentionSweeper:
    policy = resolve_policy(settings.storage_tier)
    return RetentionSweeper(documents, objects, batch_size=policy.cleanup_batch_size)

