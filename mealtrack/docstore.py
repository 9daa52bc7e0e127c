# -*- coding: utf-8 -*-
"""Document store — per-user meal entries, user documents and usage counters.

The storage-lifecycle and quota code talks to :class:`DocumentStore` only. The SQLite
implementation keeps every blocking driver call off the event loop via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from .app_db import db_conn, immediate_transaction, init_app_db

logger = logging.getLogger(__name__)

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(value: datetime) -> str:
    """Fixed-width UTC timestamp so stored values compare correctly as strings."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TS_FORMAT)


def parse_ts(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.strptime(text, _TS_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@dataclass
class EntryRecord:
    """One logged meal. ``image_ref`` is None once the photo has been swept."""

    entry_id: str
    user_id: str
    created_at: Optional[datetime]
    image_ref: Optional[str] = None
    image_deleted_at: Optional[datetime] = None
    meal_type: Optional[str] = None
    description: Optional[str] = None
    nutrition: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UsageCounter:
    user_id: str
    date_key: str
    count: int
    created_at: datetime
    updated_at: datetime


# Receives the current counter (None when absent); returns the counter to write, or None
# to leave the record untouched.
CounterMutation = Callable[[Optional[UsageCounter]], Optional[UsageCounter]]


class DocumentStore(ABC):
    @abstractmethod
    async def list_user_ids(self) -> List[str]: ...

    @abstractmethod
    async def insert_entry(self, entry: EntryRecord) -> None: ...

    @abstractmethod
    async def get_entry(self, user_id: str, entry_id: str) -> Optional[EntryRecord]: ...

    @abstractmethod
    async def list_entries(self, user_id: str, *, limit: int = 100, offset: int = 0) -> List[EntryRecord]: ...

    @abstractmethod
    async def find_image_entries(
        self, user_id: str, *, created_before: Optional[datetime] = None
    ) -> List[EntryRecord]:
        """Entries of ``user_id`` whose image reference is set, optionally older than a cutoff."""

    @abstractmethod
    async def clear_entry_image(self, user_id: str, entry_id: str, deleted_at: datetime) -> bool:
        """Null out the image reference. Returns False if it was already cleared."""

    @abstractmethod
    async def get_user_fields(self, user_id: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    async def update_user_fields(self, user_id: str, fields: Mapping[str, Any]) -> None:
        """Merge ``fields`` into the user document; fields not named are left alone."""

    @abstractmethod
    async def get_usage_counter(self, user_id: str, date_key: str) -> Optional[UsageCounter]: ...

    @abstractmethod
    async def update_usage_counter(
        self, user_id: str, date_key: str, mutate: CounterMutation
    ) -> Optional[UsageCounter]:
        """Atomic read-modify-write of one (user, day) counter.

        Returns the counter written by ``mutate`` or None when nothing was written.
        """


# JSON-encoded user document fields and the column holding each of them.
_USER_JSON_FIELDS = {
    "storage_preferences": "storage_preferences_json",
}


def _entry_from_row(row: Any) -> EntryRecord:
    try:
        nutrition = json.loads(row["payload_json"] or "{}")
    except (TypeError, ValueError):
        nutrition = {}
    return EntryRecord(
        entry_id=row["id"],
        user_id=row["user_id"],
        created_at=parse_ts(row["created_at"]),
        image_ref=row["image_ref"],
        image_deleted_at=parse_ts(row["image_deleted_at"]),
        meal_type=row["meal_type"],
        description=row["description"],
        nutrition=nutrition if isinstance(nutrition, dict) else {},
    )


def _counter_from_row(row: Any) -> UsageCounter:
    return UsageCounter(
        user_id=row["user_id"],
        date_key=row["date_key"],
        count=int(row["count"]),
        created_at=parse_ts(row["created_at"]) or utc_now(),
        updated_at=parse_ts(row["updated_at"]) or utc_now(),
    )


class SqliteDocumentStore(DocumentStore):
    def __init__(self, db_path: Path, *, initialize: bool = True) -> None:
        self.db_path = db_path
        if initialize:
            init_app_db(db_path)

    async def list_user_ids(self) -> List[str]:
        return await asyncio.to_thread(self._list_user_ids)

    def _list_user_ids(self) -> List[str]:
        with db_conn(self.db_path) as conn:
            rows = conn.execute("SELECT id FROM users ORDER BY created_at ASC").fetchall()
        return [row["id"] for row in rows]

    async def insert_entry(self, entry: EntryRecord) -> None:
        await asyncio.to_thread(self._insert_entry, entry)

    def _insert_entry(self, entry: EntryRecord) -> None:
        with db_conn(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO entries (id, user_id, created_at, meal_type, description, payload_json, image_ref, image_deleted_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.entry_id,
                    entry.user_id,
                    format_ts(entry.created_at) if entry.created_at else None,
                    entry.meal_type,
                    entry.description,
                    json.dumps(entry.nutrition, ensure_ascii=False),
                    entry.image_ref,
                    format_ts(entry.image_deleted_at) if entry.image_deleted_at else None,
                ),
            )

    async def get_entry(self, user_id: str, entry_id: str) -> Optional[EntryRecord]:
        return await asyncio.to_thread(self._get_entry, user_id, entry_id)

    def _get_entry(self, user_id: str, entry_id: str) -> Optional[EntryRecord]:
        with db_conn(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM entries WHERE user_id = ? AND id = ?", (user_id, entry_id)
            ).fetchone()
        return _entry_from_row(row) if row else None

    async def list_entries(self, user_id: str, *, limit: int = 100, offset: int = 0) -> List[EntryRecord]:
        return await asyncio.to_thread(self._list_entries, user_id, limit, offset)

    def _list_entries(self, user_id: str, limit: int, offset: int) -> List[EntryRecord]:
        with db_conn(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM entries WHERE user_id = ? ORDER BY created_at DESC LIMIT ? OFFSET ?",
                (user_id, int(limit), int(offset)),
            ).fetchall()
        return [_entry_from_row(row) for row in rows]

    async def find_image_entries(
        self, user_id: str, *, created_before: Optional[datetime] = None
    ) -> List[EntryRecord]:
        return await asyncio.to_thread(self._find_image_entries, user_id, created_before)

    def _find_image_entries(self, user_id: str, created_before: Optional[datetime]) -> List[EntryRecord]:
        created_before = parse_ts(created_before)
        query = "SELECT * FROM entries WHERE user_id = ? AND image_ref IS NOT NULL"
        params: List[Any] = [user_id]
        if created_before is not None:
            query += " AND created_at IS NOT NULL AND created_at < ?"
            params.append(format_ts(created_before))
        query += " ORDER BY created_at ASC"
        with db_conn(self.db_path) as conn:
            rows = conn.execute(query, params).fetchall()
        entries = [_entry_from_row(row) for row in rows]
        if created_before is None:
            return entries
        # Rows whose timestamp does not parse cannot be aged; leave them alone.
        return [e for e in entries if e.created_at is not None and e.created_at < created_before]

    async def clear_entry_image(self, user_id: str, entry_id: str, deleted_at: datetime) -> bool:
        return await asyncio.to_thread(self._clear_entry_image, user_id, entry_id, deleted_at)

    def _clear_entry_image(self, user_id: str, entry_id: str, deleted_at: datetime) -> bool:
        with db_conn(self.db_path) as conn:
            cur = conn.execute(
                """
                UPDATE entries SET image_ref = NULL, image_deleted_at = ?
                WHERE user_id = ? AND id = ? AND image_ref IS NOT NULL
                """,
                (format_ts(deleted_at), user_id, entry_id),
            )
            return cur.rowcount > 0

    async def get_user_fields(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._get_user_fields, user_id)

    def _get_user_fields(self, user_id: str) -> Optional[Dict[str, Any]]:
        with db_conn(self.db_path) as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            return None
        doc: Dict[str, Any] = {"id": row["id"], "email": row["email"], "created_at": row["created_at"]}
        for name, column in _USER_JSON_FIELDS.items():
            raw = row[column]
            doc[name] = json.loads(raw) if raw else None
        return doc

    async def update_user_fields(self, user_id: str, fields: Mapping[str, Any]) -> None:
        await asyncio.to_thread(self._update_user_fields, user_id, dict(fields))

    def _update_user_fields(self, user_id: str, fields: Dict[str, Any]) -> None:
        unknown = sorted(set(fields) - set(_USER_JSON_FIELDS))
        if unknown:
            raise ValueError(f"Unsupported user fields: {', '.join(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{_USER_JSON_FIELDS[name]} = ?" for name in fields)
        params: List[Any] = [json.dumps(value, ensure_ascii=False) for value in fields.values()]
        params.append(user_id)
        with db_conn(self.db_path) as conn:
            cur = conn.execute(f"UPDATE users SET {assignments} WHERE id = ?", params)
            if cur.rowcount == 0:
                raise KeyError(f"User not found: {user_id}")

    async def get_usage_counter(self, user_id: str, date_key: str) -> Optional[UsageCounter]:
        return await asyncio.to_thread(self._get_usage_counter, user_id, date_key)

    def _get_usage_counter(self, user_id: str, date_key: str) -> Optional[UsageCounter]:
        with db_conn(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM usage_counters WHERE user_id = ? AND date_key = ?",
                (user_id, date_key),
            ).fetchone()
        return _counter_from_row(row) if row else None

    async def update_usage_counter(
        self, user_id: str, date_key: str, mutate: CounterMutation
    ) -> Optional[UsageCounter]:
        return await asyncio.to_thread(self._update_usage_counter, user_id, date_key, mutate)

    def _update_usage_counter(
        self, user_id: str, date_key: str, mutate: CounterMutation
    ) -> Optional[UsageCounter]:
        with immediate_transaction(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM usage_counters WHERE user_id = ? AND date_key = ?",
                (user_id, date_key),
            ).fetchone()
            current = _counter_from_row(row) if row else None
            updated = mutate(current)
            if updated is None:
                return None
            conn.execute(
                """
                INSERT INTO usage_counters (user_id, date_key, count, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id, date_key) DO UPDATE SET
                    count = excluded.count,
                    updated_at = excluded.updated_at
                """,
                (
                    user_id,
                    date_key,
                    int(updated.count),
                    format_ts(updated.created_at),
                    format_ts(updated.updated_at),
                ),
            )
        return updated
