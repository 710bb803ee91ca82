"""Namespaced JSON key-value store on top of the SQLite database."""

from __future__ import annotations

import json
from typing import Any

from chat_secretary.storage.database import Database


class KeyValueStore:
    """get/set of JSON values under one namespace; each ``set`` is one upsert."""

    def __init__(self, db: Database, namespace: str):
        self._db = db
        self._namespace = namespace

    @property
    def namespace(self) -> str:
        return self._namespace

    async def get(self, key: str, default: Any = None) -> Any:
        cursor = await self._db.conn.execute(
            "SELECT value_json FROM kv_store WHERE namespace = ? AND key = ?",
            (self._namespace, key),
        )
        row = await cursor.fetchone()
        if row is None:
            return default
        return json.loads(row["value_json"])

    async def set(self, key: str, value: Any) -> None:
        await self._db.conn.execute(
            """INSERT INTO kv_store (namespace, key, value_json)
               VALUES (?, ?, ?)
               ON CONFLICT(namespace, key)
               DO UPDATE SET value_json = excluded.value_json,
                             updated_at = strftime('%Y-%m-%dT%H:%M:%f','now')""",
            (self._namespace, key, json.dumps(value, ensure_ascii=False)),
        )
        await self._db.conn.commit()
