"""Tiny persistent key-value cache.

No TTL handling here: callers that need freshness store a timestamp as the
value and compare it against their own clock.
"""

from __future__ import annotations

import json
from typing import Any

from fleet_copilot.storage.database import Database


class KeyValueCache:
    def __init__(self, db: Database):
        self._db = db

    async def get(self, key: str, default: Any = None) -> Any:
        cursor = await self._db.conn.execute(
            "SELECT value_json FROM kv_cache WHERE key = ?",
            (key,),
        )
        row = await cursor.fetchone()
        if row is None:
            return default
        return json.loads(row["value_json"])

    async def put(self, key: str, value: Any) -> None:
        await self._db.conn.execute(
            """INSERT INTO kv_cache (key, value_json) VALUES (?, ?)
               ON CONFLICT(key) DO UPDATE SET
                   value_json = excluded.value_json,
                   updated_at = strftime('%Y-%m-%dT%H:%M:%f','now')""",
            (key, json.dumps(value)),
        )
        await self._db.conn.commit()
