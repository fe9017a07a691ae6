"""Local copy of the organization's tag directory."""

from __future__ import annotations

import json
from typing import Optional

from fleet_copilot.storage.database import Database
from fleet_copilot.storage.models import TagRecord

_HAS_VEHICLES = "json_array_length(vehicles_json) > 0"
_HAS_DRIVERS = "json_array_length(drivers_json) > 0"


class TagRepository:
    def __init__(self, db: Database):
        self._db = db

    async def get(self, external_id: str) -> Optional[TagRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM tags WHERE external_id = ?",
            (external_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def get_hashes(self) -> dict[str, str]:
        """external_id -> data_hash for every stored tag."""
        cursor = await self._db.conn.execute("SELECT external_id, data_hash FROM tags")
        rows = await cursor.fetchall()
        return {row["external_id"]: row["data_hash"] for row in rows}

    async def upsert(self, tag: TagRecord) -> None:
        """Insert or fully rewrite a single tag."""
        await self._db.conn.execute(
            """INSERT INTO tags
               (external_id, name, parent_external_id, vehicles_json, drivers_json,
                assets_json, addresses_json, machines_json, sensors_json,
                external_ids_json, data_hash)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(external_id) DO UPDATE SET
                   name = excluded.name,
                   parent_external_id = excluded.parent_external_id,
                   vehicles_json = excluded.vehicles_json,
                   drivers_json = excluded.drivers_json,
                   assets_json = excluded.assets_json,
                   addresses_json = excluded.addresses_json,
                   machines_json = excluded.machines_json,
                   sensors_json = excluded.sensors_json,
                   external_ids_json = excluded.external_ids_json,
                   data_hash = excluded.data_hash,
                   updated_at = strftime('%Y-%m-%dT%H:%M:%f','now')""",
            (
                tag.external_id,
                tag.name,
                tag.parent_external_id,
                json.dumps(tag.vehicles),
                json.dumps(tag.drivers),
                json.dumps(tag.assets),
                json.dumps(tag.addresses),
                json.dumps(tag.machines),
                json.dumps(tag.sensors),
                json.dumps(tag.external_ids),
                tag.data_hash,
            ),
        )
        await self._db.conn.commit()

    async def search(
        self,
        search: Optional[str] = None,
        with_vehicles: bool = False,
        limit: Optional[int] = None,
    ) -> list[TagRecord]:
        where, params = self._filters(search, with_vehicles)
        query = f"SELECT * FROM tags {where} ORDER BY name, external_id"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        cursor = await self._db.conn.execute(query, tuple(params))
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def count(self, search: Optional[str] = None, with_vehicles: bool = False) -> int:
        where, params = self._filters(search, with_vehicles)
        cursor = await self._db.conn.execute(f"SELECT COUNT(*) AS n FROM tags {where}", tuple(params))
        row = await cursor.fetchone()
        return int(row["n"])

    async def find_by_name(self, name: str) -> list[TagRecord]:
        """Tags whose name matches exactly, falling back to a case-insensitive contains."""
        cursor = await self._db.conn.execute(
            "SELECT * FROM tags WHERE name = ? ORDER BY name",
            (name,),
        )
        rows = await cursor.fetchall()
        if not rows:
            cursor = await self._db.conn.execute(
                "SELECT * FROM tags WHERE instr(lower(name), lower(?)) > 0 ORDER BY name",
                (name,),
            )
            rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def children(self, external_id: str) -> list[TagRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM tags WHERE parent_external_id = ? ORDER BY name",
            (external_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def summary(self) -> dict[str, int]:
        cursor = await self._db.conn.execute(
            f"""SELECT
                   COUNT(*) AS total,
                   SUM(CASE WHEN parent_external_id IS NULL OR parent_external_id = '' THEN 1 ELSE 0 END) AS roots,
                   SUM(CASE WHEN {_HAS_VEHICLES} THEN 1 ELSE 0 END) AS with_vehicles,
                   SUM(CASE WHEN {_HAS_DRIVERS} THEN 1 ELSE 0 END) AS with_drivers
               FROM tags"""
        )
        row = await cursor.fetchone()
        total = int(row["total"] or 0)
        roots = int(row["roots"] or 0)
        return {
            "total_tags": total,
            "root_tags": roots,
            "child_tags": total - roots,
            "tags_with_vehicles": int(row["with_vehicles"] or 0),
            "tags_with_drivers": int(row["with_drivers"] or 0),
        }

    @staticmethod
    def _filters(search: Optional[str], with_vehicles: bool) -> tuple[str, list[object]]:
        clauses: list[str] = []
        params: list[object] = []
        if search:
            clauses.append("instr(lower(name), lower(?)) > 0")
            params.append(search)
        if with_vehicles:
            clauses.append(_HAS_VEHICLES)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    @staticmethod
    def _row_to_record(row) -> TagRecord:
        return TagRecord(
            external_id=row["external_id"],
            name=row["name"],
            data_hash=row["data_hash"],
            parent_external_id=row["parent_external_id"],
            vehicles=json.loads(row["vehicles_json"]),
            drivers=json.loads(row["drivers_json"]),
            assets=json.loads(row["assets_json"]),
            addresses=json.loads(row["addresses_json"]),
            machines=json.loads(row["machines_json"]),
            sensors=json.loads(row["sensors_json"]),
            external_ids=json.loads(row["external_ids_json"]),
        )
