"""Read access to the local vehicle directory.

Vehicles are written by an external sync process; ``upsert_many`` exists for
that process and for fixtures.
"""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from fleet_copilot.storage.database import Database
from fleet_copilot.storage.models import VehicleRecord


class VehicleRepository:
    def __init__(self, db: Database):
        self._db = db

    async def get_by_name(self, name: str) -> Optional[VehicleRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM vehicles WHERE name = ? ORDER BY name, id LIMIT 1",
            (name,),
        )
        row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def find_containing(self, term: str, limit: int = 10) -> list[VehicleRecord]:
        """Vehicles whose name contains ``term`` (case-sensitive), ordered by name."""
        # instr() instead of LIKE: LIKE is case-insensitive and treats % and _ as wildcards
        cursor = await self._db.conn.execute(
            "SELECT * FROM vehicles WHERE instr(name, ?) > 0 ORDER BY name, id LIMIT ?",
            (term, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def get_by_id(self, vehicle_id: str) -> Optional[VehicleRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM vehicles WHERE id = ?",
            (vehicle_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_record(row) if row else None

    async def list_vehicles(
        self,
        search: Optional[str] = None,
        ids: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> list[VehicleRecord]:
        clauses: list[str] = []
        params: list[object] = []
        if search:
            clauses.append("(instr(lower(name), lower(?)) > 0 OR instr(lower(coalesce(license_plate, '')), lower(?)) > 0)")
            params.extend([search, search])
        if ids is not None:
            if not ids:
                return []
            clauses.append(f"id IN ({', '.join('?' for _ in ids)})")
            params.extend(ids)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        query = f"SELECT * FROM vehicles {where} ORDER BY name, id"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        cursor = await self._db.conn.execute(query, tuple(params))
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    async def count(self, search: Optional[str] = None, ids: Optional[Sequence[str]] = None) -> int:
        return len(await self.list_vehicles(search=search, ids=ids))

    async def upsert_many(self, vehicles: Iterable[VehicleRecord]) -> None:
        await self._db.conn.executemany(
            """INSERT INTO vehicles (id, name, make, model, year, license_plate, vin)
               VALUES (?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   name = excluded.name,
                   make = excluded.make,
                   model = excluded.model,
                   year = excluded.year,
                   license_plate = excluded.license_plate,
                   vin = excluded.vin""",
            [(v.id, v.name, v.make, v.model, v.year, v.license_plate, v.vin) for v in vehicles],
        )
        await self._db.conn.commit()

    @staticmethod
    def _row_to_record(row) -> VehicleRecord:
        return VehicleRecord(
            id=row["id"],
            name=row["name"],
            make=row["make"],
            model=row["model"],
            year=row["year"],
            license_plate=row["license_plate"],
            vin=row["vin"],
        )
