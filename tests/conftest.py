from __future__ import annotations

import pytest

from fleet_copilot.storage.database import Database
from fleet_copilot.storage.kv_cache import KeyValueCache
from fleet_copilot.storage.tag_repo import TagRepository
from fleet_copilot.storage.thread_repo import ThreadRepository
from fleet_copilot.storage.vehicle_repo import VehicleRepository


@pytest.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "fleet.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def vehicles(db) -> VehicleRepository:
    return VehicleRepository(db)


@pytest.fixture
def threads(db) -> ThreadRepository:
    return ThreadRepository(db)


@pytest.fixture
def tags(db) -> TagRepository:
    return TagRepository(db)


@pytest.fixture
def kv_cache(db) -> KeyValueCache:
    return KeyValueCache(db)
