"""TTL-gated mirror of the upstream tag directory."""

from __future__ import annotations

import asyncio
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from fleet_copilot.core.clock import Clock, SystemClock
from fleet_copilot.log import get_logger
from fleet_copilot.services.telematics import TelematicsService
from fleet_copilot.storage.kv_cache import KeyValueCache
from fleet_copilot.storage.models import TagRecord
from fleet_copilot.storage.tag_repo import TagRepository

logger = get_logger(__name__)

LAST_SYNC_KEY = "tags_last_sync"
DEFAULT_SYNC_INTERVAL = 300
MAX_HIERARCHY_DEPTH = 32


def tag_data_hash(data: dict[str, Any]) -> str:
    return hashlib.md5(json.dumps(data, sort_keys=True).encode("utf-8")).hexdigest()


@dataclass
class TagSyncResult:
    created: int = 0
    updated: int = 0
    unchanged: int = 0

    def describe(self) -> str:
        return (
            f"Sync completed: {self.created} created, {self.updated} updated, "
            f"{self.unchanged} unchanged."
        )


class TagSyncCache:
    """Keeps the local tag table in step with the telematics API.

    Upstream is contacted only when the last sync is older than the interval
    (or when forced); each tag is rewritten only if its payload hash changed.
    """

    def __init__(
        self,
        telematics: TelematicsService,
        tags: TagRepository,
        cache: KeyValueCache,
        clock: Optional[Clock] = None,
        sync_interval_seconds: int = DEFAULT_SYNC_INTERVAL,
    ):
        self._telematics = telematics
        self._tags = tags
        self._cache = cache
        self._clock = clock or SystemClock()
        self._interval = sync_interval_seconds
        self._lock = asyncio.Lock()

    @property
    def repository(self) -> TagRepository:
        return self._tags

    async def last_sync(self) -> Optional[datetime]:
        value = await self._cache.get(LAST_SYNC_KEY)
        return datetime.fromisoformat(value) if value else None

    async def should_sync(self) -> bool:
        last = await self.last_sync()
        if last is None:
            return True
        return (self._clock.now() - last).total_seconds() >= self._interval

    async def sync_now(self) -> TagSyncResult:
        async with self._lock:
            upstream = await self._telematics.get_tags()
            known = await self._tags.get_hashes()
            result = TagSyncResult()

            for data in upstream:
                if "id" not in data:
                    continue
                tag_id = str(data["id"])
                data_hash = tag_data_hash(data)
                current = known.get(tag_id)
                if current == data_hash:
                    result.unchanged += 1
                    continue
                await self._tags.upsert(TagRecord.from_api(data, data_hash))
                known[tag_id] = data_hash
                if current is None:
                    result.created += 1
                else:
                    result.updated += 1

            await self._cache.put(LAST_SYNC_KEY, self._clock.now().isoformat())

        logger.info(
            "tag_sync_completed",
            created=result.created,
            updated=result.updated,
            unchanged=result.unchanged,
        )
        return result

    async def sync_if_due(self, force: bool = False) -> Optional[TagSyncResult]:
        if force or await self.should_sync():
            return await self.sync_now()
        return None

    async def last_sync_description(self) -> str:
        last = await self.last_sync()
        if last is None:
            return "never"
        seconds = int((self._clock.now() - last).total_seconds())
        if seconds < 60:
            return "just now"
        minutes = seconds // 60
        if minutes < 60:
            return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
        hours = minutes // 60
        if hours < 24:
            return f"{hours} hour{'s' if hours != 1 else ''} ago"
        days = hours // 24
        return f"{days} day{'s' if days != 1 else ''} ago"

    async def hierarchy_path(self, tag: TagRecord) -> list[str]:
        """Tag names from the root down to ``tag``."""
        path = [tag.name]
        visited = {tag.external_id}
        parent_id = tag.parent_external_id

        while parent_id:
            if parent_id in visited or len(path) >= MAX_HIERARCHY_DEPTH:
                logger.warning("tag_hierarchy_cycle", tag_id=tag.external_id, parent_id=parent_id)
                break
            parent = await self._tags.get(parent_id)
            if parent is None:
                break
            visited.add(parent.external_id)
            path.insert(0, parent.name)
            parent_id = parent.parent_external_id

        return path
