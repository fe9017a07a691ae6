"""Idempotent, content-addressed persistence of dashcam media."""

from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any, Optional, Sequence
from urllib.parse import urlparse

from fleet_copilot.errors import MediaDownloadError
from fleet_copilot.log import get_logger
from fleet_copilot.services.http_fetch import HttpFetchService
from fleet_copilot.storage.blob_store import LocalBlobStore

logger = get_logger(__name__)

STORAGE_PATH = "dashcam-media"

MEDIA_TYPE_DESCRIPTIONS = {
    "dashcamRoadFacing": "Front camera (road facing)",
    "dashcamDriverFacing": "Cabin camera (driver facing)",
    "photo": "Photo",
    "video": "Video",
}


def _md5(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def source_hash(url: str) -> str:
    """Stable 12-char identifier for a media URL, ignoring its signed query string."""
    path = urlparse(url).path
    if path:
        # ".lepton.jpeg" style names keep everything up to the last suffix
        return _md5(PurePosixPath(path).stem)[:12]
    return _md5(url)[:12]


def logical_key(entity_id: str, media_type: str, timestamp: Optional[str], media_id: Optional[str]) -> str:
    parts = [entity_id, media_type]
    if timestamp:
        try:
            captured = datetime.fromisoformat(timestamp)
        except ValueError:
            logger.warning("media_timestamp_unparseable", timestamp=timestamp)
        else:
            parts.append(captured.strftime("%Y-%m-%d_%H-%M-%S"))
    if media_id:
        parts.append(_md5(media_id)[:8])
    return "_".join(parts)


def extension_for(media_kind: str, url: str) -> str:
    path = urlparse(url).path
    if ".jpeg" in path or ".jpg" in path:
        return "jpg"
    if ".png" in path:
        return "png"
    if ".mp4" in path:
        return "mp4"
    if ".webm" in path:
        return "webm"
    return "mp4" if media_kind == "video" else "jpg"


@dataclass
class MediaItem:
    """One media entry as returned by the cameras endpoint."""

    vehicle_id: str
    input_type: str
    url: str
    media_kind: str = "image"
    timestamp: Optional[str] = None
    trigger_reason: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Optional[MediaItem]:
        url = (data.get("urlInfo") or {}).get("url")
        input_type = data.get("input")
        if not url or not input_type:
            return None
        return cls(
            vehicle_id=str(data.get("vehicleId") or "unknown"),
            input_type=input_type,
            url=url,
            media_kind=data.get("mediaType") or "image",
            timestamp=data.get("startTime"),
            trigger_reason=data.get("triggerReason"),
        )


@dataclass
class PersistedMedia:
    id: str
    type: str
    type_description: str
    media_type: str
    timestamp: Optional[str]
    trigger_reason: Optional[str]
    original_url: str
    url: str
    storage_path: str
    is_persisted: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "typeDescription": self.type_description,
            "mediaType": self.media_type,
            "timestamp": self.timestamp,
            "originalUrl": self.original_url,
            "localUrl": self.url,
            "isPersisted": self.is_persisted,
            "storagePath": self.storage_path,
            "triggerReason": self.trigger_reason,
        }


class MediaPersistenceStore:
    """Copies remote media into the blob store, at most once per logical key.

    The storage path is a pure function of (vehicle, camera, capture time,
    source hash), so an existing blob is reused without touching the network.
    A failed download degrades to the remote URL instead of failing the batch.
    """

    def __init__(
        self,
        blobs: LocalBlobStore,
        fetcher: HttpFetchService,
        max_concurrent_downloads: int = 4,
    ):
        self._blobs = blobs
        self._fetcher = fetcher
        self._max_concurrent = max(1, max_concurrent_downloads)

    @staticmethod
    def storage_path_for(item: MediaItem) -> str:
        media_id = source_hash(item.url)
        key = logical_key(item.vehicle_id, item.input_type, item.timestamp, media_id)
        ext = extension_for(item.media_kind, item.url)
        return f"{STORAGE_PATH}/{item.vehicle_id}/{key}.{ext}"

    async def persist(self, item: MediaItem) -> PersistedMedia:
        path = self.storage_path_for(item)
        url = item.url
        is_persisted = False

        try:
            if await self._blobs.exists(path):
                url = self._blobs.url_for(path)
                is_persisted = True
            else:
                data = await self._fetcher.fetch(item.url)
                await self._blobs.put(path, data)
                url = self._blobs.url_for(path)
                is_persisted = True
                logger.info("media_persisted", storage_path=path, size=len(data))
        except (MediaDownloadError, OSError, ValueError) as e:
            # ValueError: vehicle id or key that escapes the storage root
            logger.warning("media_persist_failed", storage_path=path, error=str(e))

        return PersistedMedia(
            id=source_hash(item.url),
            type=item.input_type,
            type_description=MEDIA_TYPE_DESCRIPTIONS.get(item.input_type, item.input_type),
            media_type=item.media_kind,
            timestamp=item.timestamp,
            trigger_reason=item.trigger_reason,
            original_url=item.url,
            url=url,
            storage_path=path,
            is_persisted=is_persisted,
        )

    async def persist_many(self, items: Sequence[MediaItem]) -> list[PersistedMedia]:
        semaphore = asyncio.Semaphore(self._max_concurrent)

        async def _bounded(item: MediaItem) -> PersistedMedia:
            async with semaphore:
                return await self.persist(item)

        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(_bounded(item)) for item in items]
        return [task.result() for task in tasks]
