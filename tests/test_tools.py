import json

import httpx
import pytest

from fleet_copilot.ai.tools.base import CLARIFICATION_MESSAGE
from fleet_copilot.ai.tools.dashcam import GetDashcamMediaTool
from fleet_copilot.ai.tools.safety_events import GetSafetyEventsTool, describe_type
from fleet_copilot.ai.tools.tags import GetTagsTool
from fleet_copilot.ai.tools.trips import GetTripsTool, format_duration
from fleet_copilot.ai.tools.vehicle_stats import GetVehicleStatsTool
from fleet_copilot.ai.tools.vehicles import GetVehiclesTool
from fleet_copilot.core.clock import FrozenClock
from fleet_copilot.fleet.media_store import MediaPersistenceStore
from fleet_copilot.fleet.resolver import EntityResolver
from fleet_copilot.fleet.retry_window import RetryWindowFetcher
from fleet_copilot.fleet.tag_sync import TagSyncCache
from fleet_copilot.services.http_fetch import HttpFetchService
from fleet_copilot.storage.blob_store import LocalBlobStore
from fleet_copilot.storage.models import TagRecord
from helpers import make_telematics, seed_vehicles


def _page(data):
    return httpx.Response(200, json={"data": data, "pagination": {"hasNextPage": False}})


class FakeFleetApi:
    """Routes telematics and CDN requests; records every request it sees."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.media_calls = 0
        self.stats_status = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "cdn.test":
            return httpx.Response(200, content=b"jpeg-bytes")

        match request.url.path:
            case "/fleet/vehicles/stats":
                if self.stats_status != 200:
                    return httpx.Response(self.stats_status)
                return _page(
                    [
                        {
                            "id": "v1",
                            "name": "T-606",
                            "gps": {
                                "latitude": 19.4326,
                                "longitude": -99.1332,
                                "speedMilesPerHour": 0,
                                "headingDegrees": 90,
                                "time": "2024-12-31T23:58:00Z",
                                "reverseGeo": {"formattedLocation": "Centro, Mexico City"},
                            },
                        }
                    ]
                )
            case "/cameras/media":
                self.media_calls += 1
                if self.media_calls < 2:
                    return httpx.Response(200, json={"data": {"media": []}})
                return httpx.Response(
                    200,
                    json={
                        "data": {
                            "media": [
                                {
                                    "vehicleId": "v1",
                                    "input": "dashcamRoadFacing",
                                    "mediaType": "image",
                                    "startTime": "2024-12-31T23:52:00Z",
                                    "urlInfo": {"url": "https://cdn.test/media/road1.jpeg?sig=a"},
                                },
                                {
                                    "vehicleId": "v1",
                                    "input": "dashcamDriverFacing",
                                    "mediaType": "image",
                                    "startTime": "2024-12-31T23:55:00Z",
                                    "urlInfo": {"url": "https://cdn.test/media/cabin1.jpeg?sig=b"},
                                },
                            ]
                        }
                    },
                )
            case "/safety-events/stream":
                return _page(
                    [
                        {
                            "asset": {"id": "v1", "name": "T-606"},
                            "behaviorLabels": [{"label": "harshBraking"}],
                            "eventState": "needsReview",
                            "createdAtTime": f"2024-12-31T23:{minute:02d}:00Z",
                        }
                        for minute in range(10, 22)
                    ]
                )
            case "/fleet/trips":
                return _page(
                    [
                        {
                            "asset": {"id": "v1", "name": "T-606", "type": "vehicle"},
                            "completionStatus": "completed",
                            "tripStartTime": "2024-12-31T20:00:00Z",
                            "tripEndTime": "2024-12-31T22:15:00Z",
                            "startLocation": {
                                "latitude": 19.4,
                                "longitude": -99.1,
                                "address": {"street": "Av. Reforma 1", "city": "CDMX"},
                            },
                        }
                    ]
                )
            case "/tags":
                return _page([{"id": "t1", "name": "North", "vehicles": [{"id": "v1", "name": "T-606"}]}])
        return httpx.Response(404)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def api() -> FakeFleetApi:
    return FakeFleetApi()


@pytest.fixture
async def telematics(api):
    service = make_telematics(api)
    await service.start()
    yield service
    await service.stop()


@pytest.fixture
async def http_fetch(api):
    service = HttpFetchService(transport=httpx.MockTransport(api))
    await service.start()
    yield service
    await service.stop()


@pytest.fixture
async def resolver(vehicles):
    await seed_vehicles(vehicles, ["T-606", "Van 1", "Van 2"])
    return EntityResolver(vehicles)


class TestVehicleStats:
    @pytest.mark.asyncio
    async def test_ambiguous_name_asks_for_clarification(self, resolver, telematics, api):
        tool = GetVehicleStatsTool(resolver, telematics)

        result = await tool.execute(vehicle_names="Van")

        assert result == {
            "error": False,
            "needs_clarification": True,
            "message": CLARIFICATION_MESSAGE,
            "suggestions": {"Van": [{"id": "v2", "name": "Van 1"}, {"id": "v3", "name": "Van 2"}]},
        }
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_unknown_name_is_an_error(self, resolver, telematics):
        result = await GetVehicleStatsTool(resolver, telematics).execute(vehicle_names="Forklift")

        assert result == {"error": True, "message": "No vehicles found matching: Forklift"}

    @pytest.mark.asyncio
    async def test_location_only_emits_location_card(self, resolver, telematics, api):
        result = await GetVehicleStatsTool(resolver, telematics).execute(vehicle_names="camion 606", stat_types="gps")

        assert api.requests[0].url.params["vehicleIds"] == "v1"
        vehicle = result["vehicles"][0]
        assert vehicle["location"]["address"] == "Centro, Mexico City"
        card = vehicle["_cardData"]["location"]
        assert card["vehicleName"] == "T-606"
        assert card["mapsLink"] == "https://www.google.com/maps?q=19.4326,-99.1332"

    @pytest.mark.asyncio
    async def test_partial_resolution_keeps_suggestions(self, resolver, telematics):
        result = await GetVehicleStatsTool(resolver, telematics).execute(vehicle_names="T-606, Van")

        assert result["total_vehicles"] == 1
        assert "vehicleStats" in result["vehicles"][0]["_cardData"]
        assert list(result["unresolved_suggestions"]) == ["Van"]

    @pytest.mark.asyncio
    async def test_upstream_failure_becomes_error_result(self, resolver, telematics, api):
        api.stats_status = 500

        output = json.loads(await GetVehicleStatsTool(resolver, telematics).invoke({"vehicle_names": "T-606"}))

        assert output == {
            "error": True,
            "message": "GetVehicleStats failed: Telematics API returned HTTP 500 for /fleet/vehicles/stats",
        }


class TestDashcamMedia:
    @pytest.mark.asyncio
    async def test_widens_window_and_persists_media(self, tmp_path, resolver, vehicles, telematics, http_fetch, api, clock):
        store = MediaPersistenceStore(LocalBlobStore(tmp_path / "storage"), http_fetch)
        tool = GetDashcamMediaTool(resolver, vehicles, telematics, RetryWindowFetcher(clock), store)

        result = await tool.execute(vehicle_names="T-606")

        assert result["found"] is True
        assert result["search_info"]["attempts"] == 2
        assert result["search_info"]["range_minutes"] == 10
        assert result["search_info"]["end_time"] == "2025-01-01T00:00:00Z"
        assert result["total_media"] == 2

        group = result["media"][0]
        assert group["vehicleName"] == "T-606"
        assert set(group["byType"]) == {"dashcamRoadFacing", "dashcamDriverFacing"}
        images = group["_cardData"]["dashcamMedia"]["images"]
        assert [i["type"] for i in images] == ["dashcamDriverFacing", "dashcamRoadFacing"]
        assert all(i["isPersisted"] and i["url"].startswith("/storage/dashcam-media/v1/") for i in images)

        cdn_requests = [r for r in api.requests if r.url.host == "cdn.test"]
        assert len(cdn_requests) == 2

    @pytest.mark.asyncio
    async def test_nothing_found_within_range(self, tmp_path, resolver, vehicles, telematics, http_fetch, api, clock):
        store = MediaPersistenceStore(LocalBlobStore(tmp_path / "storage"), http_fetch)
        tool = GetDashcamMediaTool(resolver, vehicles, telematics, RetryWindowFetcher(clock), store)

        result = await tool.execute(vehicle_names="T-606", max_search_minutes=5)

        assert result["found"] is False
        assert result["search_info"]["attempts"] == 1
        assert result["media"] == []
        assert "message" in result


class TestSafetyEvents:
    @pytest.mark.asyncio
    async def test_events_are_truncated_and_summarized(self, resolver, telematics, clock):
        tool = GetSafetyEventsTool(resolver, telematics, RetryWindowFetcher(clock))

        result = await tool.execute(vehicle_names="T-606", limit=7)

        assert result["total_events"] == 7
        assert result["search_range_hours"] == 1.0
        group = result["events"][0]
        assert group["vehicle_name"] == "T-606"
        assert len(group["events"]) == 5
        assert group["events"][0]["timestamp"] == "2024-12-31T23:21:00Z"
        assert result["summary_by_type"] == {describe_type("harshBraking"): 7}
        assert result["summary_by_state"] == {"Needs review": 7}
        assert result["_cardData"]["safetyEvents"]["totalEvents"] == 7


class TestTrips:
    def test_format_duration(self):
        assert format_duration(45) == "45 min"
        assert format_duration(60) == "1 h"
        assert format_duration(135) == "2 h 15 min"

    @pytest.mark.asyncio
    async def test_defaults_to_first_vehicles(self, vehicles, telematics, api, clock):
        await seed_vehicles(vehicles, [f"Unit {n}" for n in range(1, 8)])
        tool = GetTripsTool(EntityResolver(vehicles), vehicles, telematics, clock=clock)

        result = await tool.execute()

        params = api.requests[-1].url.params
        assert params["vehicleIds"] == "v1,v2,v3,v4,v5"
        assert params["startTime"] == "2024-12-31T00:00:00Z"
        trip = result["trips"][0]["trips"][0]
        assert trip["duration_formatted"] == "2 h 15 min"
        assert trip["start_location"]["address"] == "Av. Reforma 1, CDMX"
        assert result["summary_by_status"] == {"Completed": 1}
        assert "trips" in result["_cardData"]

    @pytest.mark.asyncio
    async def test_empty_directory(self, vehicles, telematics, clock):
        tool = GetTripsTool(EntityResolver(vehicles), vehicles, telematics, clock=clock)

        result = await tool.execute()

        assert result == {"error": True, "message": "There are no vehicles registered in the system."}


class TestDirectoryTools:
    @pytest.mark.asyncio
    async def test_get_vehicles_by_tag(self, resolver, vehicles, tags):
        await tags.upsert(TagRecord(external_id="t1", name="North", data_hash="h", vehicles=[{"id": "v1"}]))
        tool = GetVehiclesTool(vehicles, tags)

        result = await tool.execute(tag_name="north")

        assert result["total_vehicles"] == 1
        assert result["tags"] == ["North"]
        assert [v["name"] for v in result["vehicles"]] == ["T-606"]

    @pytest.mark.asyncio
    async def test_get_vehicles_summary_and_note(self, resolver, vehicles, tags):
        tool = GetVehiclesTool(vehicles, tags)

        assert await tool.execute(summary_only=True) == {"total_vehicles": 3}
        listed = await tool.execute(limit=2)
        assert listed["showing"] == 2
        assert "note" in listed

    @pytest.mark.asyncio
    async def test_get_tags_syncs_once_per_interval(self, telematics, tags, kv_cache, clock, api):
        tool = GetTagsTool(TagSyncCache(telematics, tags, kv_cache, clock=clock))

        first = await tool.execute(include_hierarchy=True)
        second = await tool.execute()

        assert first["sync_status"] == "Sync completed: 1 created, 0 updated, 0 unchanged."
        assert first["tags"][0]["hierarchy_path"] == ["North"]
        assert second["sync_status"] == "Data from local cache (last sync: just now)"
        assert second["summary"]["tags_with_vehicles"] == 1
        assert sum(r.url.path == "/tags" for r in api.requests) == 1
