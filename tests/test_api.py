import httpx
import pytest
from fastapi.testclient import TestClient

from fleet_copilot.ai.agent import FleetAgent
from fleet_copilot.ai.client import AIResponse
from fleet_copilot.app import FleetCopilotApp
from fleet_copilot.config import AppConfig
from fleet_copilot.core.clock import FrozenClock
from fleet_copilot.server.api import create_app
from helpers import TELEMATICS_URL, FakeAIClient, parse_sse


def _empty_api(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"data": []})


@pytest.fixture
def config(tmp_path) -> AppConfig:
    return AppConfig(
        data_dir=str(tmp_path),
        anthropic={"api_key": "test-key"},
        telematics={"api_token": "test-token", "base_url": TELEMATICS_URL},
        media={"base_path": str(tmp_path / "storage")},
        storage={"db_path": str(tmp_path / "fleet.db")},
    )


@pytest.fixture
def client(config):
    replies = [([f"Reply {n}"], AIResponse(text=f"Reply {n}", stop_reason="end_turn", model="m", input_tokens=12, output_tokens=3)) for n in range(5)]
    ai_client = FakeAIClient(replies)

    def agent_factory(app: FleetCopilotApp) -> FleetAgent:
        return FleetAgent(ai_client, app.tool_registry, app.threads, clock=app.clock)

    copilot = FleetCopilotApp(
        config,
        clock=FrozenClock(),
        transport=httpx.MockTransport(_empty_api),
        agent_factory=agent_factory,
    )
    with TestClient(create_app(copilot)) as test_client:
        yield test_client


def _send(client, message, thread_id=None):
    payload = {"message": message}
    if thread_id:
        payload["thread_id"] = thread_id
    return client.post("/api/copilot/send", json=payload)


class TestSend:
    def test_streams_a_new_conversation(self, client):
        response = _send(client, "hello")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        events = parse_sse(response.text)
        assert [e["type"] for e in events] == ["start", "chunk", "done"]
        assert events[0]["is_new_conversation"] is True
        assert events[1]["content"] == "Reply 0"
        assert events[2]["tokens"] == {"input": 12, "output": 3, "total": 15}

    def test_continues_existing_thread(self, client):
        thread_id = parse_sse(_send(client, "hello").text)[0]["thread_id"]

        events = parse_sse(_send(client, "more", thread_id).text)

        assert events[0] == {"type": "start", "thread_id": thread_id, "is_new_conversation": False}

    def test_unknown_thread_is_404(self, client):
        response = _send(client, "hello", "does-not-exist")

        assert response.status_code == 404

    @pytest.mark.parametrize("message", ["", "x" * 10001])
    def test_message_length_is_validated(self, client, message):
        assert _send(client, message).status_code == 422


class TestThreads:
    def test_list_detail_delete(self, client):
        thread_id = parse_sse(_send(client, "where is T-606?").text)[0]["thread_id"]

        listing = client.get("/api/copilot/threads").json()
        assert [t["thread_id"] for t in listing["threads"]] == [thread_id]
        assert listing["threads"][0]["title"] == "where is T-606?"
        assert listing["threads"][0]["total_tokens"] == 15

        detail = client.get(f"/api/copilot/threads/{thread_id}").json()
        assert [(m["role"], m["content"]) for m in detail["messages"]] == [
            ("user", "where is T-606?"),
            ("assistant", "Reply 0"),
        ]

        assert client.delete(f"/api/copilot/threads/{thread_id}").json() == {"deleted": True}
        assert client.get(f"/api/copilot/threads/{thread_id}").status_code == 404
        assert client.delete(f"/api/copilot/threads/{thread_id}").status_code == 404


class TestStorage:
    def test_serves_persisted_media(self, client, tmp_path):
        target = tmp_path / "storage" / "dashcam-media" / "v1" / "frame.jpg"
        target.parent.mkdir(parents=True)
        target.write_bytes(b"jpeg-bytes")

        response = client.get("/storage/dashcam-media/v1/frame.jpg")

        assert response.status_code == 200
        assert response.content == b"jpeg-bytes"
        assert response.headers["cache-control"] == "public, max-age=3600"

    def test_missing_file_is_404(self, client):
        assert client.get("/storage/dashcam-media/v1/missing.jpg").status_code == 404

    def test_other_prefixes_are_forbidden(self, client, tmp_path):
        (tmp_path / "storage").mkdir(exist_ok=True)
        (tmp_path / "storage" / "secret.txt").write_text("nope")

        assert client.get("/storage/secret.txt").status_code == 403
        assert client.get("/storage/private/file.jpg").status_code == 403


def test_health(client):
    body = client.get("/health").json()

    assert body["status"] == "ok"
    assert body["checks"]["storage"] is True
