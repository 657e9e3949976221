import asyncio

import pytest
from fastapi.testclient import TestClient

from conftest import make_chunk
from strata.config import Settings
from strata.errors import PersistenceFailure
from strata.main import create_app


@pytest.fixture
def client(tmp_path):
    config = Settings(database_path=str(tmp_path / "api.db"), world_id="api-test", redis_url=None)
    with TestClient(create_app(config)) as test_client:
        yield test_client


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "running"
    assert data["world_id"] == "api-test"


def test_get_chunk(client):
    response = client.get("/world/chunk", params={"x": 1, "y": -1})
    assert response.status_code == 200
    data = response.json()

    assert data["success"] is True
    assert data["coordinates"] == {"x": 1, "y": -1}
    assert data["chunkSize"] == 16
    assert len(data["terrain"]) == 16
    assert all(len(row) == 16 for row in data["terrain"])
    assert data["metadata"]["generationMethod"] == "multi_layer_noise"

    again = client.get("/world/chunk", params={"x": 1, "y": -1}).json()
    assert again["terrain"] == data["terrain"]


def test_get_chunk_out_of_range(client):
    response = client.get("/world/chunk", params={"x": 1_000_000, "y": 0})
    assert response.status_code == 400


def test_chunk_range_matches_the_world_stream(client):
    assert client.get("/world/chunk", params={"x": 100_000, "y": 0}).status_code == 400

    with client.websocket_connect("/ws/world-stream") as ws:
        ws.receive_json()
        ws.send_json({"type": "requestChunk", "chunkX": 100_000, "chunkY": 0})
        reply = ws.receive_json()
    assert reply["type"] == "chunkError"


def test_nearby_resources(client):
    response = client.get("/world/nearby-resources", params={"x": 8, "y": 8, "radius": 40})
    assert response.status_code == 200
    data = response.json()

    assert data["success"] is True
    assert data["query"]["radius"] == 40
    distances = [r["distance"] for r in data["resources"]]
    assert distances == sorted(distances)
    assert all(d <= 40 for d in distances)


def test_nearby_resources_validates_radius(client):
    response = client.get("/world/nearby-resources", params={"x": 0, "y": 0, "radius": 0})
    assert response.status_code == 422


def test_nearby_resources_out_of_range(client):
    response = client.get("/world/nearby-resources", params={"x": 2_000_000, "y": 0, "radius": 10})
    assert response.status_code == 400


def test_generate_test_resources(client):
    response = client.post("/world/generate-test-resources", params={"x": 0, "y": 0})
    assert response.status_code == 200
    data = response.json()
    assert data["chunk"] == {"chunkX": 0, "chunkY": 0}
    assert data["generated"] == len(data["resources"])


def test_world_stream(client):
    with client.websocket_connect("/ws/world-stream") as ws:
        assert ws.receive_json()["type"] == "connected"

        ws.send_text("ping")
        assert ws.receive_text() == "pong"

        ws.send_json({"type": "requestChunk", "chunkX": 0, "chunkY": 0, "requestId": "one"})
        reply = ws.receive_json()
        assert reply["type"] == "chunkData"
        assert reply["requestId"] == "one"
        assert len(reply["data"]["cells"]) == 16

        ws.send_json({
            "type": "updateViewport",
            "requestId": "view",
            "visibleChunks": [{"chunkX": 0, "chunkY": 0}],
            "cameraX": 256,
            "cameraY": 256,
        })
        messages = [ws.receive_json() for _ in range(10)]

    chunk_messages = [m for m in messages if m["type"] == "chunkData"]
    assert len(chunk_messages) == 9
    assert chunk_messages[0]["priority"] == "viewport"
    assert all(m["priority"] == "low" for m in chunk_messages[1:])
    assert messages[-1]["type"] == "viewportComplete"
    assert messages[-1]["chunksStreamed"] == 1
    assert messages[-1]["prefetchChunksStreamed"] == 8


def test_world_stream_rejects_garbage(client):
    with client.websocket_connect("/ws/world-stream") as ws:
        ws.receive_json()
        ws.send_text("{oops")
        reply = ws.receive_json()
    assert reply["type"] == "error"
    assert reply["message"] == "Invalid message format"


def test_cache_route_lists_actions(client):
    data = client.get("/cache").json()
    assert data["success"] is True
    assert data["availableActions"] == ["stats", "clear"]


def test_cache_stats_and_clear(client):
    cache = client.app.state.cache
    for world, x in [("api-test", 0), ("api-test", 1), ("other", 0)]:
        asyncio.run(cache.set_chunk(world, x, 0, make_chunk(x, 0)))

    stats = client.get("/cache", params={"action": "stats"}).json()
    assert stats["success"] is True
    assert stats["cachedChunks"] == 2
    assert sorted(stats["chunkKeys"]) == ["chunks:api-test:0:0", "chunks:api-test:1:0"]

    cleared = client.get("/cache", params={"action": "clear"}).json()
    assert cleared == {"success": True, "message": "Cleared 2 cached chunks"}
    assert client.get("/cache", params={"action": "stats"}).json()["cachedChunks"] == 0
    assert len(cache.entries) == 1


def test_cache_failure_is_reported_in_the_body(client):
    class DownCache:
        async def stats(self, world_id):
            raise PersistenceFailure("cache", "stats", world_id, ConnectionError("refused"))

    client.app.state.cache = DownCache()
    data = client.get("/cache", params={"action": "stats"}).json()
    assert data["success"] is False
    assert "refused" in data["error"]
