"""Integration tests for stablediff.api.main - the full HTTP service.

All tests drive the FastAPI app through ``TestClient`` with its lifespan
running, against a SQLite task store in a temporary directory.  They cover:

- The documented routing scenarios (list, submit, status, artifact, errors).
- Survival of task records and the id counter across a restart.
- The health probe and CORS headers.
"""

from __future__ import annotations

import io
import re
import struct

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from stablediff.api.main import create_app
from stablediff.core.config import StableDiffConfig

# ---------------------------------------------------------------------------
# Routing scenarios.
# ---------------------------------------------------------------------------


class TestRoutingScenarios:
    """End-to-end walk through list -> submit -> status -> artifact."""

    def test_list_empty_store(self, test_client):
        resp = test_client.get("/tasks")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"] == []

    def test_submit_returns_task_id(self, test_client):
        resp = test_client.post("/generate", json={"prompt": "a red cat"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert re.fullmatch(r"task_\d+", body["data"])

    def test_status_of_completed_task(self, test_client):
        task_id = test_client.post("/generate", json={"prompt": "a red cat"}).json()["data"]

        resp = test_client.get(f"/task/{task_id}")
        assert resp.status_code == 200
        record = resp.json()["data"]
        assert record["status"] == "Completed"
        assert record["result"]
        assert record["error"] is None
        assert record["completed_at"] >= record["created_at"]

    def test_artifact_default_size(self, test_client):
        task_id = test_client.post("/generate", json={"prompt": "a red cat"}).json()["data"]

        resp = test_client.get(f"/image/{task_id}")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("image/")
        body = resp.content
        assert body[:2] == b"BM"
        assert len(body) == 54 + 512 * 512 * 3
        assert struct.unpack("<I", body[2:6])[0] == len(body)
        assert Image.open(io.BytesIO(body)).size == (512, 512)

    def test_status_unknown_task(self, test_client):
        resp = test_client.get("/task/does-not-exist")
        assert resp.status_code == 404
        assert resp.json()["success"] is False

    def test_artifact_of_failed_task(self, test_client):
        task_id = test_client.post("/generate", json={"prompt": "x", "width": 0}).json()["data"]

        status = test_client.get(f"/task/{task_id}").json()["data"]
        assert status["status"] == "Failed"
        assert status["result"] is None
        assert status["error"]

        resp = test_client.get(f"/image/{task_id}")
        assert resp.status_code != 200
        assert resp.headers["content-type"] == "application/json"
        assert resp.json()["success"] is False

    def test_unknown_route(self, test_client):
        resp = test_client.get("/nowhere")
        assert resp.status_code == 404
        assert resp.json()["success"] is False

    def test_invalid_body(self, test_client):
        resp = test_client.post(
            "/generate", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_non_finite_guidance_rejected(self, test_client):
        resp = test_client.post(
            "/generate",
            content=b'{"prompt": "x", "guidance_scale": NaN}',
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["success"] is False
        assert test_client.get("/tasks").json()["data"] == []

    def test_oversized_request_recorded_as_failed(self, test_client):
        resp = test_client.post("/generate", json={"prompt": "x", "width": 2**31, "height": 2**31})
        assert resp.status_code == 200
        task_id = resp.json()["data"]

        status = test_client.get(f"/task/{task_id}").json()["data"]
        assert status["status"] == "Failed"
        assert "exceeds the maximum" in status["error"]
        assert test_client.get("/tasks").json()["data"] == [task_id]

        follow_up = test_client.post("/generate", json={"prompt": "x", "width": 16, "height": 16})
        assert follow_up.json()["data"] == "task_2"

    @pytest.mark.parametrize("method", ["OPTIONS", "PUT", "DELETE"])
    def test_unrouted_verb_gets_not_found_envelope(self, test_client, method):
        resp = test_client.request(method, "/tasks")
        assert resp.status_code == 404
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == "Not Found"

    def test_head_is_not_found(self, test_client):
        resp = test_client.head("/tasks")
        assert resp.status_code == 404
        assert resp.headers["content-type"] == "application/json"

    def test_query_string_ignored(self, test_client):
        resp = test_client.get("/tasks?page=2")
        assert resp.status_code == 200
        assert resp.json()["data"] == []

    def test_listing_grows(self, test_client):
        ids = []
        for i in range(3):
            resp = test_client.post("/generate", json={"prompt": f"p{i}", "width": 16, "height": 16})
            ids.append(resp.json()["data"])
        assert test_client.get("/tasks").json()["data"] == ids
        assert len(set(ids)) == 3


# ---------------------------------------------------------------------------
# Determinism and durability.
# ---------------------------------------------------------------------------


class TestDeterminism:
    """Same parameters, same bytes."""

    def test_identical_requests_identical_images(self, test_client):
        payload = {
            "prompt": "a red cat",
            "negative_prompt": "blurry",
            "width": 64,
            "height": 48,
            "step_count": 5,
            "guidance_scale": 5.0,
            "seed": 77,
        }
        first = test_client.post("/generate", json=payload).json()["data"]
        second = test_client.post("/generate", json=payload).json()["data"]
        assert first != second
        first_image = test_client.get(f"/image/{first}").content
        assert first_image == test_client.get(f"/image/{second}").content


class TestRestart:
    """Task records and the id counter survive a restart."""

    def test_records_survive_restart(self, test_config: StableDiffConfig):
        payload = {"prompt": "a red cat", "width": 32, "height": 32, "seed": 3}

        with TestClient(create_app(test_config)) as client:
            ids = [client.post("/generate", json=payload).json()["data"] for _ in range(3)]
            before = {task_id: client.get(f"/task/{task_id}").json()["data"] for task_id in ids}
            image = client.get(f"/image/{ids[0]}").content

        with TestClient(create_app(test_config)) as client:
            assert client.get("/tasks").json()["data"] == ids
            for task_id in ids:
                assert client.get(f"/task/{task_id}").json()["data"] == before[task_id]
            assert client.get(f"/image/{ids[0]}").content == image

            new_id = client.post("/generate", json=payload).json()["data"]
            assert new_id not in ids
            assert new_id == "task_4"

            # Regenerating after restart reproduces the same bytes.
            assert client.get(f"/image/{new_id}").content == image


# ---------------------------------------------------------------------------
# Ancillary endpoints.
# ---------------------------------------------------------------------------


class TestHealth:
    """Test GET /health."""

    def test_health(self, test_client):
        resp = test_client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"


class TestCors:
    """Cross-origin requests are allowed."""

    def test_allow_origin_header(self, test_client):
        resp = test_client.get("/tasks", headers={"Origin": "http://example.com"})
        assert resp.headers.get("access-control-allow-origin") == "*"
