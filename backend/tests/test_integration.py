"""
Integration Tests for the Tennis Form Analyzer API
Tests the session flow from creation through frame submission to reset.
"""

import json

import pytest
from fastapi.testclient import TestClient

import main
from main import app, registry


@pytest.fixture
def client():
    """Create test client"""
    registry.clear()
    yield TestClient(app)
    registry.clear()


@pytest.fixture
def keypoints(standing_points):
    """Standing pose as request keypoints"""
    return [
        {"name": name, "x": x, "y": y, "score": 0.9}
        for name, (x, y) in standing_points.items()
    ]


@pytest.fixture
def session_id(client):
    response = client.post("/api/sessions", json={"stroke_type": "forehand", "camera_viewpoint": "side"})
    return response.json()["session_id"]


class TestHealthEndpoints:
    """Test health check endpoints"""

    def test_root_endpoint(self, client):
        """Test root endpoint returns service info"""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "Tennis" in data["service"]

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health_live_endpoint(self, client):
        response = client.get("/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_health_ready_endpoint(self, client):
        """Ready while sessions can still be opened"""
        response = client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["sessions"] == 0

    def test_correlation_header(self, client):
        """Correlation IDs are echoed back"""
        response = client.get("/health", headers={"X-Correlation-ID": "abc123"})
        assert response.headers["X-Correlation-ID"] == "abc123"
        assert "X-Process-Time-Ms" in response.headers


class TestSessionEndpoints:
    """Test session lifecycle"""

    def test_create_session(self, client):
        response = client.post("/api/sessions", json={"stroke_type": "serve"})
        assert response.status_code == 201
        data = response.json()
        assert data["stroke_type"] == "serve"
        assert data["camera_viewpoint"] == "rear-elevated"
        assert data["last_result"] is None

    def test_create_session_invalid_stroke(self, client):
        """Unknown stroke types are rejected"""
        response = client.post("/api/sessions", json={"stroke_type": "lob"})
        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "VALIDATION_ERROR"
        assert data["details"]["field"] == "stroke_type"

    def test_create_session_invalid_interval(self, client):
        response = client.post("/api/sessions", json={"update_interval_ms": 0})
        assert response.status_code == 422

    def test_get_and_list(self, client, session_id):
        response = client.get(f"/api/sessions/{session_id}")
        assert response.status_code == 200
        assert response.json()["session_id"] == session_id

        listed = client.get("/api/sessions").json()["sessions"]
        assert [s["session_id"] for s in listed] == [session_id]

    def test_get_nonexistent_session(self, client):
        response = client.get("/api/sessions/nonexistent")
        assert response.status_code == 404
        assert response.json()["error"] == "SESSION_NOT_FOUND"

    def test_update_session(self, client, session_id):
        response = client.patch(f"/api/sessions/{session_id}", json={"stroke_type": "auto"})
        assert response.status_code == 200
        data = response.json()
        assert data["stroke_type"] == "auto"
        assert data["camera_viewpoint"] == "side"

    def test_delete_session(self, client, session_id):
        response = client.delete(f"/api/sessions/{session_id}")
        assert response.status_code == 200
        assert response.json() == {"deleted": session_id}
        assert client.get(f"/api/sessions/{session_id}").status_code == 404


class TestFrameEndpoint:
    """Test frame submission"""

    def test_submit_frame(self, client, session_id, keypoints):
        response = client.post(
            f"/api/sessions/{session_id}/frames",
            json={"timestamp": 0.0, "keypoints": keypoints}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["updated"] is True
        assert data["reason"] == "analyzed"
        assert data["result"]["status"] == "ok"
        assert data["result"]["camera_viewpoint"] == "side"
        assert data["report"]["score"] == data["result"]["score"]
        assert len(data["overlay"]["keypoints"]) == 17

    def test_throttled_frame(self, client, session_id, keypoints):
        client.post(f"/api/sessions/{session_id}/frames", json={"timestamp": 0.0, "keypoints": keypoints})
        response = client.post(
            f"/api/sessions/{session_id}/frames",
            json={"timestamp": 0.1, "keypoints": keypoints}
        )
        data = response.json()
        assert data["updated"] is False
        assert data["reason"] == "throttled"

    def test_no_pose(self, client, session_id):
        response = client.post(
            f"/api/sessions/{session_id}/frames",
            json={"timestamp": 0.0, "keypoints": None}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["reason"] == "no_pose"
        assert data["result"]["status"] == "no_data"
        assert data["overlay"] is None

    def test_positional_keypoints(self, client, session_id, keypoints):
        """Unnamed keypoints are taken in landmark order"""
        from core.keypoints import BodyLandmark

        by_name = {kp["name"]: kp for kp in keypoints}
        ordered = [
            {k: v for k, v in by_name[lm.key].items() if k != "name"}
            for lm in BodyLandmark
        ]
        response = client.post(
            f"/api/sessions/{session_id}/frames",
            json={"timestamp": 0.0, "keypoints": ordered}
        )
        assert response.status_code == 200
        assert response.json()["result"]["status"] == "ok"

    def test_unknown_landmark(self, client, session_id, keypoints):
        keypoints[0] = {"name": "tail", "x": 1.0, "y": 1.0, "score": 0.9}
        response = client.post(
            f"/api/sessions/{session_id}/frames",
            json={"timestamp": 0.0, "keypoints": keypoints}
        )
        assert response.status_code == 422
        assert response.json()["error"] == "INVALID_KEYPOINT_DATA"

    def test_score_out_of_range(self, client, session_id, keypoints):
        keypoints[0]["score"] = 1.5
        response = client.post(
            f"/api/sessions/{session_id}/frames",
            json={"timestamp": 0.0, "keypoints": keypoints}
        )
        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_non_finite_coordinate_rejected(self, client, session_id, keypoints):
        """A NaN coordinate is refused and the next valid frame still analyzes"""
        url = f"/api/sessions/{session_id}/frames"
        assert client.post(url, json={"timestamp": 0.0, "keypoints": keypoints}).status_code == 200

        keypoints[10] = {**keypoints[10], "x": float("nan")}
        response = client.post(
            url,
            content=json.dumps({"timestamp": 0.5, "keypoints": keypoints}),
            headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"

        keypoints[10] = {**keypoints[10], "x": 375.0}
        response = client.post(url, json={"timestamp": 1.0, "keypoints": keypoints})
        assert response.status_code == 200
        assert response.json()["reason"] == "analyzed"

    def test_frame_for_unknown_session(self, client, keypoints):
        response = client.post("/api/sessions/missing/frames", json={"timestamp": 0.0, "keypoints": keypoints})
        assert response.status_code == 404

    def test_reset(self, client, session_id, keypoints):
        client.post(f"/api/sessions/{session_id}/frames", json={"timestamp": 0.0, "keypoints": keypoints})

        response = client.post(f"/api/sessions/{session_id}/reset")
        assert response.status_code == 200
        data = response.json()
        assert data["last_result"] is None
        assert data["history_length"] == 0


class TestRateLimiting:
    """Test limiter wiring"""

    def test_limiter_attached(self):
        from middleware.rate_limiter import limiter

        assert app.state.limiter is limiter

    def test_requests_under_limit(self, client):
        """Requests under the limit pass through unchanged"""
        for _ in range(3):
            assert client.post("/api/sessions", json={}).status_code == 201


class TestVideoAnalysis:
    """Test the one-off video analysis route"""

    @pytest.fixture
    def video_dir(self, tmp_path, monkeypatch):
        monkeypatch.setattr(main.settings, "VIDEO_DIR", str(tmp_path))
        app.dependency_overrides[main.get_pose_source] = lambda: None
        yield tmp_path
        app.dependency_overrides.clear()

    def test_missing_video(self, client, video_dir):
        response = client.post("/api/analyze", json={"video_name": "missing.mp4"})
        assert response.status_code == 404
        assert response.json()["error"] == "VIDEO_NOT_FOUND"

    def test_name_outside_video_dir(self, client, video_dir):
        """Names may not climb out of the video directory"""
        response = client.post("/api/analyze", json={"video_name": "../secret.mp4"})
        assert response.status_code == 400
        assert response.json()["details"]["field"] == "video_name"

    def test_runs_video_analysis(self, client, video_dir, monkeypatch):
        """The route hands the resolved file and a configured session to the video pipeline"""
        (video_dir / "rally.mp4").write_bytes(b"\x00" * 16)
        calls = {}

        async def fake_analyze_video(path, session=None, source=None, options=None, max_frames=None):
            calls.update(path=path, session=session, max_frames=max_frames)
            return {"session": session.config_dict(), "results": []}

        monkeypatch.setattr(main, "analyze_video", fake_analyze_video)
        response = client.post(
            "/api/analyze",
            json={"video_name": "rally.mp4", "stroke_type": "serve", "camera_viewpoint": "side", "max_frames": 30}
        )

        assert response.status_code == 200
        assert response.json()["session"]["stroke_type"] == "serve"
        assert calls["path"] == str((video_dir / "rally.mp4").resolve())
        assert calls["max_frames"] == 30
        assert calls["session"].camera_viewpoint.value == "side"
        # One-off sessions are not registered
        assert len(registry) == 0
