from __future__ import annotations

import base64
import json
import threading

import cv2
import numpy as np
import pytest
from fastapi.testclient import TestClient

import ipd_service
import main
from ipd_engine.config import IPDConfig
from ipd_engine.storage import InMemoryStore

W, H = 1280, 720


class FakeLandmarkSource:
    def __init__(self, landmarks):
        self.landmarks = landmarks
        self.frames = []

    def detect(self, frame):
        self.frames.append(frame.shape)
        return self.landmarks


@pytest.fixture
def service(make_landmarks, monkeypatch):
    svc = ipd_service.IPDService(
        config=IPDConfig(),
        store=InMemoryStore(),
        landmark_source=FakeLandmarkSource(make_landmarks()),
    )
    monkeypatch.setattr(main, "get_ipd_service", lambda: svc)
    return svc


@pytest.fixture
def client(service) -> TestClient:
    return TestClient(main.app)


def _frame(landmarks) -> dict:
    return {"landmarks": landmarks.tolist(), "width": W, "height": H}


def test_health(client) -> None:
    assert client.get("/").json()["status"] == "ok"


def test_observe_landmarks_uncalibrated(client, make_landmarks) -> None:
    response = client.post("/api/observe-landmarks", json=_frame(make_landmarks()))

    assert response.status_code == 200
    body = response.json()
    assert body["face_detected"] is True
    assert body["ipd_px"] == pytest.approx(200.0)
    assert body["ipd_cm"] is None
    assert body["distance_mode"] == "unavailable"


def test_observe_without_landmarks_is_no_face(client) -> None:
    body = client.post("/api/observe-landmarks", json={"landmarks": None, "width": W, "height": H}).json()

    assert body["face_detected"] is False
    assert body["warning"] == "no_face"


def test_observe_rejects_short_landmarks(client) -> None:
    response = client.post("/api/observe-landmarks", json={"landmarks": [[0.5, 0.5]] * 10, "width": W, "height": H})

    assert response.status_code == 400


def test_focal_then_iris_calibration_flow(client, make_landmarks) -> None:
    frames = [_frame(make_landmarks(left_radius=50.0, right_radius=50.0))] * 15

    body = client.post("/api/calibrate/focal", json={"frames": frames}).json()
    assert body["success"] is True
    assert body["calibration"]["f_px"] == pytest.approx(100.0 * 30.0 / 1.17)

    body = client.post("/api/calibrate/iris", json={"frames": frames}).json()
    assert body["success"] is True
    assert body["calibration"]["iris_cm"] == pytest.approx(1.17)

    measured = client.post("/api/observe-landmarks", json=frames[0]).json()
    assert measured["distance_cm"] == pytest.approx(30.0)
    assert measured["ipd_cm"] == pytest.approx(200.0 * 30.0 / (100.0 * 30.0 / 1.17) + 0.6)


def test_iris_calibration_precondition(client, make_landmarks) -> None:
    body = client.post("/api/calibrate/iris", json={"frames": [_frame(make_landmarks())] * 12}).json()

    assert body["success"] is False
    assert body["reason"] == "precondition_failed"


def test_calibration_with_too_few_frames_fails(client, make_landmarks) -> None:
    body = client.post("/api/calibrate/focal", json={"frames": [_frame(make_landmarks())] * 9}).json()

    assert body["success"] is False
    assert body["reason"] == "insufficient_samples"
    assert body["calibration"]["f_px"] is None


def test_unknown_calibration_kind(client) -> None:
    assert client.post("/api/calibrate/zoom", json={"frames": []}).status_code == 400


def test_concurrent_calibration_returns_conflict(client, service) -> None:
    started = threading.Event()
    release = threading.Event()

    def held_frames():
        started.set()
        release.wait(timeout=5)
        yield from ()

    worker = threading.Thread(target=service.calibrate, args=("focal", held_frames()))
    worker.start()
    try:
        assert started.wait(timeout=5)
        response = client.post("/api/calibrate/focal", json={"frames": []})
        assert client.get("/api/calibration").json()["calibrating"] is True
    finally:
        release.set()
        worker.join(timeout=5)

    assert response.status_code == 409
    assert client.get("/api/calibration").json()["calibrating"] is False


def test_reset_and_fixed_distance(client, make_landmarks) -> None:
    client.post("/api/calibrate/focal", json={"frames": [_frame(make_landmarks())] * 12})

    body = client.post("/api/reset").json()
    assert body["calibration"]["f_px"] is None

    status = client.post("/api/fixed-distance", json={"enabled": True}).json()
    assert status["use_fixed_distance"] is True

    measured = client.post("/api/observe-landmarks", json=_frame(make_landmarks())).json()
    assert measured["distance_mode"] == "fixed"
    assert measured["distance_cm"] == 30.0

    assert client.get("/api/calibration").json()["use_fixed_distance"] is True


def test_observe_image_uses_landmark_source(client, service) -> None:
    image = np.zeros((H, W, 3), dtype=np.uint8)
    ok, encoded = cv2.imencode(".png", image)
    assert ok
    payload = "data:image/png;base64," + base64.b64encode(encoded.tobytes()).decode()

    response = client.post("/api/observe", json={"image": payload})

    assert response.status_code == 200
    assert response.json()["ipd_px"] == pytest.approx(200.0)
    assert service.landmark_source.frames == [(H, W, 3)]


def test_observe_rejects_bad_image(client) -> None:
    response = client.post("/api/observe", json={"image": base64.b64encode(b"not an image").decode()})

    assert response.status_code == 400


def test_non_finite_landmarks_rejected_without_poisoning_streams(client, service, make_landmarks) -> None:
    good = _frame(make_landmarks())
    for _ in range(6):
        assert client.post("/api/observe-landmarks", json=good).status_code == 200

    bad = _frame(make_landmarks())
    bad["landmarks"][473][0] = float("nan")
    response = client.post(
        "/api/observe-landmarks",
        content=json.dumps(bad),
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code in (400, 422)

    statuses = [client.post("/api/observe-landmarks", json=good).status_code for _ in range(5)]
    assert statuses == [200] * 5
    assert service.pipeline.ipd_stream.current() == pytest.approx(200.0)
