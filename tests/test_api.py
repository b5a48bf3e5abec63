import json

import pytest
from fastapi.testclient import TestClient

import main
from conftest import FakeGenaiClient, make_image
from recognition import RecognitionClient

RESPONSE = json.dumps({
    "presentNames": ["Alice"],
    "absentNames": ["Bob"],
    "confidence": "High",
    "reasoning": "Alice is visible near the window",
})


@pytest.fixture
def client():
    with TestClient(main.app) as test_client:
        yield test_client


@pytest.fixture
def fake_service(client):
    fake = FakeGenaiClient(text=RESPONSE)
    main.recognizer = RecognitionClient(client=fake)
    return fake


def enroll(client, name, width=800, height=600):
    response = client.post(
        "/students/",
        data={"name": name},
        files={"file": ("photo.png", make_image(width, height, fmt="PNG"), "image/png")}
    )
    assert response.status_code == 200
    return response.json()


def test_health_without_api_key(client):
    body = client.get("/health").json()

    assert body["status"] == "running"
    assert body["recognizer_ready"] is False


def test_enroll_normalizes_photo(client):
    body = enroll(client, "Alice", 2000, 1000)

    assert body["photo_size"] == {"width": 512, "height": 256}
    students = client.get("/students/").json()["students"]
    assert [s["name"] for s in students] == ["Alice"]
    assert students[0]["photo"].startswith("data:image/jpeg;base64,")


def test_enroll_rejects_bad_image(client):
    response = client.post(
        "/students/",
        data={"name": "Alice"},
        files={"file": ("photo.png", b"nope", "image/png")}
    )

    assert response.status_code == 400


def test_delete_student(client):
    student_id = enroll(client, "Alice")["student_id"]

    assert client.delete(f"/students/{student_id}").status_code == 200
    assert client.delete(f"/students/{student_id}").status_code == 404
    assert client.get("/students/").json()["students"] == []


def test_attendance_without_recognizer(client):
    enroll(client, "Alice")

    response = client.post("/attendance/", files={"file": ("scene.jpg", make_image(), "image/jpeg")})

    assert response.status_code == 503


def test_attendance_with_empty_roster(client, fake_service):
    response = client.post("/attendance/", files={"file": ("scene.jpg", make_image(), "image/jpeg")})

    assert response.status_code == 400
    assert fake_service.models.calls == []


def test_attendance_report_and_dashboard(client, fake_service):
    alice = enroll(client, "Alice")["student_id"]
    enroll(client, "Bob")

    response = client.post("/attendance/", files={"file": ("scene.jpg", make_image(), "image/jpeg")})

    assert response.status_code == 200
    report = response.json()
    assert report["present_student_ids"] == [alice]
    assert report["present_count"] == 1
    assert report["absent_count"] == 1
    assert report["confidence"] == "High"

    history = client.get("/attendance/").json()["attendance"]
    assert [r["id"] for r in history] == [report["record_id"]]
    assert history[0]["note"] == "Alice is visible near the window"

    dashboard = client.get("/dashboard").json()
    assert dashboard["total_students"] == 2
    assert dashboard["session_count"] == 1
    assert dashboard["average_attendance"] == 50
    assert dashboard["last_session_absent"] == 1
    assert dashboard["trend"][0]["present"] == 1


def test_malformed_service_reply_is_502_and_not_recorded(client, fake_service):
    enroll(client, "Alice")
    fake_service.models.text = '{"absentNames": ["Alice"]}'

    response = client.post("/attendance/", files={"file": ("scene.jpg", make_image(), "image/jpeg")})

    assert response.status_code == 502
    assert client.get("/attendance/").json()["attendance"] == []


def test_capture_requires_live_camera(client, fake_service):
    enroll(client, "Alice")

    assert client.post("/attendance/capture").status_code == 409
    assert client.get("/camera/frame").status_code == 409


def test_camera_mode_falls_back_when_device_denied(client, monkeypatch):
    class DeniedCapture:
        def isOpened(self):
            return False

        def release(self):
            pass

    monkeypatch.setattr(main.camera, "capture_factory", lambda index: DeniedCapture())

    body = client.post("/camera/mode", data={"mode": "live"}).json()

    assert body["mode"] == "upload"
    assert body["fallback"] is True
    assert body["error"]
    assert main.camera.active_tracks == 0


def test_invalid_camera_mode(client):
    assert client.post("/camera/mode", data={"mode": "infrared"}).status_code == 400


def test_empty_dashboard(client):
    body = client.get("/dashboard").json()

    assert body == {
        "total_students": 0,
        "session_count": 0,
        "average_attendance": 0,
        "last_session_absent": 0,
        "trend": []
    }
