from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from session_replay.webapp import create_app


@pytest.fixture
def client(session_dir, scheduler) -> TestClient:
    return TestClient(create_app(log_dir=session_dir, scheduler=scheduler))


def test_status(client, session_dir):
    body = client.get("/api/status").json()
    assert body["log_directory"] == str(session_dir)
    assert body["keystroke_count"] == 5
    assert body["event_count"] == 11
    assert body["files"] == ["Main.java", "Util.java"]
    assert body["compression_enabled"] is False
    assert body["playback"]["status"] == "paused"


def test_logs(client):
    body = client.get("/api/logs").json()
    events = body["events"]
    assert len(events) == 11
    assert events[0]["type"] == "app_activated"
    inserts = [event for event in events if event["type"] == "insert"]
    assert inserts[0]["inserted_text"] == "class Main {}"
    assert inserts[0]["length"] == 13
    assert inserts[0]["timestamp"] == "2024-01-01T10:00:01.000"
    assert body["file_errors"] == {}


def test_session_overview(client):
    body = client.get("/api/session").json()
    assert body["keystroke_count"] == 5
    assert body["start_time"] == "2024-01-01T10:00:01"
    assert body["session_start"] == pytest.approx(10 + 1 / 3600)
    assert body["timeline"]["end"] == pytest.approx(body["session_end"])
    assert [segment["filename"] for segment in body["file_segments"]] == [
        "Main.java",
        "Util.java",
    ]
    assert len(body["segments"]) == 2
    assert len(body["app_segments"]) == 2
    assert len(body["typing_segments"]) == 1


def test_document(client):
    response = client.get("/api/document", params={"file": "Main.java", "index": 1})
    assert response.status_code == 200
    assert response.json() == {"file": "Main.java", "index": 1, "content": "class Main {\n}"}

    default = client.get("/api/document").json()
    assert default["file"] == "Main.java"
    assert default["index"] == 0
    assert default["content"] == "class Main {}"

    missing = client.get("/api/document", params={"file": "Nope.java"})
    assert missing.status_code == 404


def test_malformed_edit_is_unprocessable(session_dir, scheduler):
    (session_dir / "changes" / "Bad.java.log").write_text(
        "2024-01-01T10:05:00.000: Text deleted at position 3 (length: 2)\n",
        encoding="utf-8",
    )
    client = TestClient(create_app(log_dir=session_dir, scheduler=scheduler))
    response = client.get("/api/document", params={"file": "Bad.java", "index": 5})
    assert response.status_code == 422


def test_compression_toggle(client):
    assert client.get("/api/compression").json()["enabled"] is False

    response = client.put("/api/compression", json={"enabled": True})
    assert response.status_code == 200
    body = response.json()
    assert body["enabled"] is True
    assert body["gap_threshold_ms"] == pytest.approx(180_000)
    assert len(body["gaps"]) == 1
    assert body["gaps"][0]["duration_minutes"] == 9
    assert body["total_compressed_duration"] == pytest.approx(65_000)
    assert client.get("/api/status").json()["compression_enabled"] is True

    assert client.put("/api/compression", json={"enabled": False}).json()["enabled"] is False


def test_compression_rejects_unknown_file_and_fields(client):
    assert client.put("/api/compression", json={"file": "Nope.java"}).status_code == 404
    assert client.put("/api/compression", json={"threshold": 3}).status_code == 422
    assert client.put("/api/compression", json={"buffer_ms": -1}).status_code == 422


def test_compression_change_keeps_speed_and_position(client):
    client.post("/api/playback/speed", json={"speed": 2})
    client.post("/api/playback/skip-to-end")
    client.put("/api/compression", json={"enabled": True})
    state = client.get("/api/playback").json()
    assert state["playback_speed"] == 2.0
    assert state["current_index"] == 4
    assert state["status"] == "scrubbing"


def test_playback_actions(client, scheduler):
    body = client.post("/api/playback/play").json()
    assert body["status"] == "playing"
    scheduler.advance(300_000)
    body = client.post("/api/playback/pause").json()
    assert body["status"] == "paused"
    assert 0 < body["current_index"] < 4

    assert client.post("/api/playback/restart").json()["current_index"] == 0
    assert client.post("/api/playback/skip-to-end").json()["current_index"] == 4
    assert client.post("/api/playback/skip-backward").json()["current_index"] == 3
    assert client.post("/api/playback/toggle").json()["status"] == "playing"
    assert client.post("/api/playback/rewind").status_code == 404


def test_playback_details(client):
    body = client.get("/api/playback").json()
    assert body["current_file"] == "Main.java"
    assert body["activity"] == "active"
    assert body["typing_speed"] == 0


def test_scrub(client, scheduler):
    session_end = client.get("/api/session").json()["session_end"]
    body = client.post("/api/playback/scrub", json={"time": session_end}).json()
    assert body["status"] == "scrubbing"
    assert body["current_index"] == 4
    scheduler.advance(500)
    assert client.get("/api/playback").json()["status"] == "paused"


def test_speed_bounds(client):
    assert client.post("/api/playback/speed", json={"speed": 10}).status_code == 400
    assert client.post("/api/playback/speed", json={"speed": 0}).status_code == 422
    response = client.post("/api/playback/speed", json={"speed": 0.5})
    assert response.status_code == 200
    assert response.json()["playback_speed"] == 0.5


def test_reload_picks_up_new_logs(client, session_dir):
    (session_dir / "changes" / "New.java.log").write_text(
        '2024-01-01T10:11:00.000: Text inserted at position 0: "new"\n',
        encoding="utf-8",
    )
    body = client.post("/api/session/reload").json()
    assert body["keystroke_count"] == 6
    assert "New.java" in body["files"]
    document = client.get("/api/document", params={"file": "New.java", "index": 5}).json()
    assert document["content"] == "new"


def test_missing_ui(client):
    assert client.get("/").status_code == 404
