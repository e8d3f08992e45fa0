import pytest
from fastapi.concurrency import run_in_threadpool
from fastapi.testclient import TestClient

import main
from conftest import make_frame


@pytest.fixture
def client():
    return TestClient(main.app)


def test_root(client):
    body = client.get("/").json()
    assert body["pose_backend"] == main.POSE_BACKEND_NAME
    assert "client" in body["available_backends"]
    assert "squat" in body["exercises"]


def test_exercise_catalog(client):
    body = client.get("/exercises").json()
    squat = next(e for e in body["exercises"] if e["id"] == "squat")
    assert squat["name"] == "Squat"
    assert squat["rep_edges"] == ["ascending->standing"]
    assert "forward_lean" in squat["errors"]
    assert body["error_priorities"]["forward_lean"] == "HIGH"


def test_websocket_session_round_trip(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        assert ws.receive_json()["event"] == "error"

        ws.send_json([1, 2, 3])
        assert ws.receive_json() == {"event": "error", "message": "Expected a JSON object"}

        ws.send_json({"command": "start_session", "exercise": "squat", "sets": 1, "reps": 3})
        started = ws.receive_json()
        assert started["event"] == "session_started"
        assert started["progress"]["total_reps_target"] == 3

        ws.send_json({"landmarks": [lm.to_dict() for lm in make_frame()], "ts": 1000})
        frame = ws.receive_json()
        assert frame["event"] == "analysis"
        assert frame["analysis"]["phase"] == "standing"
        assert frame["client_ts"] == 1000

        ws.send_json({"command": "finish_session"})
        assert ws.receive_json()["event"] == "session_ended"


def test_websocket_unknown_command(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"command": "dance"})
        assert ws.receive_json() == {"event": "error", "message": "Unknown command 'dance'"}


def test_commands_and_frames_run_off_the_event_loop(client, monkeypatch):
    dispatched = []

    async def recording_threadpool(func, *args):
        dispatched.append(func.__name__)
        return await run_in_threadpool(func, *args)

    monkeypatch.setattr(main, "run_in_threadpool", recording_threadpool)
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"command": "start_session", "exercise": "squat"})
        assert ws.receive_json()["event"] == "session_started"
        ws.send_json({"landmarks": [lm.to_dict() for lm in make_frame()], "ts": 1000})
        assert ws.receive_json()["event"] == "analysis"

    assert dispatched == ["handle_command", "handle_frame"]
