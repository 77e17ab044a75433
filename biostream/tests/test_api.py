"""
Tests for the HTTP and WebSocket interface.
"""

import asyncio

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState

from biostream.acquisition.simulator import PacketSimulator
from biostream.api.main import app
from biostream.api.websocket import ConnectionManager, StreamSession, manager
from biostream.pipeline import BandPowerEvent


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:
    """Test health and metrics endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["active_sessions"] == 0
        assert body["connected_sessions"] == 0

    def test_root_describes_stream(self, client):
        stream = client.get("/").json()["stream"]

        assert stream["record_size"] == 7
        assert stream["bands"]["alpha"] == [8.0, 12.0]

    def test_metrics_without_sessions(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.json() == {"active_sessions": 0, "sessions": {}}


class TestStreamSocket:
    """Test the streaming WebSocket protocol."""

    def test_payload_before_start(self, client):
        with client.websocket_connect("/ws/stream/early") as ws:
            ws.send_bytes(b"\x00" * 7)
            message = ws.receive_json()

        assert message["type"] == "error"
        assert message["code"] == "NO_ACTIVE_SESSION"

    def test_invalid_text_frame(self, client):
        with client.websocket_connect("/ws/stream/garbled") as ws:
            ws.send_text("not json")
            message = ws.receive_json()

        assert message["code"] == "INVALID_MESSAGE"

    def test_unknown_message_type(self, client):
        with client.websocket_connect("/ws/stream/unknown") as ws:
            ws.send_json({"type": "calibrate"})
            message = ws.receive_json()

        assert message["code"] == "UNKNOWN_MESSAGE_TYPE"

    def test_stream_band_power(self, client):
        simulator = PacketSimulator(seed=3)

        with client.websocket_connect("/ws/stream/session-1") as ws:
            ws.send_json({"type": "start_session"})
            started = ws.receive_json()
            assert started["type"] == "session_started"
            assert started["sample_rate"] == 500
            assert started["record_size"] == 7
            assert started["bands"] == ["delta", "theta", "alpha", "beta", "gamma"]

            for _ in range(40):
                ws.send_bytes(simulator.next_packet(10))

            message = ws.receive_json()
            while message["type"] != "band_power":
                message = ws.receive_json()

            assert set(message["ch0"]) == set(started["bands"])
            assert sum(message["ch0"].values()) == pytest.approx(1.0)

            ws.send_json({"type": "stop_session"})
            message = ws.receive_json()
            while message["type"] != "session_stopped":
                message = ws.receive_json()

        assert message["metrics"]["total_samples_processed"] == 400
        assert message["metrics"]["lost_events"] == 0

    def test_duplicate_session_id_rejected(self, client):
        with client.websocket_connect("/ws/stream/dup") as first:
            first.send_json({"type": "start_session"})
            assert first.receive_json()["type"] == "session_started"

            with client.websocket_connect("/ws/stream/dup") as second:
                message = second.receive_json()
                assert message["type"] == "error"
                assert message["code"] == "SESSION_IN_USE"
                with pytest.raises(WebSocketDisconnect):
                    second.receive_json()

            assert manager.sessions["dup"].pipeline is not None

            first.send_json({"type": "stop_session"})
            assert first.receive_json()["type"] == "session_stopped"


class FailingSocket:
    """Accepts, then fails every send."""

    def __init__(self, error):
        self.error = error
        self.client_state = WebSocketState.CONNECTED

    async def accept(self):
        pass

    async def send_json(self, message):
        raise self.error


def band_power_event() -> BandPowerEvent:
    return BandPowerEvent(session=1, sample_index=0, ch0={}, ch1={})


class TestConnectionManager:
    """Test session teardown when event delivery fails."""

    @pytest.mark.asyncio
    async def test_forwarder_exits_on_closed_socket(self):
        sessions = ConnectionManager()
        await sessions.connect(FailingSocket(WebSocketDisconnect(code=1006)), "s")
        pipeline = await sessions.start_pipeline("s")
        forwarder = sessions.sessions["s"].forwarder

        pipeline.results.put_nowait(band_power_event())
        await asyncio.wait_for(forwarder, timeout=1.0)

        assert forwarder.exception() is None

        await sessions.disconnect("s", sessions.sessions["s"])

        assert not pipeline.is_running
        assert "s" not in sessions.sessions

    @pytest.mark.asyncio
    async def test_pipeline_stopped_when_forwarder_failed(self):
        sessions = ConnectionManager()
        session = await sessions.connect(FailingSocket(ValueError("boom")), "s")
        pipeline = await sessions.start_pipeline("s")

        pipeline.results.put_nowait(band_power_event())
        await asyncio.sleep(0.1)

        with pytest.raises(ValueError):
            await sessions.disconnect("s", session)

        assert not pipeline.is_running
        assert "s" not in sessions.sessions

    @pytest.mark.asyncio
    async def test_stale_disconnect_keeps_current_session(self):
        sessions = ConnectionManager()
        current = await sessions.connect(FailingSocket(RuntimeError()), "s")
        stale = StreamSession(FailingSocket(RuntimeError()))

        await sessions.disconnect("s", stale)

        assert sessions.sessions["s"] is current
