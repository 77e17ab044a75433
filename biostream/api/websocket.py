"""
WebSocket endpoint for streaming raw sensor payloads.

One connection owns at most one RealtimePipeline. Binary frames are sensor
payloads and go straight to `RealtimePipeline.ingest`; text frames are JSON
control messages. Pipeline events are forwarded by a background task.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from fastapi.websockets import WebSocketState

from biostream.core.config import get_settings
from biostream.core.exceptions import BiostreamError
from biostream.core.logging import get_logger, session_context
from biostream.pipeline.realtime_pipeline import RealtimePipeline

logger = get_logger(__name__)

router = APIRouter()


@dataclass
class StreamSession:
    """A connected client and its (optional) running pipeline."""
    websocket: WebSocket
    pipeline: Optional[RealtimePipeline] = None
    forwarder: Optional[asyncio.Task] = None

    @property
    def is_connected(self) -> bool:
        return self.websocket.client_state == WebSocketState.CONNECTED


class ConnectionManager:
    """
    Tracks stream sessions by id.
    """

    def __init__(self) -> None:
        self.sessions: Dict[str, StreamSession] = {}

    @property
    def pipelines(self) -> Dict[str, RealtimePipeline]:
        """Running pipelines keyed by session id."""
        return {
            session_id: session.pipeline
            for session_id, session in self.sessions.items()
            if session.pipeline is not None
        }

    async def connect(self, websocket: WebSocket, session_id: str) -> Optional[StreamSession]:
        """
        Accept the socket and register a session for it.

        Returns:
            The new session, or None if the id is already in use (the socket
            is told why and closed)
        """
        await websocket.accept()
        if session_id in self.sessions:
            logger.warning("websocket_session_id_in_use")
            await websocket.send_json({
                "type": "error",
                "code": "SESSION_IN_USE",
                "message": f"Session {session_id!r} is already connected"
            })
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return None

        session = StreamSession(websocket)
        self.sessions[session_id] = session
        logger.info("websocket_connected")
        return session

    async def disconnect(self, session_id: str, session: StreamSession) -> None:
        """Stop the session's pipeline and forget it, if it is still registered."""
        if self.sessions.get(session_id) is not session:
            return
        try:
            await self.stop_pipeline(session_id)
        finally:
            self.sessions.pop(session_id, None)
            logger.info("websocket_disconnected")

    async def send_message(self, session_id: str, message: dict) -> bool:
        """
        Send a JSON message to a session.

        Returns:
            True if sent, False if the session is gone or closed
        """
        session = self.sessions.get(session_id)
        if session is None or not session.is_connected:
            return False
        await session.websocket.send_json(message)
        return True

    async def send_error(self, session_id: str, code: str, message: str) -> None:
        await self.send_message(session_id, {
            "type": "error",
            "code": code,
            "message": message
        })

    async def start_pipeline(self, session_id: str) -> RealtimePipeline:
        """Start a fresh pipeline for the session, replacing a running one."""
        await self.stop_pipeline(session_id)

        session = self.sessions[session_id]
        pipeline = RealtimePipeline(get_settings())
        await pipeline.start()

        session.pipeline = pipeline
        session.forwarder = asyncio.create_task(self._forward_events(session_id, pipeline))
        return pipeline

    async def stop_pipeline(self, session_id: str) -> Dict:
        """
        Stop the session's pipeline, if any.

        Returns:
            Pipeline metrics at the moment of stopping, empty if none was running
        """
        session = self.sessions.get(session_id)
        if session is None or session.pipeline is None:
            return {}

        pipeline, forwarder = session.pipeline, session.forwarder
        session.pipeline = None
        session.forwarder = None

        metrics = pipeline.get_metrics()
        try:
            if forwarder is not None:
                forwarder.cancel()
                try:
                    await forwarder
                except asyncio.CancelledError:
                    pass
        finally:
            await pipeline.stop()
        return metrics

    async def _forward_events(self, session_id: str, pipeline: RealtimePipeline) -> None:
        """Send every published pipeline event to the client."""
        while True:
            event = await pipeline.results.get()
            try:
                sent = await self.send_message(session_id, event.to_dict())
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.info("event_forwarding_failed", event_type=event.type, error=str(e))
                return
            if not sent:
                logger.debug("event_forwarding_stopped", event_type=event.type)
                return


# Global connection manager
manager = ConnectionManager()


@router.websocket("/ws/stream/{session_id}")
async def websocket_endpoint(websocket: WebSocket, session_id: str):
    """
    Streaming WebSocket.

    Client sends:
    - binary frames: raw sensor payloads (7-byte records)
    - {"type": "start_session"}: create a fresh pipeline
    - {"type": "stop_session"}: stop the pipeline, keep the socket open

    Server sends:
    - session_started / session_stopped
    - band_power: smoothed relative band power per EEG channel
    - heart_rate: BPM statistics, beats and HRV
    - error: {"code", "message"}
    """
    with session_context(session_id):
        session = await manager.connect(websocket, session_id)
        if session is None:
            return

        try:
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    break

                if frame.get("bytes") is not None:
                    await handle_payload(session_id, frame["bytes"])
                else:
                    await handle_control(session_id, frame.get("text") or "")

        except WebSocketDisconnect:
            logger.info("websocket_client_disconnected")

        except Exception as e:
            logger.exception("websocket_error", error=str(e))

        finally:
            await manager.disconnect(session_id, session)


async def handle_control(session_id: str, text: str) -> None:
    """Dispatch a JSON control message."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        await manager.send_error(session_id, "INVALID_MESSAGE", "Text frames must be JSON objects")
        return

    message_type = data.get("type") if isinstance(data, dict) else None

    if message_type == "start_session":
        pipeline = await manager.start_pipeline(session_id)
        config = pipeline.config
        await manager.send_message(session_id, {
            "type": "session_started",
            "sample_rate": config.sample_rate,
            "fft_size": config.fft_size,
            "bands": list(config.bands),
            "record_size": pipeline.decoder.record_size,
        })

    elif message_type == "stop_session":
        metrics = await manager.stop_pipeline(session_id)
        await manager.send_message(session_id, {
            "type": "session_stopped",
            "metrics": metrics,
        })

    else:
        await manager.send_error(
            session_id, "UNKNOWN_MESSAGE_TYPE", f"Unknown message type: {message_type}"
        )


async def handle_payload(session_id: str, payload: bytes) -> None:
    """Feed one sensor payload into the session's pipeline."""
    session = manager.sessions.get(session_id)
    if session is None or session.pipeline is None:
        await manager.send_error(
            session_id, "NO_ACTIVE_SESSION", "Send start_session before streaming data"
        )
        return

    try:
        session.pipeline.ingest(payload)
    except BiostreamError as e:
        await manager.send_error(session_id, e.code, e.message)
