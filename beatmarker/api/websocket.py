"""WebSocket endpoint for live beat tracking."""

import asyncio
import json
import logging

import numpy as np
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from beatmarker.analysis.session import TrackerSession
from beatmarker.api.schemas import BeatMessage, StatusMessage
from beatmarker.api.upload import event_to_response
from beatmarker.config import TrackerConfig
from beatmarker.errors import InvalidConfiguration

logger = logging.getLogger(__name__)

router = APIRouter()

_STATUS_INTERVAL_SECONDS = 1.0


def _parse_command(text: str) -> str | None:
    """Return the ``type`` of a text command, or None if it is not a JSON object."""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    return payload.get("type")


@router.websocket("/ws/live")
async def live_tracking(
    websocket: WebSocket,
    sample_rate: int | None = None,
    beats_per_bar: int | None = None,
):
    """Live beat tracking via WebSocket.

    Protocol:
    - Client sends binary Float32 PCM chunks (mono, ``sample_rate`` Hz)
    - Client may send text commands: {"type": "reset"} or {"type": "stop"}
    - Server sends JSON messages:
      - {"type": "beat", "data": {...}} for every detected beat
      - {"type": "status", "seconds": N, "frames": K, "tempo": BPM} about once a second
      - {"type": "error", "message": "..."}
    """
    await websocket.accept()

    overrides = {}
    if sample_rate is not None:
        overrides["sample_rate"] = sample_rate
    if beats_per_bar is not None:
        overrides["beats_per_bar"] = beats_per_bar
    try:
        session = TrackerSession(TrackerConfig.from_settings(**overrides))
    except InvalidConfiguration as e:
        await websocket.send_json({"type": "error", "message": str(e)})
        await websocket.close(code=1008)
        return

    loop = asyncio.get_running_loop()
    last_status = 0.0

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            if message.get("text") is not None:
                command = _parse_command(message["text"])
                if command is None:
                    await websocket.send_json({"type": "error", "message": "Commands must be JSON objects"})
                    continue
                if command == "reset":
                    session.reset()
                    last_status = 0.0
                elif command == "stop":
                    session.stop()
                    await websocket.close()
                    break
                else:
                    await websocket.send_json({"type": "error", "message": f"Unknown command: {command!r}"})
                continue

            data = message.get("bytes") or b""
            if len(data) < 4:
                continue
            chunk = np.frombuffer(data[:len(data) - len(data) % 4], dtype=np.float32)

            # Keep the event loop free while the hop computations run.
            events = await loop.run_in_executor(None, session.process, chunk)
            for event in events:
                await websocket.send_json(BeatMessage(data=event_to_response(event)).model_dump())

            seconds = session.samples_consumed / session.config.sample_rate
            if seconds - last_status >= _STATUS_INTERVAL_SECONDS:
                last_status = seconds
                await websocket.send_json(StatusMessage(
                    seconds=round(seconds, 2),
                    frames=session.frames_processed,
                    tempo=round(session.current_tempo(), 1),
                    dropped_samples=session.dropped_samples,
                ).model_dump())

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.exception("Live tracking failed")
        try:
            await websocket.send_json({"type": "error", "message": str(e)})
            await websocket.close(code=1011)
        except Exception:
            pass
    finally:
        session.stop()
