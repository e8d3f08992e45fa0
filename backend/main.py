import json
import logging
import os

import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, ValidationError
from typing import Any, Dict, List, Optional

from coaches import HttpVoiceChannel, QueuedVoiceChannel
from coaches.exercise_configs import EXERCISE_CONFIGS
from coaches.realtime_coach import describe_priorities
from form_engine import build_exercise_config
from frame_processor import DEFAULT_THROTTLE_MS, FrameProcessor
from pose_backends import build_pose_backend, get_available_backends

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

POSE_BACKEND_NAME = os.getenv("POSE_BACKEND", "mediapipe_2d")
FEEDBACK_THROTTLE_MS = int(os.getenv("FEEDBACK_THROTTLE_MS", str(DEFAULT_THROTTLE_MS)))
VOICE_CONTROL_URL = os.getenv("VOICE_CONTROL_URL")
VOICE_COOLDOWN_SECONDS = float(os.getenv("VOICE_COOLDOWN_SECONDS", "3"))

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class CommandMessage(BaseModel):
    command: str

    model_config = ConfigDict(extra="allow")  # command-specific fields pass through


class FrameMessage(BaseModel):
    landmarks: Optional[List[Dict[str, Any]]] = None
    frame: Optional[str] = None
    ts: Optional[float] = None

    model_config = ConfigDict(extra="ignore")


@app.get("/")
def read_root():
    return {
        "message": "Welcome to the rehab form coach - real-time exercise feedback API",
        "pose_backend": POSE_BACKEND_NAME,
        "available_backends": get_available_backends(),
        "exercises": sorted(EXERCISE_CONFIGS),
    }


@app.get("/exercises")
def list_exercises():
    exercises = []
    for exercise_id in sorted(EXERCISE_CONFIGS):
        config = build_exercise_config(exercise_id)
        exercises.append(
            {
                "id": exercise_id,
                "name": config.name,
                "phases": list(config.phases),
                "initial_phase": config.initial_phase,
                "rep_edges": [f"{t.source}->{t.target}" for t in config.transitions if t.counts_rep],
                "errors": sorted({c.error for checks in config.checks.values() for c in checks}
                                 | {rc.error for rc in config.rep_checks}),
            }
        )
    return {"exercises": exercises, "error_priorities": describe_priorities()}


def build_processor() -> FrameProcessor:
    channel = HttpVoiceChannel(VOICE_CONTROL_URL) if VOICE_CONTROL_URL else QueuedVoiceChannel()
    return FrameProcessor(
        estimator_factory=lambda: build_pose_backend(POSE_BACKEND_NAME),
        channel=channel,
        throttle_ms=FEEDBACK_THROTTLE_MS,
        voice_cooldown_s=VOICE_COOLDOWN_SECONDS,
    )


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    logger.info(
        "WebSocket connection attempt received (backend=%s).", POSE_BACKEND_NAME
    )
    await websocket.accept()
    logger.info("WebSocket connection accepted.")

    processor = build_processor()

    try:
        while True:
            data = await websocket.receive_text()

            try:
                parsed = json.loads(data)
            except json.JSONDecodeError:
                parsed = None
            if not isinstance(parsed, dict):
                logger.warning("Received malformed data packet")
                await websocket.send_json({"event": "error", "message": "Expected a JSON object"})
                continue

            if "command" in parsed:
                try:
                    command = CommandMessage.model_validate(parsed)
                except ValidationError as e:
                    await websocket.send_json({"event": "error", "message": str(e)})
                    continue
                response = await run_in_threadpool(processor.handle_command, command.model_dump())
                if response:
                    await websocket.send_json(response)
                continue

            try:
                frame = FrameMessage.model_validate(parsed)
            except ValidationError as e:
                await websocket.send_json({"event": "error", "message": str(e)})
                continue
            if frame.landmarks is None and frame.frame is None:
                logger.warning("Frame message without landmarks or image")
                continue

            # Inference may block; everything else runs in order for this connection
            payload = await run_in_threadpool(processor.handle_frame, frame.model_dump(exclude_none=True))
            if payload:
                await websocket.send_json(payload)

    except WebSocketDisconnect:
        logger.info("Client disconnected")
    except Exception as websocket_error:
        logger.error("WebSocket connection error: %s", websocket_error)
    finally:
        processor.close()
        logger.info("Client connection closed")


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")), loop="uvloop")
