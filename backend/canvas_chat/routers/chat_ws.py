from __future__ import annotations

# --- canvas_chat/routers/chat_ws.py ---
# Duplex chat channel between the browser and the drawing assistant.
#
#   Route:  /ws
#
# Client -> server frames: {"type": "chat", "messages": [...], "prompt"?: "..."}
# Server -> client frames: {"type": "text"} | {"type": "elements"} | {"type": "done"} | {"type": "error"}
#
# One JSON object per frame. Chat requests on a connection are served one at a
# time: the next frame is not read until the current turn has sent its
# terminal event. The channel is neither authenticated nor rate-limited.

import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from canvas_chat.api_models import ChatRequest, ErrorEvent
from canvas_chat.core.llm import LLMClient
from canvas_chat.dependencies import get_demux_policy, get_llm_client
from canvas_chat.services.chat_session import run_chat_turn, safe_send_json
from canvas_chat.services.stream_demux import DemuxPolicy

log = logging.getLogger(__name__)

router = APIRouter()


async def _send_error(ws: WebSocket, message: str) -> None:
    await safe_send_json(ws, ErrorEvent(message=message).model_dump(), "error frame")


@router.websocket("/ws")
async def chat_stream(
    ws: WebSocket,
    llm: LLMClient = Depends(get_llm_client),
    policy: DemuxPolicy = Depends(get_demux_policy),
):
    """Receive chat requests and stream narration / drawing events back."""
    await ws.accept()
    log.info("[chat_ws] Client connected")

    try:
        while True:
            try:
                raw = await ws.receive_text()
            except WebSocketDisconnect:
                break

            try:
                frame = json.loads(raw)
            except json.JSONDecodeError as e:
                log.warning("[chat_ws] Received invalid JSON frame: %s", e)
                await _send_error(ws, f"Invalid JSON: {e}")
                continue

            if not isinstance(frame, dict) or frame.get("type") != "chat":
                log.debug("[chat_ws] Ignoring frame of unsupported type: %.100s", raw)
                continue

            try:
                request = ChatRequest.model_validate(frame)
            except ValidationError as e:
                log.warning("[chat_ws] Invalid chat request: %s", e)
                await _send_error(ws, f"Invalid chat request: {e.errors()[0].get('msg', 'validation error')}")
                continue

            await run_chat_turn(ws, request, llm, policy)
    except Exception as e:
        log.error("[chat_ws] Unexpected error in chat loop: %s", e, exc_info=True)
        await _send_error(ws, str(e))
    finally:
        log.info("[chat_ws] Client disconnected")
