from __future__ import annotations

from typing import Any, AsyncIterable, Optional
import time
import uuid

import structlog
from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState

from canvas_chat.api_models import ChatRequest, DoneEvent, ErrorEvent
from canvas_chat.core.llm import LLMClient
from canvas_chat.metrics import CHAT_TURNS, TURN_DURATION
from canvas_chat.prompts import SYSTEM_PROMPT
from canvas_chat.services.stream_demux import DemuxPolicy, demultiplex

log = structlog.get_logger(__name__)


def is_connected(ws: WebSocket) -> bool:
    return ws.client_state == WebSocketState.CONNECTED


async def safe_send_json(ws: WebSocket, data: Any, log_context: str = "") -> bool:
    """Attempts to send JSON data, returning False if the socket is closed."""
    try:
        if not is_connected(ws):
            log.warning("send_skipped", context=log_context, state=str(ws.client_state))
            return False
        await ws.send_json(data)
        return True
    except (RuntimeError, WebSocketDisconnect) as e:
        # Errors specifically related to sending on a closed/closing socket
        log.warning("send_failed", context=log_context, error=str(e))
        return False


def open_model_stream(llm: LLMClient, request: ChatRequest) -> AsyncIterable[str]:
    """Token stream for one chat request; the request's prompt overrides the default."""
    messages = [m.model_dump() for m in request.messages]
    return llm.stream_text(messages, system=request.prompt or SYSTEM_PROMPT)


async def run_chat_turn(
    ws: WebSocket,
    request: ChatRequest,
    llm: LLMClient,
    policy: Optional[DemuxPolicy] = None,
) -> Optional[str]:
    """Stream one assistant turn to *ws*.

    Every demuxed event becomes one JSON frame, in stream order. Returns the
    terminal event type (``"done"`` / ``"error"``), or ``None`` when the
    client went away before the turn finished. The turn is not resumed on
    reconnect.
    """
    turn_log = log.bind(turn_id=uuid.uuid4().hex[:8], history=len(request.messages))
    if not is_connected(ws):
        turn_log.info("turn_skipped_socket_closed")
        return None

    turn_log.info("turn_started")
    started = time.perf_counter()
    stream = demultiplex(open_model_stream(llm, request), policy)
    try:
        async for event in stream:
            if not await safe_send_json(ws, event.model_dump(), f"turn event {event.type}"):
                turn_log.info("turn_abandoned", last_event=event.type)
                return None
            if isinstance(event, (DoneEvent, ErrorEvent)):
                CHAT_TURNS.labels(outcome=event.type).inc()
                TURN_DURATION.observe(time.perf_counter() - started)
                turn_log.info("turn_finished", outcome=event.type)
                return event.type
    finally:
        await stream.aclose()
    return None
