"""canvas_chat/client/scene.py

Client-side state for one chat session: the transcript, the in-progress
assistant text, and the growing list of canvas objects.

Both the scene and the sealed transcript are append-only. An error or a lost
connection throws away the in-progress assistant text but leaves anything
already drawn on the canvas in place.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence, Tuple

from pydantic import BaseModel

from canvas_chat.api_models import (
    CanonicalSceneObject,
    ChatMessage,
    ChatRequest,
    DoneEvent,
    DrawingBatchEvent,
    ErrorEvent,
    NarrationEvent,
)
from canvas_chat.client.transport import ReconnectingTransport
from canvas_chat.exceptions import ChatInputError, TurnInProgressError
from canvas_chat.services.element_canonicalizer import ElementCanonicalizer

log = logging.getLogger(__name__)


class RenderSurface(Protocol):
    """The canvas the scene is drawn on (e.g. an Excalidraw bridge)."""

    def append_elements(self, objects: Sequence[CanonicalSceneObject]) -> None: ...

    def scroll_to_content(self) -> None: ...


class SceneAccumulator:
    """Applies server events to the visible chat + canvas state."""

    def __init__(self, canonicalizer: Optional[ElementCanonicalizer] = None,
                 surface: Optional[RenderSurface] = None):
        self.canonicalizer = canonicalizer or ElementCanonicalizer()
        self.surface = surface
        self._transcript: List[ChatMessage] = []
        self._scene: List[CanonicalSceneObject] = []
        self._streaming_text = ""
        self._in_progress = False

    # ---- read-only views ----

    @property
    def transcript(self) -> Tuple[ChatMessage, ...]:
        return tuple(self._transcript)

    @property
    def scene(self) -> Tuple[CanonicalSceneObject, ...]:
        return tuple(self._scene)

    @property
    def streaming_text(self) -> str:
        return self._streaming_text

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def can_submit(self) -> bool:
        return not self._in_progress

    # ---- user input ----

    def submit(self, text: str) -> ChatRequest:
        """Start a new turn and return the request to send.

        Only one turn may be outstanding; a second submission is refused
        rather than queued.
        """
        if self._in_progress:
            raise TurnInProgressError("A reply is still streaming; wait for it to finish.")
        if not text.strip():
            raise ChatInputError("Message must not be blank.")

        self._transcript.append(ChatMessage(role="user", content=text))
        self._streaming_text = ""
        self._in_progress = True
        return ChatRequest(messages=list(self._transcript))

    # ---- server events ----

    def handle_event(self, event: BaseModel) -> None:
        if isinstance(event, NarrationEvent):
            self._streaming_text += event.content
        elif isinstance(event, DrawingBatchEvent):
            self._append_objects(self.canonicalizer.convert_elements(event.elements))
        elif isinstance(event, DoneEvent):
            self._transcript.append(ChatMessage(role="assistant", content=self._streaming_text))
            self._reset_turn()
        elif isinstance(event, ErrorEvent):
            log.warning("Turn failed: %s", event.message)
            self._reset_turn()
        else:
            log.debug("Ignoring unknown event %r", event)

    def abandon_turn(self) -> None:
        """Drop the in-progress turn (connection lost); the user has to resend."""
        if self._in_progress:
            log.info("Abandoning in-progress turn (%d chars streamed)", len(self._streaming_text))
        self._reset_turn()

    def _reset_turn(self) -> None:
        self._streaming_text = ""
        self._in_progress = False

    def _append_objects(self, objects: List[CanonicalSceneObject]) -> None:
        if not objects:
            return
        self._scene.extend(objects)
        if self.surface is not None:
            self.surface.append_elements(objects)
            self.surface.scroll_to_content()


class ChatClient:
    """Wires a :class:`ReconnectingTransport` to a :class:`SceneAccumulator`."""

    def __init__(self, transport: ReconnectingTransport,
                 accumulator: Optional[SceneAccumulator] = None):
        self.transport = transport
        self.accumulator = accumulator or SceneAccumulator()
        self._subscription = transport.subscribe(self.accumulator.handle_event)
        transport.add_state_listener(self._on_connection_change)

    async def send_message(self, text: str) -> bool:
        """Submit *text* as a new user turn. Returns False if the request was dropped."""
        request = self.accumulator.submit(text)
        sent = await self.transport.send(request)
        if not sent:
            log.warning("Chat request dropped: not connected")
            self.accumulator.abandon_turn()
        return sent

    def close(self) -> None:
        self._subscription.cancel()

    def _on_connection_change(self, connected: bool) -> None:
        if not connected:
            self.accumulator.abandon_turn()
