"""canvas_chat/client/transport.py

Reconnecting JSON-over-WebSocket channel used by Canvas Chat clients.

The transport keeps exactly one logical connection to the server's ``/ws``
endpoint. Whenever the socket closes or fails to open it waits a fixed delay
and dials again. There is no backoff and no retry limit; that is
fine for a single interactive session and is not meant for hostile networks.

Inbound frames are parsed into :data:`~canvas_chat.api_models.ServerEvent`
models and handed to every subscriber, one frame at a time, in arrival order.

NOTE: ``send`` while disconnected drops the message (it is *not* queued).
Callers that need delivery must check :attr:`ReconnectingTransport.connected`
or the boolean returned by ``send``.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, List, Optional, Union
from urllib.parse import urlsplit, urlunsplit

import websockets
from pydantic import BaseModel, ValidationError
from websockets.exceptions import ConnectionClosed, WebSocketException

from canvas_chat.api_models import parse_server_event
from canvas_chat.dependencies import CLIENT_RECONNECT_DELAY

log = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY = CLIENT_RECONNECT_DELAY  # seconds

EventHandler = Callable[[Any], Union[None, Awaitable[None]]]
StateListener = Callable[[bool], None]


def websocket_url(base_url: str, path: str = "/ws") -> str:
    """Turn an http(s) page/server URL into the matching ws(s) channel URL."""
    parts = urlsplit(base_url)
    scheme = {"https": "wss", "http": "ws"}.get(parts.scheme, parts.scheme or "ws")
    return urlunsplit((scheme, parts.netloc, path, "", ""))


class Subscription:
    """Handle returned by :meth:`ReconnectingTransport.subscribe`."""

    def __init__(self, transport: "ReconnectingTransport", handler: EventHandler):
        self._transport = transport
        self.handler = handler

    @property
    def active(self) -> bool:
        return self in self._transport._subscriptions

    def cancel(self) -> None:
        if self.active:
            self._transport._subscriptions.remove(self)


class ReconnectingTransport:
    """One persistent, self-healing WebSocket connection with broadcast delivery."""

    def __init__(self, url: str, reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
                 connect: Optional[Callable[[str], Any]] = None):
        self.url = url
        self.reconnect_delay = reconnect_delay
        self._connect = connect or websockets.connect
        self._ws: Any = None
        self._connected = False
        self._stopped = False
        self._subscriptions: List[Subscription] = []
        self._state_listeners: List[StateListener] = []

    # --------------------------------------------------------------------- #
    #  Public helpers
    # --------------------------------------------------------------------- #

    @property
    def connected(self) -> bool:
        return self._connected

    def subscribe(self, handler: EventHandler) -> Subscription:
        """Register *handler* for every inbound event until the subscription is cancelled."""
        sub = Subscription(self, handler)
        self._subscriptions.append(sub)
        return sub

    def add_state_listener(self, listener: StateListener) -> None:
        """Call *listener* with the new ``connected`` flag on every open/close."""
        self._state_listeners.append(listener)

    async def send(self, message: Union[BaseModel, dict]) -> bool:
        """Send one JSON object. Returns False (message dropped) when disconnected."""
        if isinstance(message, BaseModel):
            message = message.model_dump()
        ws = self._ws
        if not self._connected or ws is None:
            log.debug("send() while disconnected, dropping %s message", message.get("type", "?"))
            return False
        try:
            await ws.send(json.dumps(message))
            return True
        except ConnectionClosed as e:
            log.warning("send() failed, connection closed: %s", e)
            return False

    async def run(self) -> None:
        """Connect, pump inbound frames, and reconnect after every drop until stopped."""
        while not self._stopped:
            try:
                async with self._connect(self.url) as ws:
                    self._ws = ws
                    self._set_connected(True)
                    log.info("Connected to %s", self.url)
                    async for raw in ws:
                        await self._dispatch(raw)
            except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                log.warning("Connection to %s lost: %s", self.url, e)
            finally:
                self._ws = None
                self._set_connected(False)

            if self._stopped:
                break
            log.info("Reconnecting to %s in %.1fs", self.url, self.reconnect_delay)
            await asyncio.sleep(self.reconnect_delay)

    async def stop(self) -> None:
        """Stop reconnecting and close the current socket (process shutdown)."""
        self._stopped = True
        ws = self._ws
        if ws is not None:
            await ws.close()

    # --------------------------------------------------------------------- #
    #  Internal helpers
    # --------------------------------------------------------------------- #

    def _set_connected(self, value: bool) -> None:
        if self._connected == value:
            return
        self._connected = value
        for listener in list(self._state_listeners):
            try:
                listener(value)
            except Exception as e:
                log.error("Connection state listener failed: %s", e, exc_info=True)

    async def _dispatch(self, raw: Union[str, bytes]) -> None:
        try:
            event = parse_server_event(raw)
        except ValidationError as e:
            log.warning("Ignoring unrecognised frame (%s): %.100s", e.error_count(), raw)
            return

        for sub in list(self._subscriptions):
            try:
                result = sub.handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                log.error("Subscriber %r failed on %s event: %s", sub.handler, event.type, e, exc_info=True)
