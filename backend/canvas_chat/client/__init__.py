"""Client-side pieces of Canvas Chat: the reconnecting transport and scene state."""

from canvas_chat.client.scene import ChatClient, RenderSurface, SceneAccumulator
from canvas_chat.client.transport import ReconnectingTransport, Subscription, websocket_url

__all__ = [
    "ChatClient",
    "ReconnectingTransport",
    "RenderSurface",
    "SceneAccumulator",
    "Subscription",
    "websocket_url",
]
