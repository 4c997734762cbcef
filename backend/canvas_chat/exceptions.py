"""Custom exceptions for the Canvas Chat application."""


class CanvasChatError(Exception):
    """Base class for all Canvas Chat errors."""
    pass


class StreamClosedError(CanvasChatError):
    """Raised when a demuxer is used after it emitted its terminal event."""
    pass


class MalformedBatchError(CanvasChatError, ValueError):
    """An embedded <elements> block could not be parsed as a JSON array of objects."""

    def __init__(self, detail: str, *, payload: str = ""):
        super().__init__(detail)
        self.detail = detail
        self.payload = payload
        # Events the demuxer released from the same fragment before the bad block.
        self.released: list = []


class TurnInProgressError(CanvasChatError):
    """A user turn was submitted while the previous one is still streaming."""
    pass


class ChatInputError(CanvasChatError, ValueError):
    """Custom exception for rejected chat input (e.g. blank messages)."""
    pass
