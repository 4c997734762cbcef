"""canvas_chat/services/stream_demux.py

Splits the model's incremental token stream into two ordered channels:
narration (plain conversational text) and drawing batches (JSON arrays the
model embeds between literal ``<elements>`` / ``</elements>`` markers).

Fragment boundaries carry no meaning: a marker may arrive as ``"<elem"`` in
one fragment and ``"ents>"`` in the next. So the demuxer keeps a single
unconsumed-text buffer and a few watch indices into it:

• ``_start_idx``      position of a start marker whose end has not arrived yet
• ``_start_scan``     where the next search for a start marker begins
• ``_end_scan``       where the next search for the matching end marker begins

Both searches resume from where the previous one stopped (minus a marker's
length, for markers split across fragments), so a long block trickling in
token by token is not rescanned from the top on every fragment.

Structured content is never released early: while a start marker is pending
nothing is flushed, and a buffer tail that *might* be the beginning of a
start marker is held back as well.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, List, Optional

from pydantic import BaseModel, Field

from canvas_chat.api_models import (
    DoneEvent,
    DrawingBatchEvent,
    ErrorEvent,
    NarrationEvent,
)
from canvas_chat.exceptions import MalformedBatchError, StreamClosedError
from canvas_chat.metrics import DRAWING_BATCHES, NARRATION_EVENTS

log = logging.getLogger(__name__)

START_MARKER = "<elements>"
END_MARKER = "</elements>"


class DemuxPolicy(BaseModel):
    """Tunable behaviour of :class:`ElementStreamDemuxer`."""

    flush_threshold: int = Field(
        default=20,
        ge=0,
        description="Flush narration once the buffer grows past this many characters.",
    )
    drop_malformed: bool = Field(
        default=True,
        description="Drop unparseable <elements> blocks (log only) instead of failing the turn.",
    )
    flush_before_unterminated: bool = Field(
        default=False,
        description="At end of stream, still emit narration preceding an unterminated <elements> block.",
    )


def _held_back_length(buffer: str) -> int:
    """Length of the longest buffer suffix that is a proper prefix of START_MARKER."""
    longest = min(len(buffer), len(START_MARKER) - 1)
    for size in range(longest, 0, -1):
        if START_MARKER.startswith(buffer[-size:]):
            return size
    return 0


class ElementStreamDemuxer:
    """Incremental narration / drawing-batch splitter for one model stream.

    One instance per chat turn. Call :meth:`feed` for every fragment, then
    exactly one of :meth:`finish` or :meth:`fail`.
    """

    def __init__(self, policy: Optional[DemuxPolicy] = None):
        self.policy = policy or DemuxPolicy()
        self._buffer = ""
        self._start_idx = -1
        self._start_scan = 0
        self._end_scan = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def block_pending(self) -> bool:
        """True while an opened <elements> block is waiting for its end marker."""
        return self._start_idx >= 0

    # ------------------------------------------------------------------ #
    #  Public API
    # ------------------------------------------------------------------ #

    def feed(self, fragment: str) -> List[Any]:
        """Append *fragment* and return the events it releases, in order."""
        self._ensure_open()
        if not fragment:
            return []
        self._buffer += fragment

        events: List[Any] = []
        try:
            while self._locate_block():
                self._extract_block(events)
        except MalformedBatchError as exc:
            exc.released = events
            raise

        if not self.block_pending:
            events.extend(self._flush_narration())
        return events

    def finish(self) -> List[Any]:
        """End of stream: flush trailing narration and emit ``DoneEvent``."""
        self._ensure_open()
        self._closed = True

        events: List[Any] = []
        if self.block_pending:
            dangling = self._buffer[self._start_idx:]
            log.warning(
                "Dropping unterminated <elements> block at end of stream (%d chars): %.100s",
                len(dangling),
                dangling,
            )
            if self.policy.flush_before_unterminated:
                events.extend(self._narration(self._buffer[:self._start_idx]))
        else:
            events.extend(self._narration(self._buffer))
        self._buffer = ""
        events.append(DoneEvent())
        return events

    def fail(self, message: str) -> List[Any]:
        """Upstream failure: emit a single ``ErrorEvent`` and close."""
        self._ensure_open()
        self._closed = True
        self._buffer = ""
        return [ErrorEvent(message=message)]

    # ------------------------------------------------------------------ #
    #  Internal helpers
    # ------------------------------------------------------------------ #

    def _ensure_open(self) -> None:
        if self._closed:
            raise StreamClosedError("Demuxer already emitted its terminal event.")

    def _locate_block(self) -> bool:
        """Advance the watch indices; True when a complete block is buffered."""
        if not self.block_pending:
            idx = self._buffer.find(START_MARKER, self._start_scan)
            if idx < 0:
                # A start marker split across fragments begins at most
                # len(START_MARKER) - 1 characters before the end.
                self._start_scan = max(0, len(self._buffer) - len(START_MARKER) + 1)
                return False
            self._start_idx = idx
            self._end_scan = idx + len(START_MARKER)

        end = self._buffer.find(END_MARKER, self._end_scan)
        if end < 0:
            self._end_scan = max(
                self._start_idx + len(START_MARKER),
                len(self._buffer) - len(END_MARKER) + 1,
            )
            return False
        self._end_scan = end
        return True

    def _extract_block(self, events: List[Any]) -> None:
        events.extend(self._narration(self._buffer[:self._start_idx]))

        payload = self._buffer[self._start_idx + len(START_MARKER):self._end_scan]
        self._buffer = self._buffer[self._end_scan + len(END_MARKER):]
        self._start_idx = -1
        self._start_scan = 0
        self._end_scan = 0

        batch = self._parse_batch(payload)
        if batch is not None:
            events.append(batch)

    def _parse_batch(self, payload: str) -> Optional[DrawingBatchEvent]:
        try:
            parsed = json.loads(payload)
            if not isinstance(parsed, list):
                raise ValueError(f"expected a JSON array, got {type(parsed).__name__}")
            for position, item in enumerate(parsed):
                if not isinstance(item, dict):
                    raise ValueError(
                        f"item {position} is {type(item).__name__}, expected a JSON object"
                    )
        except ValueError as exc:  # json.JSONDecodeError is a ValueError
            DRAWING_BATCHES.labels(outcome="rejected").inc()
            if not self.policy.drop_malformed:
                raise MalformedBatchError(f"Malformed <elements> block: {exc}", payload=payload) from exc
            log.warning("Failed to parse elements: %s: %.100s", exc, payload)
            return None
        DRAWING_BATCHES.labels(outcome="accepted").inc()
        return DrawingBatchEvent(elements=parsed)

    def _flush_narration(self) -> List[Any]:
        held = _held_back_length(self._buffer)
        flushable = self._buffer[:len(self._buffer) - held]
        if not flushable:
            return []
        if len(self._buffer) <= self.policy.flush_threshold and "\n" not in self._buffer:
            return []
        self._buffer = self._buffer[len(flushable):]
        self._start_scan = 0
        return self._narration(flushable)

    @staticmethod
    def _narration(text: str) -> List[Any]:
        if not text:
            return []
        NARRATION_EVENTS.inc()
        return [NarrationEvent(content=text)]


async def demultiplex(
    fragments: AsyncIterable[str],
    policy: Optional[DemuxPolicy] = None,
) -> AsyncIterator[Any]:
    """Drive one :class:`ElementStreamDemuxer` over an async token stream.

    Yields narration and drawing-batch events as they become available,
    followed by exactly one terminal event: ``DoneEvent`` when the stream is
    exhausted, or ``ErrorEvent`` when it raises. Under a strict policy a
    malformed block also ends the turn with ``ErrorEvent``, after whatever
    the same fragment released ahead of it.
    """
    demuxer = ElementStreamDemuxer(policy)
    try:
        async for fragment in fragments:
            for event in demuxer.feed(fragment):
                yield event
    except MalformedBatchError as exc:
        log.warning("Rejected <elements> block ends the turn: %s", exc.detail)
        for event in exc.released:
            yield event
        for event in demuxer.fail(exc.detail):
            yield event
        return
    except Exception as exc:
        log.error("Upstream stream failed: %s", exc, exc_info=True)
        for event in demuxer.fail(str(exc) or type(exc).__name__):
            yield event
        return

    for event in demuxer.finish():
        yield event
