import pytest

from canvas_chat.api_models import (
    ChatMessage,
    DoneEvent,
    DrawingBatchEvent,
    ErrorEvent,
    NarrationEvent,
)
from canvas_chat.client.scene import ChatClient, SceneAccumulator
from canvas_chat.client.transport import ReconnectingTransport
from canvas_chat.exceptions import ChatInputError, TurnInProgressError

LABELED_BOX = {"type": "rectangle", "id": "box", "x": 0, "y": 0, "width": 120, "height": 60,
               "label": {"text": "Cache"}}


class RecordingSurface:
    def __init__(self):
        self.appended = []
        self.scrolls = 0

    def append_elements(self, objects):
        self.appended.append([o["id"] for o in objects])

    def scroll_to_content(self):
        self.scrolls += 1


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def accumulator(canonicalizer, surface):
    return SceneAccumulator(canonicalizer, surface)


def test_submit_builds_request_with_full_history(accumulator):
    request = accumulator.submit("Draw a cache")

    assert request.type == "chat"
    assert request.messages == [ChatMessage(role="user", content="Draw a cache")]
    assert accumulator.in_progress
    assert not accumulator.can_submit


def test_second_submission_refused_while_streaming(accumulator):
    accumulator.submit("first")
    with pytest.raises(TurnInProgressError):
        accumulator.submit("second")
    assert len(accumulator.transcript) == 1


def test_blank_submission_rejected(accumulator):
    with pytest.raises(ChatInputError):
        accumulator.submit("   ")
    assert accumulator.transcript == ()
    assert accumulator.can_submit


def test_done_seals_narration_into_transcript(accumulator):
    accumulator.submit("Explain caching")
    accumulator.handle_event(NarrationEvent(content="A cache "))
    accumulator.handle_event(NarrationEvent(content="stores hot data."))
    assert accumulator.streaming_text == "A cache stores hot data."

    accumulator.handle_event(DoneEvent())

    assert accumulator.transcript[-1] == ChatMessage(role="assistant", content="A cache stores hot data.")
    assert accumulator.streaming_text == ""
    assert accumulator.can_submit

    follow_up = accumulator.submit("And eviction?")
    assert [m.role for m in follow_up.messages] == ["user", "assistant", "user"]


def test_error_discards_in_progress_text_but_keeps_drawing(accumulator):
    accumulator.submit("Draw it")
    accumulator.handle_event(NarrationEvent(content="Here goes"))
    accumulator.handle_event(DrawingBatchEvent(elements=[LABELED_BOX]))
    accumulator.handle_event(ErrorEvent(message="upstream failed"))

    assert [m.role for m in accumulator.transcript] == ["user"]
    assert accumulator.streaming_text == ""
    assert accumulator.can_submit
    assert [o["id"] for o in accumulator.scene] == ["box", "box-label"]


def test_drawing_batches_append_canonical_objects_in_order(accumulator, surface):
    accumulator.submit("Draw")
    accumulator.handle_event(DrawingBatchEvent(elements=[LABELED_BOX]))
    accumulator.handle_event(DrawingBatchEvent(elements=[{"type": "cameraUpdate"}]))
    accumulator.handle_event(DrawingBatchEvent(elements=[{"type": "arrow", "id": "edge"}]))

    scene = accumulator.scene
    assert [o["id"] for o in scene] == ["box", "box-label", "edge"]
    assert scene[1]["containerId"] == "box"
    assert surface.appended == [["box", "box-label"], ["edge"]]
    assert surface.scrolls == 2


def test_scene_survives_across_turns(accumulator):
    accumulator.submit("one")
    accumulator.handle_event(DrawingBatchEvent(elements=[{"type": "ellipse", "id": "e1"}]))
    accumulator.handle_event(DoneEvent())
    accumulator.submit("two")
    accumulator.handle_event(DrawingBatchEvent(elements=[{"type": "ellipse", "id": "e2"}]))

    assert [o["id"] for o in accumulator.scene] == ["e1", "e2"]
    assert [o["seed"] for o in accumulator.scene] == [1, 2]


def test_views_are_read_only_snapshots(accumulator):
    accumulator.submit("hi")
    with pytest.raises(AttributeError):
        accumulator.transcript.append(ChatMessage(role="user", content="sneaky"))
    assert len(accumulator.transcript) == 1


def test_abandon_turn_resets_without_sealing(accumulator):
    accumulator.submit("hello")
    accumulator.handle_event(NarrationEvent(content="Hi the"))
    accumulator.abandon_turn()

    assert accumulator.can_submit
    assert accumulator.streaming_text == ""
    assert [m.role for m in accumulator.transcript] == ["user"]


# --------------------------------------------------------------------------- #
# ChatClient wiring
# --------------------------------------------------------------------------- #

class StubTransport(ReconnectingTransport):
    def __init__(self, connected):
        super().__init__("ws://test/ws")
        self._connected = connected
        self.sent = []

    async def send(self, message):
        if not self._connected:
            return False
        self.sent.append(message)
        return True

    async def deliver(self, event):
        await self._dispatch(event.model_dump_json())


@pytest.mark.asyncio
async def test_chat_client_sends_and_applies_events(canonicalizer):
    transport = StubTransport(connected=True)
    client = ChatClient(transport, SceneAccumulator(canonicalizer))

    assert await client.send_message("Draw a box") is True
    assert transport.sent[0].messages[-1].content == "Draw a box"

    await transport.deliver(NarrationEvent(content="Sure.\n"))
    await transport.deliver(DrawingBatchEvent(elements=[{"type": "rectangle", "id": "b"}]))
    await transport.deliver(DoneEvent())

    acc = client.accumulator
    assert acc.transcript[-1].content == "Sure.\n"
    assert [o["id"] for o in acc.scene] == ["b"]


@pytest.mark.asyncio
async def test_chat_client_request_dropped_when_disconnected():
    transport = StubTransport(connected=False)
    client = ChatClient(transport)

    assert await client.send_message("anyone there?") is False
    assert client.accumulator.can_submit


@pytest.mark.asyncio
async def test_connection_loss_abandons_turn():
    transport = StubTransport(connected=True)
    client = ChatClient(transport)
    await client.send_message("start")
    await transport.deliver(NarrationEvent(content="partial"))

    transport._set_connected(False)

    assert client.accumulator.can_submit
    assert client.accumulator.streaming_text == ""


@pytest.mark.asyncio
async def test_closed_client_ignores_further_events():
    transport = StubTransport(connected=True)
    client = ChatClient(transport)
    await client.send_message("start")
    client.close()

    await transport.deliver(NarrationEvent(content="late"))
    assert client.accumulator.streaming_text == ""
