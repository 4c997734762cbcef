from pydantic import BaseModel, Field, TypeAdapter
from typing import Annotated, List, Optional, Union, Literal, Dict, Any

# --- Canvas Types ---
# Drawing specs are passed through exactly as the model wrote them; a batch is
# accepted or rejected as a whole, never field by field.
RawElementSpec = Dict[str, Any]  # Example: { "type": "rectangle", "id": "db", "x": 100, "y": 80, "label": {"text": "DB"} }
CanonicalSceneObject = Dict[str, Any]  # Fully defaulted Excalidraw element

# --- Client -> Server ---

class ChatMessage(BaseModel):
    """One turn of the conversation history sent with every chat request."""
    role: Literal["user", "assistant"]
    content: str

class ChatRequest(BaseModel):
    """Frame sent by the client to start a new assistant turn."""
    type: Literal["chat"] = "chat"
    messages: List[ChatMessage] = Field(description="Full conversation history, oldest first.")
    prompt: Optional[str] = Field(None, description="Optional system prompt overriding the default one.")

# --- Server -> Client ---

class NarrationEvent(BaseModel):
    """A chunk of conversational text. Chunks concatenate in order."""
    type: Literal["text"] = "text"
    content: str

class DrawingBatchEvent(BaseModel):
    """One parsed <elements> block, still in raw (model-written) form."""
    type: Literal["elements"] = "elements"
    elements: List[RawElementSpec]

class DoneEvent(BaseModel):
    """Terminal event for a turn that completed normally."""
    type: Literal["done"] = "done"

class ErrorEvent(BaseModel):
    """Terminal event for a turn whose upstream stream failed."""
    type: Literal["error"] = "error"
    message: str = Field(description="Human-readable failure description.")

TerminalEvent = Union[DoneEvent, ErrorEvent]

ServerEvent = Annotated[
    Union[NarrationEvent, DrawingBatchEvent, DoneEvent, ErrorEvent],
    Field(discriminator="type"),
]

server_event_adapter: TypeAdapter = TypeAdapter(ServerEvent)


def parse_server_event(data: Union[str, bytes, Dict[str, Any]]):
    """Validate one wire frame (JSON text or decoded dict) into a ServerEvent.

    Raises ``pydantic.ValidationError`` for unknown or malformed frames.
    """
    if isinstance(data, (str, bytes)):
        return server_event_adapter.validate_json(data)
    return server_event_adapter.validate_python(data)

# --- HTTP ---

class ErrorResponse(BaseModel):
    """Body returned by the HTTP exception handlers."""
    error_code: Optional[str] = Field(None, description="A unique code identifying the type of error.")
    error_message: str = Field(description="A user-friendly error message.")
