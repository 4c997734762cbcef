# canvas_chat/dependencies.py
import os
from dotenv import load_dotenv

from canvas_chat.core.llm import LLMClient
from canvas_chat.services.stream_demux import DemuxPolicy

# Load environment variables specifically for dependencies if needed,
# though they should be loaded by the main app process already.
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# --- Model Configuration ---
OPENAI_MODEL_NAME = os.environ.get("OPENAI_MODEL_NAME", "gpt-4.1-2025-04-14")
MAX_TOKENS = int(os.environ.get("MAX_TOKENS", "4096"))

# --- Stream Demux Policy ---
NARRATION_FLUSH_THRESHOLD = int(os.environ.get("NARRATION_FLUSH_THRESHOLD", "20"))
DROP_MALFORMED_BATCHES = _env_bool("DROP_MALFORMED_BATCHES", True)

# --- HTTP / Client ---
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
CLIENT_RECONNECT_DELAY = float(os.environ.get("CLIENT_RECONNECT_DELAY", "2.0"))

# Create a single global LLM client; the underlying AsyncOpenAI client is
# built lazily on first use so importing the app needs no API key.
llm_client = LLMClient(model_name=OPENAI_MODEL_NAME, max_tokens=MAX_TOKENS)


def get_llm_client() -> LLMClient:
    """FastAPI dependency returning the shared streaming LLM client."""
    return llm_client


def get_demux_policy() -> DemuxPolicy:
    """FastAPI dependency returning the demux policy configured via environment."""
    return DemuxPolicy(
        flush_threshold=NARRATION_FLUSH_THRESHOLD,
        drop_malformed=DROP_MALFORMED_BATCHES,
    )
