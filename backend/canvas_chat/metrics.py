from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Core counters / histograms (feel free to extend)
NARRATION_EVENTS = Counter(
    "canvas_chat_narration_events_total",
    "Count of narration text events released by the stream demuxer",
)

DRAWING_BATCHES = Counter(
    "canvas_chat_drawing_batches_total",
    "Count of embedded <elements> blocks, by parse outcome",
    ["outcome"],
)

CHAT_TURNS = Counter(
    "canvas_chat_turns_total",
    "Count of chat turns streamed to clients, by terminal event",
    ["outcome"],
)

TURN_DURATION = Histogram(
    "canvas_chat_turn_duration_seconds",
    "Wall time from chat request to the turn's terminal event",
)


def metrics_endpoint(request=None):
    """FastAPI route handler for /metrics (scraped by Prometheus)."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

# This module is intentionally import-side-effect free; counters are updated elsewhere.
