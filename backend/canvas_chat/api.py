import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# --- Import Dependencies FIRST ---
from canvas_chat.dependencies import CORS_ORIGINS, llm_client
from canvas_chat.metrics import metrics_endpoint # Prometheus endpoint
from canvas_chat.api_models import ErrorResponse

log = logging.getLogger("canvas_chat")

# --- Define FastAPI App ---
app = FastAPI(
    title="Canvas Chat API",
    description="Chat with an assistant that explains in text and draws on an Excalidraw canvas.",
    version="0.1.0",
)

# --- Add Middleware ---
# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,  # Frontend origin(s)
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- NOW Import and Include Routers ---
from canvas_chat.routers import chat_ws  # noqa: E402

app.include_router(chat_ws.router)  # /ws mounted without extra prefix

# --- Add Root Endpoint & Metrics ---
app.add_route("/metrics", metrics_endpoint, methods=["GET"]) # Prometheus scrape endpoint

@app.get("/", tags=["Root"])
async def read_root():
    return {"message": "Welcome to the Canvas Chat API!"}

# --- Global Exception Handlers ---

@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    log.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
    err = ErrorResponse(error_code="internal_error", error_message="Internal server error")
    return JSONResponse(status_code=500, content=err.model_dump())

# --- Shutdown Event ---
@app.on_event("shutdown")
async def _shutdown_async_clients():
    """Ensure the shared model client is closed gracefully."""
    try:
        await llm_client.close()
    except Exception as exc:
        log.warning("Failed to close LLM client on shutdown: %s", exc)

# To run the API: uvicorn canvas_chat.api:app --reload --port 3001
