"""Main FastAPI application."""

import logging
from fastapi import FastAPI, UploadFile, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from .config import (
    API_TITLE,
    API_VERSION,
    CORS_HEADERS,
    CORS_METHODS,
    CORS_ORIGINS,
    LOG_FORMAT,
    LOG_LEVEL,
)
from .api import routes
from .api.schemas import ChatRequest, ReviewResponse, StartSessionRequest, StartSessionResponse

# Setup logging
logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO), format=LOG_FORMAT)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(title=API_TITLE, version=API_VERSION)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=CORS_METHODS,
    allow_headers=CORS_HEADERS,
)


# Register WebSocket route
@app.websocket("/ws/{session_id}")
async def websocket_route(websocket: WebSocket, session_id: str):
    """WebSocket endpoint for the contest view."""
    await routes.websocket_endpoint(websocket, session_id)


@app.post("/sessions", response_model=StartSessionResponse)
async def start_session_route(request: StartSessionRequest):
    """Create a contest attempt."""
    return await routes.start_session_endpoint(request)


@app.get("/sessions/{session_id}")
async def session_view_route(session_id: str):
    return await routes.session_view_endpoint(session_id)


@app.get("/sessions/{session_id}/review", response_model=ReviewResponse)
async def review_route(session_id: str):
    """Counters shown before the candidate confirms a submission."""
    return await routes.review_endpoint(session_id)


@app.post("/sessions/{session_id}/submit")
async def submit_route(session_id: str):
    return await routes.submit_endpoint(session_id)


@app.post("/sessions/{session_id}/recording")
async def recording_route(session_id: str, file: UploadFile):
    """Append a webcam recording chunk."""
    return await routes.recording_endpoint(session_id, file)


@app.post("/resume/{user_id}")
async def resume_route(user_id: str, file: UploadFile):
    return await routes.resume_endpoint(user_id, file)


@app.post("/chat")
async def chat_route(request: ChatRequest):
    """Advance the scripted career assistant."""
    return await routes.chat_endpoint(request)


# Register report generation route
@app.post("/generate_report/{session_id}")
async def generate_report_route(session_id: str):
    """Generate PDF report for a session."""
    return await routes.generate_report_endpoint(session_id)


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": API_TITLE, "version": API_VERSION}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}
