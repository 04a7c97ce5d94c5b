"""API routes for the contest application."""

import asyncio
import json
import logging
from typing import Any, Dict

from fastapi import HTTPException, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse

from ..config import RESUME_CONTENT_TYPES, SUCCESS_ROUTE
from ..models.session import SessionState
from ..services.chat_flow import chat
from ..services.contest_session import SUBMIT_FAILED_MESSAGE, ContestSession, SessionError
from ..services.renderer import PREVIEW_SANDBOX
from ..services.report_service import generate_report
from ..services.session_service import create_session, get_session
from ..services.store import StoreError, get_store
from ..services.submitter import SubmitTrigger
from .schemas import (
    ChatRequest,
    ClientEvent,
    ReviewResponse,
    StartSessionRequest,
    StartSessionResponse,
)

logger = logging.getLogger(__name__)

# WebSocket close codes
CLOSE_UNKNOWN_SESSION = 4404
CLOSE_ALREADY_MOUNTED = 4409


def _require_session(session_id: str) -> ContestSession:
    session = get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return session


async def _forward_messages(websocket: WebSocket, session: ContestSession) -> None:
    """Push queued session messages to the contest page."""
    try:
        while True:
            message = await session.outbox.get()
            await websocket.send_json(message)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.debug(f"[WS] {session.session_id} sender stopped: {e}")


async def websocket_endpoint(websocket: WebSocket, session_id: str) -> None:
    """Mount the contest view for the lifetime of the WebSocket connection."""
    await websocket.accept()
    session = get_session(session_id)
    if session is None:
        logger.warning(f"[WS] unknown session {session_id}")
        await websocket.close(code=CLOSE_UNKNOWN_SESSION)
        return

    try:
        session.mount()
    except SessionError as e:
        logger.warning(f"[WS] {session_id} refused: {e}")
        await websocket.close(code=CLOSE_ALREADY_MOUNTED)
        return

    logger.info(f"[CONNECTED] {session_id}")
    sender = asyncio.create_task(_forward_messages(websocket, session))

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            # Binary frames carry the webcam recording
            if message.get("bytes") is not None:
                session.recording.append(message["bytes"])
                continue

            try:
                data = json.loads(message.get("text") or "")
                event = ClientEvent(**data)
                reply = session.handle_event(event)
            except (ValueError, TypeError) as e:
                logger.warning(f"[WS] {session_id} invalid message: {e}")
                continue

            if reply is not None:
                session.emit(reply)

    except WebSocketDisconnect:
        logger.info(f"[DISCONNECTED] {session_id}")
    except Exception as e:
        logger.error(f"[WS ERROR] {session_id}: {e}")
    finally:
        session.unmount()
        sender.cancel()


async def start_session_endpoint(request: StartSessionRequest) -> StartSessionResponse:
    session = create_session(request.user_id, request.contest_id, request.duration_seconds)
    return StartSessionResponse(
        session_id=session.session_id,
        contest_id=session.contest_id,
        topic=session.topic,
        total_seconds=session.total_seconds,
        preview_sandbox=PREVIEW_SANDBOX,
    )


async def session_view_endpoint(session_id: str) -> Dict[str, Any]:
    return _require_session(session_id).view()


async def review_endpoint(session_id: str) -> ReviewResponse:
    session = _require_session(session_id)
    return ReviewResponse(session_id=session_id, **session.review())


async def submit_endpoint(session_id: str) -> Dict[str, Any]:
    """Confirm a manual submission; 409 unless the session is active and started."""
    session = _require_session(session_id)
    if session.state is not SessionState.ACTIVE or not session.started:
        raise HTTPException(status_code=409, detail=f"Session is {session.state.value}")

    outcome = await session.submit(SubmitTrigger.MANUAL)
    if outcome is None:
        if session.state is SessionState.ACTIVE:
            raise HTTPException(status_code=502, detail=SUBMIT_FAILED_MESSAGE)
        raise HTTPException(status_code=409, detail=f"Session is {session.state.value}")

    return {
        "state": session.state.value,
        "navigate": session.destination,
        "submission": outcome.to_dict(),
    }


async def recording_endpoint(session_id: str, file: UploadFile) -> Dict[str, Any]:
    session = _require_session(session_id)
    if not session.recording.append(await file.read()) and session.recording.full:
        raise HTTPException(status_code=413, detail="Recording size limit reached")
    return {"session_id": session_id, "bytes": session.recording.size}


async def resume_endpoint(user_id: str, file: UploadFile) -> Dict[str, Any]:
    if file.content_type not in RESUME_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="Please upload a PDF or DOCX file")
    try:
        record = await get_store().upload_resume(
            user_id, file.filename or "resume", await file.read(), file.content_type
        )
    except StoreError as e:
        logger.error(f"[RESUME] upload failed for {user_id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to upload resume")
    logger.info(f"[RESUME UPLOADED] {user_id}")
    return {"ok": True, "user": record, "navigate": SUCCESS_ROUTE}


async def chat_endpoint(request: ChatRequest) -> Dict[str, Any]:
    try:
        return chat(request.conversation_id, request.choice)
    except KeyError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def generate_report_endpoint(session_id: str) -> FileResponse:
    """
    Generate a PDF report with the session's integrity signals and outcome.
    Returns a FileResponse with the PDF.
    """
    report_path = generate_report(session_id)
    if not report_path:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")

    return FileResponse(
        path=report_path,
        filename=f"{session_id}_report.pdf",
        media_type="application/pdf"
    )
