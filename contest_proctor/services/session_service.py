"""Session management service."""

import json
import logging
import os
import uuid
from datetime import datetime
from typing import Dict, Optional

from ..config import CONTEST_DURATION_SECONDS, REPORTS_DIR
from ..models.session import TIME_FORMAT
from ..utils.scheduling import AsyncioScheduler, Scheduler
from .contest_session import ContestSession
from .store import ContestStore, get_store

logger = logging.getLogger(__name__)

# Global session storage (in-memory)
SESSIONS: Dict[str, ContestSession] = {}


def get_formatted_time(dt_str: str) -> str:
    """Converts 'YYYY-MM-DD HH:MM:SS' to 'HH:MM:SS'"""
    try:
        dt = datetime.strptime(dt_str, TIME_FORMAT)
        return dt.strftime("%H:%M:%S")
    except ValueError:
        return dt_str


def save_json_report(session: ContestSession) -> str:
    """Saves the current session data to a JSON file."""
    os.makedirs(REPORTS_DIR, exist_ok=True)
    json_path = os.path.join(REPORTS_DIR, f"{session.session_id}.json")

    export_data = session.to_dict()
    export_data["generated_at"] = datetime.now().strftime(TIME_FORMAT)
    export_data["activity_log"] = [
        {
            "activity": log["activity"],
            "start_time": get_formatted_time(log["start_time"]),
            "end_time": get_formatted_time(log["end_time"]),
            "duration_sec": log["duration_sec"],
            "count": log["count"],
        }
        for log in session.activity.entries
    ]

    with open(json_path, "w") as f:
        json.dump(export_data, f, indent=2)
    logger.info(f"[JSON SAVED] {json_path}")
    return json_path


def create_session(
    user_id: str,
    contest_id: str = "default",
    total_seconds: Optional[int] = None,
    scheduler: Optional[Scheduler] = None,
    store: Optional[ContestStore] = None,
) -> ContestSession:
    """Create and register a new contest attempt."""
    session_id = uuid.uuid4().hex
    session = ContestSession(
        session_id,
        user_id,
        contest_id,
        scheduler=scheduler or AsyncioScheduler(),
        store=store or get_store(),
        total_seconds=total_seconds or CONTEST_DURATION_SECONDS,
        on_finished=save_json_report,
    )
    SESSIONS[session_id] = session
    logger.info(f"[SESSION CREATED] {session_id} for {user_id} ({contest_id})")
    return session


def get_session(session_id: str) -> Optional[ContestSession]:
    """Return the ContestSession for a given session_id, or None."""
    return SESSIONS.get(session_id)
