"""Report generation service."""

import os
import logging
from datetime import datetime
from fpdf import FPDF
from typing import Optional
from ..config import REPORTS_DIR
from ..models.session import SuspicionKind, format_duration
from .session_service import get_session, save_json_report, get_formatted_time

logger = logging.getLogger(__name__)

FLAG_LABELS = {
    SuspicionKind.TAB_SWITCHES: "Tab Switches",
    SuspicionKind.COPY_PASTE_ATTEMPTS: "Copy/Paste Attempts",
    SuspicionKind.RIGHT_CLICKS: "Right Clicks",
    SuspicionKind.WINDOW_BLURS: "Window Blurs",
    SuspicionKind.IDLE_WARNINGS: "Idle Warnings",
}


def _latin1(text: str) -> str:
    return str(text).encode("latin-1", "replace").decode("latin-1")


def generate_report(session_id: str) -> Optional[str]:
    """
    Generate a PDF integrity report for a contest session.

    Args:
        session_id: The session ID to generate a report for

    Returns:
        Path to the generated PDF file, or None if session not found
    """
    session = get_session(session_id)
    if not session:
        logger.warning(f"Session not found: {session_id}")
        return None

    flags = session.counters.snapshot()
    outcome = session.outcome

    pdf = FPDF()
    pdf.add_page()
    pdf.set_font("Helvetica", "B", 16)
    pdf.cell(0, 10, "Contest Integrity Report", new_x="LMARGIN", new_y="NEXT", align="C")
    pdf.ln(8)

    pdf.set_font("Helvetica", size=12)
    for line in (
        f"Session ID: {session_id}",
        f"Candidate: {session.user_id}",
        f"Contest: {session.contest_id} - {session.topic}",
        f"State: {session.state.value}",
        f"Elapsed: {format_duration(session.elapsed_seconds)}",
        f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
    ):
        pdf.cell(0, 8, _latin1(line), new_x="LMARGIN", new_y="NEXT")
    pdf.ln(4)

    if outcome is not None:
        pdf.set_font("Helvetica", "B", 13)
        pdf.cell(0, 10, "Outcome", new_x="LMARGIN", new_y="NEXT")
        pdf.set_font("Helvetica", size=11)
        pdf.cell(0, 8, f"Score: {outcome.score}/100", new_x="LMARGIN", new_y="NEXT")
        pdf.cell(0, 8, f"Time Taken: {format_duration(outcome.time_taken_seconds)}",
                 new_x="LMARGIN", new_y="NEXT")
        pdf.cell(0, 8, _latin1(f"Video: {outcome.video_url or 'not available'}"),
                 new_x="LMARGIN", new_y="NEXT")
        pdf.ln(4)

    # Counters table
    pdf.set_font("Helvetica", "B", 13)
    pdf.cell(0, 10, "Integrity Signals", new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "B", 11)
    pdf.cell(95, 8, "Signal", 1)
    pdf.cell(40, 8, "Count", 1)
    pdf.ln()
    pdf.set_font("Helvetica", size=10)
    for kind, label in FLAG_LABELS.items():
        pdf.cell(95, 8, label, 1)
        pdf.cell(40, 8, str(flags[kind.value]), 1)
        pdf.ln()
    pdf.ln(6)

    # Activity log table
    pdf.set_font("Helvetica", "B", 13)
    pdf.cell(0, 10, "Activity Log", new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "B", 11)
    pdf.cell(40, 8, "From", 1)
    pdf.cell(40, 8, "To", 1)
    pdf.cell(25, 8, "Count", 1)
    pdf.cell(85, 8, "Activity", 1)
    pdf.ln()

    pdf.set_font("Helvetica", size=10)
    for log in session.activity.entries:
        pdf.cell(40, 8, get_formatted_time(log["start_time"]), 1)
        pdf.cell(40, 8, get_formatted_time(log["end_time"]), 1)
        pdf.cell(25, 8, str(log["count"]), 1)
        pdf.cell(85, 8, _latin1(log["activity"]), 1)
        pdf.ln()

    os.makedirs(REPORTS_DIR, exist_ok=True)
    report_path = os.path.join(REPORTS_DIR, f"{session_id}_report.pdf")
    pdf.output(report_path)

    logger.info(f"[REPORT GENERATED] {report_path}")

    # Also ensure JSON is saved one last time
    save_json_report(session)

    return report_path
