"""Contest session orchestration."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from ..api.schemas import ClientEvent
from ..config import (
    CONTEST_DURATION_SECONDS,
    CONTEST_TOPIC,
    HOME_ROUTE,
    IDLE_TIMEOUT_SECONDS,
    PASS_SCORE,
    WARNING_DISPLAY_SECONDS,
)
from ..models.session import (
    ActivityLog,
    CodeBuffers,
    SessionOutcome,
    SessionState,
    SubmissionSnapshot,
    SuspicionCounters,
    SuspicionKind,
)
from ..utils.scheduling import ScheduledCallback, Scheduler
from .clock import SessionClock
from .collectors import default_collectors
from .policy import AutoFailPolicy
from .recording import RecordingBuffer
from .renderer import PreviewRenderer
from .store import ContestStore
from .submitter import Submitter, SubmitTrigger

logger = logging.getLogger(__name__)

SUBMIT_FAILED_MESSAGE = "Failed to submit contest"
AUTO_FAIL_MESSAGE = "Too many tab switches. Contest auto-failed."


class SessionError(Exception):
    """Raised when a session is driven through an invalid lifecycle step."""


class ContestSession:
    """
    One candidate's attempt at the timed contest.

    Owns the clock, collectors, code buffers, preview renderer, recording and
    submitter of the attempt and runs the state machine

        active -> submitting -> passed | failed
        active -> auto_failed

    Messages for the contest page are queued on ``outbox``.
    """

    def __init__(
        self,
        session_id: str,
        user_id: str,
        contest_id: str = "default",
        *,
        scheduler: Scheduler,
        store: ContestStore,
        total_seconds: int = CONTEST_DURATION_SECONDS,
        policy: Optional[AutoFailPolicy] = None,
        pass_score: int = PASS_SCORE,
        idle_timeout: float = IDLE_TIMEOUT_SECONDS,
        warning_seconds: float = WARNING_DISPLAY_SECONDS,
        on_finished: Optional[Callable[["ContestSession"], None]] = None,
    ):
        if total_seconds <= 0:
            raise ValueError("total_seconds must be positive")
        self.session_id = session_id
        self.user_id = user_id
        self.contest_id = contest_id
        self.topic = CONTEST_TOPIC
        self.total_seconds = int(total_seconds)
        self.created_at = datetime.now()

        self._scheduler = scheduler
        self._on_finished = on_finished
        self.policy = policy or AutoFailPolicy()
        self.idle_timeout = idle_timeout
        self.warning_seconds = warning_seconds

        self.state = SessionState.ACTIVE
        self.counters = SuspicionCounters()
        self.buffers = CodeBuffers()
        self.recording = RecordingBuffer()
        self.activity = ActivityLog()
        self.outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()

        self.clock = self._make_clock()
        self.collectors = default_collectors(
            self.increment,
            on_tab_hidden=self._on_tab_hidden,
            on_idle=self._on_idle,
            idle_timeout=idle_timeout,
        )
        self.renderer = PreviewRenderer(scheduler, self.buffers.snapshot, self.emit)
        self.submitter = Submitter(store, pass_score=pass_score)

        self.warnings: Dict[str, str] = {}
        self._warning_timers: Dict[str, ScheduledCallback] = {}
        self.snapshot: Optional[SubmissionSnapshot] = None
        self.outcome: Optional[SessionOutcome] = None
        self.destination: Optional[str] = None
        self.submission_task: Optional["asyncio.Future[Any]"] = None
        self.mounted = False
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None

    def _make_clock(self) -> SessionClock:
        return SessionClock(
            self._scheduler,
            on_tick=self._on_tick,
            on_expire=self._on_expire,
            total_seconds=self.total_seconds,
        )

    # ---------------- Lifecycle ---------------- #
    def mount(self) -> None:
        """Install collectors and start the clock and preview loop."""
        if self._started_at is not None:
            raise SessionError(f"session {self.session_id} was already mounted")
        if self.state is not SessionState.ACTIVE:
            raise SessionError(f"session {self.session_id} is {self.state.value}")

        self._started_at = self._scheduler.now()
        self.mounted = True
        self.collectors.attach(self._scheduler)
        self.renderer.attach()
        self.clock.start(self.total_seconds)
        logger.info(f"[MOUNTED] {self.session_id} ({self.total_seconds}s)")
        self.emit({"type": "mounted", "view": self.view()})

    def unmount(self) -> None:
        """Stop every timer and listener owned by the contest view."""
        if not self.mounted:
            return
        self._teardown()
        logger.info(f"[UNMOUNTED] {self.session_id}")

    def _teardown(self) -> None:
        if self._started_at is not None and self._stopped_at is None:
            self._stopped_at = self._scheduler.now()
        self.clock.stop()
        self.collectors.detach()
        self.renderer.detach()
        for timer in self._warning_timers.values():
            timer.cancel()
        self._warning_timers.clear()
        self.warnings.clear()
        self.recording.stop()
        self.mounted = False

    def reset(self) -> None:
        """Start a fresh attempt. Only allowed while the view is not mounted."""
        if self.mounted:
            raise SessionError("cannot reset a mounted session")
        if self.state is SessionState.SUBMITTING:
            raise SessionError("cannot reset while submitting")
        self.counters.reset()
        self.buffers.reset()
        self.recording.clear()
        self.activity.clear()
        self.clock = self._make_clock()
        self.submitter.video_url = None
        self.state = SessionState.ACTIVE
        self.snapshot = None
        self.outcome = None
        self.destination = None
        self.submission_task = None
        self._started_at = None
        self._stopped_at = None
        logger.info(f"[RESET] {self.session_id}")

    # ---------------- Outbound messages ---------------- #
    def emit(self, message: Dict[str, Any]) -> None:
        self.outbox.put_nowait(message)

    def _show_warning(self, code: str, message: str) -> None:
        self.warnings[code] = message
        self.emit({"type": "warning", "code": code, "message": message})
        previous = self._warning_timers.pop(code, None)
        if previous is not None:
            previous.cancel()
        self._warning_timers[code] = self._scheduler.call_later(
            self.warning_seconds, lambda: self._clear_warning(code)
        )

    def _clear_warning(self, code: str) -> None:
        self._warning_timers.pop(code, None)
        if self.warnings.pop(code, None) is not None:
            self.emit({"type": "warning_cleared", "code": code})

    def _navigate(self, target: str, state: Optional[Dict[str, Any]] = None) -> None:
        self.destination = target
        self.emit({"type": "navigate", "target": target, "state": state or {}})

    # ---------------- Signals ---------------- #
    def increment(self, kind: SuspicionKind) -> int:
        count = self.counters.increment(kind)
        self.activity.record(SuspicionKind(kind).value)
        logger.info(f"[FLAG] {self.session_id}: {SuspicionKind(kind).value} ({count})")
        self.emit({"type": "flags", "flags": dict(self.counters.snapshot())})
        return count

    def _on_tab_hidden(self, count: int) -> None:
        limit = self.policy.tab_switch_limit
        self._show_warning("tab_switch", f"Warning: Tab switch detected ({count}/{limit})")
        self._evaluate_policy()

    def _on_idle(self, count: int) -> None:
        minutes = int(self.idle_timeout // 60)
        self._show_warning("idle", f"You've been idle for {minutes} minutes. Keep coding!")

    def _on_tick(self, remaining: int) -> None:
        self.emit({
            "type": "tick",
            "remaining": remaining,
            "display": self.clock.display(),
            "level": self.clock.level.value,
        })
        self._evaluate_policy()

    def _on_expire(self) -> None:
        logger.info(f"[TIME UP] {self.session_id}")
        self.emit({"type": "time_up"})
        self.submission_task = self._scheduler.spawn(self.submit(SubmitTrigger.EXPIRY))

    def _evaluate_policy(self) -> bool:
        if self.state is not SessionState.ACTIVE:
            return False
        if not self.policy.should_fail(self.counters.snapshot()):
            return False
        self._auto_fail()
        return True

    def _auto_fail(self) -> None:
        self.state = SessionState.AUTO_FAILED
        logger.warning(
            f"[AUTO-FAIL] {self.session_id}: "
            f"{self.counters[SuspicionKind.TAB_SWITCHES]} tab switches"
        )
        self._teardown()
        self.emit({"type": "notification", "level": "error", "message": AUTO_FAIL_MESSAGE})
        self.emit({
            "type": "auto_failed",
            "title": "Contest Auto-Failed",
            "message": "Too many suspicious activities detected. Please try again later.",
            "actions": [{"label": "Back to Home", "target": HOME_ROUTE}],
        })
        self._finish()

    # ---------------- Client events ---------------- #
    def handle_event(self, event: ClientEvent) -> Optional[Dict[str, Any]]:
        """Apply one client event; returns the reply to send back, if any."""
        if not self.mounted or self.state.terminal:
            return None

        if event.type == "code":
            if self.state is SessionState.ACTIVE:
                self.buffers.update(event.language or "", event.value or "")
            return None
        if event.type == "refresh":
            self.renderer.refresh()
            return None
        if event.type == "submit_request":
            return {"type": "review", **self.review()}
        if event.type == "submit_confirm":
            self.submission_task = self._scheduler.spawn(self.submit(SubmitTrigger.MANUAL))
            return None
        if event.type == "recording_stop":
            self.recording.stop()
            return None
        if self.collectors.handles(event.type):
            prevent_default = self.collectors.dispatch(event)
            return {"type": "ack", "event": event.type, "prevent_default": prevent_default}

        logger.debug(f"[WS] {self.session_id} ignored event type: {event.type}")
        return None

    def review(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "flags": dict(self.counters.snapshot()),
            "tab_switch_limit": self.policy.tab_switch_limit,
        }

    # ---------------- Submission ---------------- #
    def _capture_snapshot(self) -> SubmissionSnapshot:
        code = self.buffers.snapshot()
        return SubmissionSnapshot(
            user_id=self.user_id,
            contest_id=self.contest_id,
            html=code.html,
            css=code.css,
            js=code.js,
            time_taken_seconds=self.elapsed_seconds,
            flags=self.counters.snapshot(),
            recording=self.recording.artifact(),
        )

    async def submit(self, trigger: SubmitTrigger = SubmitTrigger.MANUAL) -> Optional[SessionOutcome]:
        """
        Submit the attempt. Only one submission can be in flight; a call made
        while not active returns None without reaching the store. A failed
        submission returns the session to active and keeps the snapshot for
        the retry.
        """
        if self.state is not SessionState.ACTIVE or self._started_at is None:
            logger.info(f"[SUBMIT IGNORED] {self.session_id}: {trigger.value} while {self.state.value}")
            return None

        self.state = SessionState.SUBMITTING
        if self.snapshot is None:
            self.snapshot = self._capture_snapshot()
        self.emit({"type": "submitting", "trigger": trigger.value})

        try:
            outcome = await self.submitter.submit(self.snapshot)
        except Exception as e:
            logger.error(f"[SUBMIT FAILED] {self.session_id}: {e}")
            self.state = SessionState.ACTIVE
            # Tab switches seen while submitting were not evaluated yet
            if self._evaluate_policy():
                return None
            self.emit({"type": "notification", "level": "error", "message": SUBMIT_FAILED_MESSAGE})
            return None

        passed, target = self.submitter.route(outcome)
        self.outcome = outcome
        self.state = SessionState.PASSED if passed else SessionState.FAILED
        self._teardown()
        self._navigate(target, {"submission": outcome.to_dict()})
        self._finish()
        return outcome

    def _finish(self) -> None:
        logger.info(f"[FINISHED] {self.session_id}: {self.state.value}")
        if self._on_finished is None:
            return
        try:
            self._on_finished(self)
        except OSError as e:
            logger.error(f"Failed to persist session {self.session_id}: {e}")

    # ---------------- Views ---------------- #
    @property
    def started(self) -> bool:
        return self._started_at is not None

    @property
    def elapsed_seconds(self) -> int:
        """Seconds spent in the contest view, frozen once the view is torn down."""
        if self._started_at is None:
            return 0
        end = self._stopped_at if self._stopped_at is not None else self._scheduler.now()
        return min(int(end - self._started_at), self.total_seconds)

    def view(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "contest_id": self.contest_id,
            "topic": self.topic,
            "state": self.state.value,
            "mounted": self.mounted,
            "clock": {
                "total": self.total_seconds,
                "remaining": self.clock.remaining_seconds,
                "display": self.clock.display(),
                "level": self.clock.level.value,
            },
            "flags": dict(self.counters.snapshot()),
            "warnings": dict(self.warnings),
            "preview": {
                "error": self.renderer.error,
                "refresh_count": self.renderer.refresh_count,
            },
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "destination": self.destination,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Serializable record of the attempt for reports."""
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "contest_id": self.contest_id,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "elapsed_seconds": self.elapsed_seconds,
            "flags": dict(self.counters.snapshot()),
            "total_flags": self.activity.total(),
            "activity_log": list(self.activity.entries),
            "outcome": self.outcome.to_dict() if self.outcome else None,
        }
