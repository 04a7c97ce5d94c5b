"""Terminal submission of a contest attempt."""

import logging
from enum import Enum
from typing import Optional, Tuple

from ..config import FAILED_ROUTE, PASS_SCORE, RESUME_UPLOAD_ROUTE
from ..models.session import SessionOutcome, SubmissionSnapshot
from .store import ContestStore, StoreError

logger = logging.getLogger(__name__)


class SubmitTrigger(str, Enum):
    MANUAL = "manual"
    EXPIRY = "expiry"


class Submitter:
    """
    Uploads the optional recording, hands the snapshot to the store and turns
    the returned record into an outcome plus a navigation target.

    The recording upload is best effort; a successful upload is remembered so
    a retried submission does not upload the same artifact again.
    """

    def __init__(self, store: ContestStore, pass_score: int = PASS_SCORE):
        self.store = store
        self.pass_score = pass_score
        self.video_url: Optional[str] = None

    async def upload_recording(self, snapshot: SubmissionSnapshot) -> Optional[str]:
        if self.video_url is not None or not snapshot.recording:
            return self.video_url
        try:
            self.video_url = await self.store.upload_video(snapshot.user_id, snapshot.recording)
            logger.info(f"[VIDEO UPLOADED] {snapshot.user_id}: {self.video_url}")
        except Exception as e:
            logger.error(f"Failed to upload video for {snapshot.user_id}: {e}")
        return self.video_url

    async def submit(self, snapshot: SubmissionSnapshot) -> SessionOutcome:
        video_url = await self.upload_recording(snapshot)

        record = await self.store.submit_contest(snapshot, video_url)
        try:
            outcome = SessionOutcome(
                score=int(record["score"]),
                time_taken_seconds=snapshot.time_taken_seconds,
                flags=snapshot.flags,
                video_url=video_url,
                submission_id=record.get("id"),
                submitted_at=record.get("submitted_at"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise StoreError(f"invalid submission record: {e}") from e

        logger.info(f"[SUBMITTED] {snapshot.user_id}/{snapshot.contest_id}: score {outcome.score}")
        return outcome

    def route(self, outcome: SessionOutcome) -> Tuple[bool, str]:
        """Return whether the outcome passes and where the candidate goes next."""
        if outcome.is_passing(self.pass_score):
            return True, RESUME_UPLOAD_ROUTE
        return False, FAILED_ROUTE
