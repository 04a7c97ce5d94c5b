"""Submission and upload collaborators backed by an external data store."""

import logging
import random
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx

from ..config import (
    RESUME_BUCKET,
    STORE_API_KEY,
    STORE_BACKEND,
    STORE_TIMEOUT_SECONDS,
    STORE_URL,
    VIDEO_BUCKET,
)
from ..models.session import SubmissionSnapshot

logger = logging.getLogger(__name__)

ScoringPolicy = Callable[[SubmissionSnapshot], int]


class StoreError(Exception):
    """Transport or storage failure while talking to the data store."""


def random_score(snapshot: SubmissionSnapshot) -> int:
    """Placeholder grading: a coin flip between a passing and a failing score."""
    return 85 if random.random() > 0.5 else 70


def _millis() -> int:
    return int(time.time() * 1000)


def _submission_row(snapshot: SubmissionSnapshot, video_url: Optional[str], score: int) -> Dict[str, Any]:
    return {
        "user_id": snapshot.user_id,
        "contest_id": snapshot.contest_id,
        "html_code": snapshot.html,
        "css_code": snapshot.css,
        "js_code": snapshot.js,
        "time_taken": snapshot.time_taken_seconds,
        "cheating_flags": dict(snapshot.flags),
        "tab_switch_count": snapshot.tab_switch_count,
        "video_url": video_url,
        "score": score,
        "submitted_at": datetime.now(timezone.utc).isoformat(),
    }


class ContestStore:
    """Operations the contest core needs from the data store."""

    async def submit_contest(self, snapshot: SubmissionSnapshot, video_url: Optional[str] = None) -> Dict[str, Any]:
        raise NotImplementedError

    async def upload_video(self, user_id: str, data: bytes) -> str:
        raise NotImplementedError

    async def upload_resume(self, user_id: str, filename: str, data: bytes,
                            content_type: Optional[str] = None) -> Dict[str, Any]:
        raise NotImplementedError


class InMemoryContestStore(ContestStore):
    """Keeps submissions and uploads in process memory."""

    def __init__(self, scoring: ScoringPolicy = random_score, public_base_url: str = "memory://"):
        self.scoring = scoring
        self.public_base_url = public_base_url
        self.submissions: List[Dict[str, Any]] = []
        self.videos: Dict[str, bytes] = {}
        self.resumes: Dict[str, Dict[str, Any]] = {}

    async def submit_contest(self, snapshot: SubmissionSnapshot, video_url: Optional[str] = None) -> Dict[str, Any]:
        row = _submission_row(snapshot, video_url, self.scoring(snapshot))
        row["id"] = str(uuid.uuid4())
        self.submissions.append(row)
        return dict(row)

    async def upload_video(self, user_id: str, data: bytes) -> str:
        name = f"{user_id}-{_millis()}.webm"
        self.videos[name] = data
        return f"{self.public_base_url}{VIDEO_BUCKET}/{name}"

    async def upload_resume(self, user_id: str, filename: str, data: bytes,
                            content_type: Optional[str] = None) -> Dict[str, Any]:
        name = f"{user_id}-{_millis()}"
        self.resumes[user_id] = {
            "resume_url": name,
            "filename": filename,
            "content_type": content_type,
            "size": len(data),
        }
        return {"id": user_id, "resume_url": name}


class RestContestStore(ContestStore):
    """Supabase-compatible REST store (PostgREST tables plus object storage)."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        scoring: ScoringPolicy = random_score,
        timeout: float = STORE_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url or not api_key:
            raise StoreError("Missing store URL or API key")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.scoring = scoring
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {"apikey": self.api_key, "Authorization": f"Bearer {self.api_key}"}
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    def public_url(self, bucket: str, name: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{name}"

    async def _upload(self, client: httpx.AsyncClient, bucket: str, name: str,
                      data: bytes, content_type: str) -> None:
        r = await client.post(
            f"/storage/v1/object/{bucket}/{name}",
            content=data,
            headers={"Content-Type": content_type},
        )
        r.raise_for_status()

    async def submit_contest(self, snapshot: SubmissionSnapshot, video_url: Optional[str] = None) -> Dict[str, Any]:
        row = _submission_row(snapshot, video_url, self.scoring(snapshot))
        try:
            async with self._client() as client:
                r = await client.post(
                    "/rest/v1/submissions",
                    json=row,
                    headers={"Prefer": "return=representation"},
                )
                r.raise_for_status()
                data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise StoreError(f"submission failed: {e}") from e
        if isinstance(data, list):
            if not data:
                raise StoreError("submission returned no rows")
            data = data[0]
        return data

    async def upload_video(self, user_id: str, data: bytes) -> str:
        name = f"{user_id}-{_millis()}.webm"
        try:
            async with self._client() as client:
                await self._upload(client, VIDEO_BUCKET, name, data, "video/webm")
        except httpx.HTTPError as e:
            raise StoreError(f"video upload failed: {e}") from e
        return self.public_url(VIDEO_BUCKET, name)

    async def upload_resume(self, user_id: str, filename: str, data: bytes,
                            content_type: Optional[str] = None) -> Dict[str, Any]:
        name = f"{user_id}-{_millis()}"
        try:
            async with self._client() as client:
                await self._upload(client, RESUME_BUCKET, name, data,
                                   content_type or "application/octet-stream")
                r = await client.patch(
                    "/rest/v1/users",
                    params={"id": f"eq.{user_id}"},
                    json={"resume_url": name},
                    headers={"Prefer": "return=representation"},
                )
                r.raise_for_status()
                rows = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise StoreError(f"resume upload failed: {e}") from e
        return rows[0] if isinstance(rows, list) and rows else {"id": user_id, "resume_url": name}


_store: Optional[ContestStore] = None


def get_store() -> ContestStore:
    """Return the process-wide store selected by ``STORE_BACKEND``."""
    global _store
    if _store is None:
        if STORE_BACKEND == "rest":
            _store = RestContestStore(STORE_URL, STORE_API_KEY)
        else:
            _store = InMemoryContestStore()
        logger.info(f"[STORE] using {type(_store).__name__}")
    return _store


def set_store(store: Optional[ContestStore]) -> None:
    global _store
    _store = store
