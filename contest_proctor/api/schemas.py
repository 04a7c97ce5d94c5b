from pydantic import BaseModel, Field
from typing import Dict, Optional


class ClientEvent(BaseModel):
    """A browser event or editor change forwarded by the contest page."""

    type: str
    key: Optional[str] = None
    ctrl: bool = False
    meta: bool = False
    hidden: Optional[bool] = None
    language: Optional[str] = None
    value: Optional[str] = None
    ts: Optional[int] = None

    class Config:
        extra = "ignore"


class StartSessionRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    contest_id: str = "default"
    duration_seconds: Optional[int] = Field(default=None, gt=0)


class StartSessionResponse(BaseModel):
    session_id: str
    contest_id: str
    topic: str
    total_seconds: int
    preview_sandbox: str


class ReviewResponse(BaseModel):
    session_id: str
    state: str
    flags: Dict[str, int]
    tab_switch_limit: int


class ChatRequest(BaseModel):
    conversation_id: Optional[str] = None
    choice: Optional[str] = None
