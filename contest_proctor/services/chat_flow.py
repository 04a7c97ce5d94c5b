"""Scripted career-assistant chat that leads a candidate to the contest."""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional

from ..config import CONTEST_DURATION_SECONDS, CONTEST_TOPIC

logger = logging.getLogger(__name__)

ROLES = {
    "frontend": "Frontend Developer",
    "backend": "Backend Developer",
    "data-science": "Data Scientist",
}
LEVELS = {
    "beginner": "Beginner",
    "intermediate": "Intermediate",
    "advanced": "Advanced",
}
START_CONTEST = "start-contest"


def _option(label: str, value: str) -> Dict[str, str]:
    return {"label": label, "value": value}


class ChatConversation:
    """Walks greeting -> role-selection -> certification -> project-level -> contest-link."""

    def __init__(self, conversation_id: Optional[str] = None):
        self.conversation_id = conversation_id or uuid.uuid4().hex
        self.step = "greeting"
        self.role: Optional[str] = None
        self.certification: Optional[str] = None
        self.level: Optional[str] = None
        self.contest_id: Optional[str] = None

    def _bot(self, text: str, options: List[Dict[str, str]]) -> Dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "step": self.step,
            "text": text,
            "options": options,
        }

    def start(self) -> Dict[str, Any]:
        self.step = "role-selection"
        return self._bot(
            "Hi there! I'm your Career Assistant. Which role are you interested in pursuing?",
            [_option(label, value) for value, label in ROLES.items()],
        )

    def choose(self, value: str) -> Dict[str, Any]:
        if self.step == "role-selection":
            if value not in ROLES:
                raise ValueError(f"unknown role: {value!r}")
            self.role = value
            self.step = "certification"
            return self._bot(
                f"Great! {ROLES[value]} is an excellent choice. "
                "Do you have any certifications or relevant projects for this role?",
                [_option("Yes, I have both", "yes"), _option("No, I'm starting out", "no")],
            )

        if self.step == "certification":
            if value not in ("yes", "no"):
                raise ValueError(f"unknown answer: {value!r}")
            self.certification = value
            self.step = "project-level"
            if value == "yes":
                return self._bot(
                    "Excellent! What level are your projects or certifications at?",
                    [_option(label, level) for level, label in LEVELS.items()],
                )
            self.level = "beginner"
            return self._bot(
                "No problem! You'll start with a beginner-level challenge. "
                "Let's assess your current skills.",
                [_option("Continue to Challenge", "beginner")],
            )

        if self.step == "project-level":
            allowed = ("beginner",) if self.certification == "no" else tuple(LEVELS)
            if value not in allowed:
                raise ValueError(f"unknown level: {value!r}")
            self.level = value
            self.step = "contest-link"
            minutes = CONTEST_DURATION_SECONDS // 60
            return self._bot(
                f'Perfect! I\'ve prepared a {value} challenge for you: "{CONTEST_TOPIC}". '
                f"You'll have {minutes} minutes to complete this project. "
                "Click the button below to start the coding challenge!",
                [_option("Start Coding Challenge", START_CONTEST)],
            )

        if self.step == "contest-link":
            if value != START_CONTEST:
                raise ValueError(f"unknown action: {value!r}")
            self.contest_id = f"contest-{int(time.time() * 1000)}"
            self.step = "done"
            logger.info(f"[CHAT] {self.conversation_id}: {self.role}/{self.level} -> {self.contest_id}")
            reply = self._bot("Good luck!", [])
            reply["contest_id"] = self.contest_id
            reply["navigate"] = f"/contest/{self.contest_id}"
            return reply

        raise ValueError(f"conversation {self.conversation_id} is finished")


CONVERSATIONS: Dict[str, ChatConversation] = {}


def chat(conversation_id: Optional[str], choice: Optional[str]) -> Dict[str, Any]:
    """Start a conversation when no id is given, otherwise apply the choice."""
    if conversation_id is None:
        conversation = ChatConversation()
        CONVERSATIONS[conversation.conversation_id] = conversation
        return conversation.start()

    conversation = CONVERSATIONS.get(conversation_id)
    if conversation is None:
        raise KeyError(conversation_id)
    if choice is None:
        raise ValueError("choice is required")
    return conversation.choose(choice)
