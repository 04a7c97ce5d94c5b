"""Live preview of the candidate's HTML/CSS/JS."""

import logging
import re
from typing import Any, Callable, Dict, Optional

from ..config import PREVIEW_REFRESH_SECONDS
from ..models.session import CodeSnapshot
from ..utils.scheduling import ScheduledCallback, Scheduler

logger = logging.getLogger(__name__)

CLOSING_BODY = re.compile(r"</body\s*>", re.IGNORECASE)
PREVIEW_SANDBOX = "allow-same-origin allow-scripts allow-forms allow-popups"
RENDER_ERROR_MESSAGE = "Error rendering preview"


class RenderError(Exception):
    """Raised when the merged document cannot be produced."""


def merge_document(html: str, css: str, js: str) -> str:
    """Inject the stylesheet and script right before the first ``</body>``."""
    match = CLOSING_BODY.search(html)
    if match is None:
        raise RenderError("document has no closing </body> tag")
    injected = f"<style>{css}</style><script>{js}</script>"
    return html[:match.start()] + injected + html[match.start():]


class PreviewRenderer:
    """Re-renders the merged document on a fixed cadence and on demand."""

    def __init__(
        self,
        scheduler: Scheduler,
        read_buffers: Callable[[], CodeSnapshot],
        publish: Callable[[Dict[str, Any]], None],
        interval: float = PREVIEW_REFRESH_SECONDS,
    ):
        self._scheduler = scheduler
        self._read_buffers = read_buffers
        self._publish = publish
        self.interval = interval
        self.document: Optional[str] = None
        self.error: Optional[str] = None
        self.render_count = 0
        self.refresh_count = 0
        self._token: Optional[ScheduledCallback] = None

    def attach(self) -> None:
        if self._token is None:
            self._token = self._scheduler.call_every(self.interval, self.render)

    def detach(self) -> None:
        if self._token is not None:
            self._token.cancel()
            self._token = None

    @property
    def attached(self) -> bool:
        return self._token is not None

    def render(self) -> bool:
        snapshot = self._read_buffers()
        try:
            document = merge_document(snapshot.html, snapshot.css, snapshot.js)
        except RenderError as e:
            if self.error is None:
                logger.warning(f"[PREVIEW] render skipped: {e}")
            self.error = RENDER_ERROR_MESSAGE
            self._publish({"type": "preview_error", "error": self.error})
            return False

        self.document = document
        self.error = None
        self.render_count += 1
        self._publish({"type": "preview", "document": document, "sandbox": PREVIEW_SANDBOX})
        return True

    def refresh(self) -> bool:
        self.refresh_count += 1
        return self.render()
