"""Webcam recording buffer."""

import logging
from typing import List, Optional

from ..config import RECORDING_MAX_BYTES

logger = logging.getLogger(__name__)


class RecordingBuffer:
    """
    Collects the webm chunks streamed by the client's media recorder.

    Once ``max_bytes`` would be exceeded the buffer stops itself and keeps
    what it already has; later chunks are rejected.
    """

    mime_type = "video/webm"

    def __init__(self, max_bytes: int = RECORDING_MAX_BYTES):
        self.max_bytes = max_bytes
        self._chunks: List[bytes] = []
        self._size = 0
        self.stopped = False
        self.full = False

    def append(self, chunk: bytes) -> bool:
        """Add a chunk; returns False when it was not kept."""
        if self.stopped or not chunk:
            return False
        if self._size + len(chunk) > self.max_bytes:
            logger.warning(f"[RECORDING] size limit of {self.max_bytes} bytes reached, recording stopped")
            self.full = True
            self.stopped = True
            return False
        self._chunks.append(bytes(chunk))
        self._size += len(chunk)
        return True

    def stop(self) -> None:
        self.stopped = True

    @property
    def size(self) -> int:
        return self._size

    def artifact(self) -> Optional[bytes]:
        """The recording so far, or None when nothing was captured."""
        if not self._chunks:
            return None
        return b"".join(self._chunks)

    def clear(self) -> None:
        self._chunks.clear()
        self._size = 0
        self.stopped = False
        self.full = False
