"""Contest session data models."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

STARTER_HTML = (
    "<!DOCTYPE html>\n"
    '<html lang="en">\n'
    "<head>\n"
    '    <meta charset="UTF-8">\n'
    '    <meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
    "    <title>Coffee Shop Website</title>\n"
    '    <link rel="stylesheet" href="style.css">\n'
    "</head>\n"
    "<body>\n"
    '    <div id="app"></div>\n'
    '    <script src="script.js"></script>\n'
    "</body>\n"
    "</html>"
)

STARTER_CSS = """* {
    margin: 0;
    padding: 0;
    box-sizing: border-box;
}

body {
    font-family: Arial, sans-serif;
    background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
    color: #333;
}

#app {
    display: flex;
    justify-content: center;
    align-items: center;
    min-height: 100vh;
    padding: 20px;
}

.container {
    background: white;
    border-radius: 10px;
    padding: 40px;
    max-width: 600px;
    box-shadow: 0 10px 40px rgba(0, 0, 0, 0.2);
}

h1 {
    color: #8B4513;
    margin-bottom: 20px;
}

p {
    line-height: 1.6;
    color: #555;
}"""

STARTER_JS = """const app = document.getElementById("app");
app.innerHTML = `
  <div class="container">
    <h1>Welcome to Coffee Shop</h1>
    <p>Build this website with your own creative design!</p>
  </div>
`;

console.log("JavaScript loaded successfully");"""


class SuspicionKind(str, Enum):
    """Integrity signals counted during a contest attempt."""

    RIGHT_CLICKS = "rightClicks"
    COPY_PASTE_ATTEMPTS = "copyPasteAttempts"
    TAB_SWITCHES = "tabSwitches"
    WINDOW_BLURS = "windowBlurs"
    IDLE_WARNINGS = "idleWarnings"


class SessionState(str, Enum):
    ACTIVE = "active"
    SUBMITTING = "submitting"
    PASSED = "passed"
    FAILED = "failed"
    AUTO_FAILED = "auto_failed"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.PASSED, SessionState.FAILED, SessionState.AUTO_FAILED)


class SuspicionCounters:
    """Monotonic per-kind counters; only ``increment`` and ``reset`` mutate them."""

    def __init__(self):
        self._counts: Dict[SuspicionKind, int] = {kind: 0 for kind in SuspicionKind}

    def increment(self, kind: SuspicionKind) -> int:
        kind = SuspicionKind(kind)
        self._counts[kind] += 1
        return self._counts[kind]

    def __getitem__(self, kind: SuspicionKind) -> int:
        return self._counts[SuspicionKind(kind)]

    def snapshot(self) -> Mapping[str, int]:
        return MappingProxyType({kind.value: count for kind, count in self._counts.items()})

    def reset(self) -> None:
        for kind in self._counts:
            self._counts[kind] = 0


@dataclass(frozen=True)
class CodeSnapshot:
    html: str
    css: str
    js: str


class CodeBuffers:
    """The three editor buffers of one attempt."""

    LANGUAGES = ("html", "css", "js")

    def __init__(self, html: str = STARTER_HTML, css: str = STARTER_CSS, js: str = STARTER_JS):
        self.html = html
        self.css = css
        self.js = js

    def update(self, language: str, text: str) -> None:
        if language not in self.LANGUAGES:
            raise ValueError(f"unknown editor language: {language!r}")
        setattr(self, language, text or "")

    def snapshot(self) -> CodeSnapshot:
        return CodeSnapshot(html=self.html, css=self.css, js=self.js)

    def reset(self) -> None:
        self.html, self.css, self.js = STARTER_HTML, STARTER_CSS, STARTER_JS


def _freeze(flags: Mapping[str, int]) -> Mapping[str, int]:
    return MappingProxyType(dict(flags))


@dataclass(frozen=True)
class SubmissionSnapshot:
    """Everything captured at the moment a session starts submitting."""

    user_id: str
    contest_id: str
    html: str
    css: str
    js: str
    time_taken_seconds: int
    flags: Mapping[str, int]
    recording: Optional[bytes] = field(default=None, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "flags", _freeze(self.flags))

    @property
    def tab_switch_count(self) -> int:
        return self.flags.get(SuspicionKind.TAB_SWITCHES.value, 0)


@dataclass(frozen=True)
class SessionOutcome:
    """Scored result of a submitted session."""

    score: int
    time_taken_seconds: int
    flags: Mapping[str, int]
    video_url: Optional[str] = None
    submission_id: Optional[str] = None
    submitted_at: Optional[str] = None

    def __post_init__(self):
        if not 0 <= self.score <= 100:
            raise ValueError(f"score out of range: {self.score}")
        object.__setattr__(self, "flags", _freeze(self.flags))

    def is_passing(self, pass_score: int) -> bool:
        return self.score >= pass_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "time_taken_seconds": self.time_taken_seconds,
            "flags": dict(self.flags),
            "video_url": self.video_url,
            "submission_id": self.submission_id,
            "submitted_at": self.submitted_at,
        }


class ActivityLog:
    """Chronological suspicion activity, merging bursts of the same activity."""

    def __init__(self, merge_window_sec: float = 3.0):
        self.merge_window_sec = merge_window_sec
        self.entries: List[Dict[str, Any]] = []

    def record(self, activity: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now()
        timestamp_str = now.strftime(TIME_FORMAT)

        if self.entries:
            last_entry = self.entries[-1]
            last_end_time = datetime.strptime(last_entry["end_time"], TIME_FORMAT)
            if (
                last_entry["activity"] == activity
                and (now - last_end_time).total_seconds() <= self.merge_window_sec
            ):
                start_dt = datetime.strptime(last_entry["start_time"], TIME_FORMAT)
                last_entry["end_time"] = timestamp_str
                last_entry["duration_sec"] = int((now - start_dt).total_seconds())
                last_entry["count"] += 1
                return last_entry

        entry = {
            "activity": activity,
            "start_time": timestamp_str,
            "end_time": timestamp_str,
            "duration_sec": 0,
            "count": 1,
        }
        self.entries.append(entry)
        return entry

    def total(self) -> int:
        return sum(entry["count"] for entry in self.entries)

    def clear(self) -> None:
        self.entries.clear()


def format_duration(seconds: int) -> str:
    return str(timedelta(seconds=max(0, int(seconds))))
