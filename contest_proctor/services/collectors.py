"""Integrity signal collectors for the contest view."""

import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..api.schemas import ClientEvent
from ..config import IDLE_TIMEOUT_SECONDS
from ..models.session import SuspicionKind
from ..utils.scheduling import ScheduledCallback, Scheduler

logger = logging.getLogger(__name__)

Increment = Callable[[SuspicionKind], int]
CLIPBOARD_KEYS = ("c", "x", "v")


class Collector:
    """
    Observes one class of client event and reports one counter increment per
    qualifying occurrence through the ``increment`` capability.
    """

    kind: SuspicionKind
    event_types: Tuple[str, ...] = ()

    def __init__(self, increment: Increment):
        self._increment = increment

    def attach(self, scheduler: Scheduler) -> None:
        pass

    def detach(self) -> None:
        pass

    def handle(self, event: ClientEvent) -> bool:
        """Return True when the client must suppress the event's default action."""
        raise NotImplementedError


class RightClickCollector(Collector):
    kind = SuspicionKind.RIGHT_CLICKS
    event_types = ("contextmenu",)

    def handle(self, event: ClientEvent) -> bool:
        self._increment(self.kind)
        return True


class ClipboardCollector(Collector):
    """Copy, cut and paste shortcuts (ctrl or cmd with c, x or v)."""

    kind = SuspicionKind.COPY_PASTE_ATTEMPTS
    event_types = ("keydown",)

    def handle(self, event: ClientEvent) -> bool:
        if not (event.ctrl or event.meta):
            return False
        if (event.key or "").lower() not in CLIPBOARD_KEYS:
            return False
        self._increment(self.kind)
        return True


class VisibilityCollector(Collector):
    kind = SuspicionKind.TAB_SWITCHES
    event_types = ("visibilitychange",)

    def __init__(self, increment: Increment, on_hidden: Optional[Callable[[int], None]] = None):
        super().__init__(increment)
        self._on_hidden = on_hidden

    def handle(self, event: ClientEvent) -> bool:
        if not event.hidden:
            return False
        count = self._increment(self.kind)
        if self._on_hidden:
            self._on_hidden(count)
        return False


class BlurCollector(Collector):
    kind = SuspicionKind.WINDOW_BLURS
    event_types = ("blur",)

    def handle(self, event: ClientEvent) -> bool:
        self._increment(self.kind)
        return False


class IdleCollector(Collector):
    """
    Counts one idle warning after ``timeout`` seconds without pointer or key
    activity. The timer is armed on attach and re-armed by every activity
    event; once fired it stays quiet until the next activity.
    """

    kind = SuspicionKind.IDLE_WARNINGS
    event_types = ("mousemove", "keypress")

    def __init__(
        self,
        increment: Increment,
        on_idle: Optional[Callable[[int], None]] = None,
        timeout: float = IDLE_TIMEOUT_SECONDS,
    ):
        super().__init__(increment)
        self._on_idle = on_idle
        self.timeout = timeout
        self._scheduler: Optional[Scheduler] = None
        self._timer: Optional[ScheduledCallback] = None

    def attach(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._arm()

    def detach(self) -> None:
        self._cancel()
        self._scheduler = None

    def handle(self, event: ClientEvent) -> bool:
        self._arm()
        return False

    def _arm(self) -> None:
        if self._scheduler is None:
            return
        self._cancel()
        self._timer = self._scheduler.call_later(self.timeout, self._fire)

    def _cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        self._timer = None
        count = self._increment(self.kind)
        logger.info(f"[IDLE] no activity for {self.timeout:.0f}s")
        if self._on_idle:
            self._on_idle(count)


class CollectorSet:
    """All collectors of one contest view, attached and detached together."""

    def __init__(self, collectors: Iterable[Collector]):
        self.collectors: List[Collector] = list(collectors)
        self._routes: Dict[str, List[Collector]] = {}
        self.attached = False

    def attach(self, scheduler: Scheduler) -> None:
        if self.attached:
            return
        for collector in self.collectors:
            for event_type in collector.event_types:
                self._routes.setdefault(event_type, []).append(collector)
            collector.attach(scheduler)
        self.attached = True
        logger.debug(f"[COLLECTORS ATTACHED] {sorted(self._routes)}")

    def detach(self) -> None:
        if not self.attached:
            return
        for collector in self.collectors:
            collector.detach()
        self._routes.clear()
        self.attached = False

    def handles(self, event_type: str) -> bool:
        return event_type in self._routes

    def dispatch(self, event: ClientEvent) -> bool:
        prevent_default = False
        for collector in self._routes.get(event.type, ()):
            if collector.handle(event):
                prevent_default = True
        return prevent_default


def default_collectors(
    increment: Increment,
    on_tab_hidden: Optional[Callable[[int], None]] = None,
    on_idle: Optional[Callable[[int], None]] = None,
    idle_timeout: float = IDLE_TIMEOUT_SECONDS,
) -> CollectorSet:
    return CollectorSet([
        RightClickCollector(increment),
        ClipboardCollector(increment),
        VisibilityCollector(increment, on_hidden=on_tab_hidden),
        BlurCollector(increment),
        IdleCollector(increment, on_idle=on_idle, timeout=idle_timeout),
    ])
