"""Auto-fail decision rule."""

from dataclasses import dataclass
from typing import Mapping

from ..config import TAB_SWITCH_LIMIT
from ..models.session import SuspicionKind


@dataclass(frozen=True)
class AutoFailPolicy:
    """Fails the attempt once tab switches reach the limit (counted after the increment)."""

    tab_switch_limit: int = TAB_SWITCH_LIMIT

    def should_fail(self, flags: Mapping[str, int]) -> bool:
        return flags.get(SuspicionKind.TAB_SWITCHES.value, 0) >= self.tab_switch_limit
