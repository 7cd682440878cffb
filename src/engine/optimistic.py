"""
Optimistic toggle state for presentation layers.

A client flips the icon and adjusts the shown count before the ledger call
returns, then settles against the engine's result tuple: success keeps the
tentative state, failure restores what was shown before. A later
authoritative refetch (``get_counters``) is adopted wholesale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from src.engine.errors import Result

logger = logging.getLogger(__name__)


@dataclass
class OptimisticToggle:
    active: bool = False
    count: int = 0
    counter: str = "likes_count"
    _prior: Optional[tuple[bool, int]] = field(default=None, repr=False)

    @property
    def pending(self) -> bool:
        return self._prior is not None

    def apply(self) -> tuple[bool, int]:
        """Flip the state locally and move the count by one."""
        if self._prior is None:
            self._prior = (self.active, self.count)
        self.active = not self.active
        self.count = self.count + 1 if self.active else max(0, self.count - 1)
        return self.active, self.count

    def settle(self, result: Result) -> bool:
        """Keep or roll back the tentative state; returns the final ``active``.

        Settling with nothing pending (a second settle, or a response that
        arrives after the view moved on) changes nothing.
        """
        if self._prior is None:
            return self.active
        success, message, data = result
        if success:
            if data and "count" in data:
                self.count = max(0, int(data["count"]))
            if data and "state" in data:
                self.active = data["state"] == "on"
        else:
            self.active, self.count = self._prior
            logger.debug("Reverted optimistic %s: %s", self.counter, message)
        self._prior = None
        return self.active

    def adopt(self, counters: dict[str, Any]) -> int:
        """Replace the shown count with an authoritative value."""
        if self.counter in counters:
            self.count = max(0, int(counters[self.counter]))
        return self.count
