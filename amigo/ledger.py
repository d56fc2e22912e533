import logging
from typing import Callable, Dict, Mapping, Optional

logger = logging.getLogger(__name__)


class ProgressLedger:
    """Reward points per category ("practice", "missions", ...) plus a derived total."""

    def __init__(
        self,
        counters: Optional[Mapping[str, int]] = None,
        on_change: Optional[Callable[["ProgressLedger"], None]] = None,
    ):
        self._counters: Dict[str, int] = {}
        self.on_change = on_change
        if counters:
            self.load(counters)

    def add(self, category: str, amount: int) -> int:
        amount = int(amount)
        if amount < 0:
            logger.warning("negative reward %s for %r clamped to 0", amount, category)
            amount = 0
        self._counters[category] = self._counters.get(category, 0) + amount
        self._changed()
        return amount

    def get(self, category: str) -> int:
        return self._counters.get(category, 0)

    @property
    def total(self) -> int:
        return sum(self._counters.values())

    def snapshot(self) -> Dict[str, int]:
        return dict(self._counters)

    def load(self, counters: Mapping[str, int]) -> None:
        # silent replace; used when restoring from storage
        self._counters = {k: max(0, int(v)) for k, v in counters.items()}

    def reset_all(self, notify: bool = True) -> None:
        self._counters = {}
        if notify:
            self._changed()

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self)
