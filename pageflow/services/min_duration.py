from typing import Optional

from pageflow.core.clock import Scheduler, TimerHandle
from pageflow.core.config import settings
from pageflow.utils.observable import Observable


class MinDurationFlag(Observable[bool]):
    """A boolean that stays True for at least min_ms once raised"""

    def __init__(self, scheduler: Scheduler, min_ms: float | None = None):
        super().__init__()
        self.scheduler = scheduler
        self.min_ms = settings.LOAD_MORE_SPINNER_MIN_MS if min_ms is None else min_ms
        self._value = False
        self._started_at = 0.0
        self._timer: Optional[TimerHandle] = None

    @property
    def value(self) -> bool:
        return self._value

    def _snapshot(self) -> bool:
        return self._value

    def set(self, value: bool) -> None:
        self._clear_timer()

        if value:
            self._started_at = self.scheduler.now()
            self._apply(True)
            return

        remaining = max(0.0, self.min_ms - (self.scheduler.now() - self._started_at))
        if remaining == 0:
            self._apply(False)
            return

        self._timer = self.scheduler.call_later(remaining, self._lower)

    def _lower(self) -> None:
        self._timer = None
        self._apply(False)

    def _apply(self, value: bool) -> None:
        if self._value != value:
            self._value = value
            self._notify()

    def _clear_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def dispose(self) -> None:
        self._clear_timer()
