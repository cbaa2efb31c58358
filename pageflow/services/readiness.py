from typing import Dict, FrozenSet, Iterable, Optional

from pageflow.core.clock import Scheduler, TimerHandle
from pageflow.core.config import settings
from pageflow.core.logging import LogContext
from pageflow.core.metrics import record_stale, skeleton_hold_duration
from pageflow.models.readiness import ItemId, ItemState, ReadinessRecord
from pageflow.utils.observable import Observable

logger = LogContext(__name__)


class ItemReadinessTracker(Observable[FrozenSet[ItemId]]):
    """
    Per-item skeleton state with an anti-flicker minimum duration

    An id stays "loading" for at least min_skeleton_duration_ms after
    mark_as_loading, even if its data arrives sooner. Removal past that
    point is deferred with a cancellable timer tagged with the record's
    generation.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        min_skeleton_duration_ms: float | None = None,
        fade_out_ms: float | None = None,
        initial_loading_ids: Iterable[ItemId] = (),
    ):
        super().__init__()
        self.scheduler = scheduler
        self.min_skeleton_duration_ms = (
            settings.MIN_SKELETON_DURATION_MS
            if min_skeleton_duration_ms is None
            else min_skeleton_duration_ms
        )
        self.fade_out_ms = settings.SKELETON_FADE_OUT_MS if fade_out_ms is None else fade_out_ms

        self._records: Dict[ItemId, ReadinessRecord] = {}
        self._timers: Dict[ItemId, TimerHandle] = {}
        self._generation = 0

        for item_id in initial_loading_ids:
            self._records[item_id] = ReadinessRecord(
                state=ItemState.PENDING,
                load_started_at=None,
                generation=self._next_generation(),
            )

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _snapshot(self) -> FrozenSet[ItemId]:
        return self.loading_ids

    @property
    def loading_ids(self) -> FrozenSet[ItemId]:
        return frozenset(self._records)

    @property
    def is_empty(self) -> bool:
        return not self._records

    def is_item_loading(self, item_id: ItemId) -> bool:
        """True while the id is loading or held visible to avoid flicker"""
        return item_id in self._records

    def get_state(self, item_id: ItemId) -> Optional[ItemState]:
        record = self._records.get(item_id)
        return record.state if record else None

    def pending_timer_count(self) -> int:
        return len(self._timers)

    def mark_as_loading(self, ids: Iterable[ItemId]) -> None:
        """
        Start (or restart) the loading clock for each id

        A pending deferred removal for the id is cancelled so it cannot
        remove the fresh record.
        """
        now = self.scheduler.now()
        changed = False
        for item_id in ids:
            self._cancel_timer(item_id)
            self._records[item_id] = ReadinessRecord(
                state=ItemState.LOADING,
                load_started_at=now,
                generation=self._next_generation(),
            )
            changed = True

        if changed:
            self._notify()

    def mark_as_loaded(self, ids: Iterable[ItemId]) -> None:
        """
        Report that data for each id has arrived

        Ids loading for at least the minimum duration are removed at once;
        the rest are held and removed by a timer once the minimum (plus the
        fade-out) has elapsed.
        """
        now = self.scheduler.now()
        removed = False
        for item_id in ids:
            record = self._records.get(item_id)
            if record is None or record.state == ItemState.LOADED:
                continue

            if record.load_started_at is None:
                elapsed = self.min_skeleton_duration_ms
            else:
                elapsed = now - record.load_started_at

            if elapsed >= self.min_skeleton_duration_ms:
                del self._records[item_id]
                removed = True
                continue

            remaining = self.min_skeleton_duration_ms - elapsed
            record.state = ItemState.LOADED
            generation = record.generation
            self._timers[item_id] = self.scheduler.call_later(
                remaining + self.fade_out_ms,
                lambda item_id=item_id, generation=generation: self._expire(
                    item_id, generation
                ),
            )
            skeleton_hold_duration.observe(remaining / 1000)
            logger.debug(
                "Holding skeleton for minimum duration",
                extra={"item_id": str(item_id), "remaining_ms": remaining},
            )

        if removed:
            self._notify()

    def _expire(self, item_id: ItemId, generation: int) -> None:
        record = self._records.get(item_id)
        if record is None or record.generation != generation:
            record_stale("readiness")
            return
        self._timers.pop(item_id, None)
        del self._records[item_id]
        self._notify()

    def _cancel_timer(self, item_id: ItemId) -> None:
        timer = self._timers.pop(item_id, None)
        if timer is not None:
            timer.cancel()

    def remove_items(self, ids: Iterable[ItemId]) -> None:
        """Forget ids entirely, e.g. when their items leave the list"""
        changed = False
        for item_id in ids:
            self._cancel_timer(item_id)
            if self._records.pop(item_id, None) is not None:
                changed = True
        if changed:
            self._notify()

    def clear(self) -> None:
        """Drop every record and cancel every deferred removal"""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        had_records = bool(self._records)
        self._records.clear()
        if had_records:
            self._notify()

    def reset(self) -> None:
        self.clear()

    def dispose(self) -> None:
        """Cancel every timer without notifying; subscribers are dropped first"""
        self._listeners.clear()
        self.clear()
