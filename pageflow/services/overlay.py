from typing import Callable, List, Optional

from pageflow.core.clock import Scheduler, TimerHandle
from pageflow.core.config import settings
from pageflow.core.logging import LogContext
from pageflow.core.metrics import overlay_cycles_total, overlay_timeouts_total, record_stale
from pageflow.core.signals import ContentReady, RouteChanged, SignalBus
from pageflow.models.overlay import OverlayCycle, OverlayPhase, OverlaySnapshot
from pageflow.utils.observable import Observable

logger = LogContext(__name__)


class NavigationOverlayStateMachine(Observable[OverlaySnapshot]):
    """
    Full-screen loading overlay lifecycle across route transitions

    The overlay is wanted while the document or a route is pending. Once
    shown it stays up for at least min_visible_ms, and a hard timeout at
    max_visible_ms forces it down even if content-ready never arrives.
    Every timer callback carries the cycle id it was created under and is
    a no-op once that cycle has been superseded.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        min_visible_ms: float | None = None,
        max_visible_ms: float | None = None,
        fade_out_ms: float | None = None,
        document_pending: bool = False,
        route_key: str | None = None,
    ):
        super().__init__()
        self.scheduler = scheduler
        self.min_visible_ms = (
            settings.OVERLAY_MIN_VISIBLE_MS if min_visible_ms is None else min_visible_ms
        )
        self.max_visible_ms = (
            settings.OVERLAY_MAX_VISIBLE_MS if max_visible_ms is None else max_visible_ms
        )
        self.fade_out_ms = settings.OVERLAY_FADE_OUT_MS if fade_out_ms is None else fade_out_ms

        self._document_pending = document_pending
        self._route_pending = False
        self._timed_out = False
        self._prev_wanted = False
        self._route_key = route_key

        self._cycle_counter = 0
        self._cycle: Optional[OverlayCycle] = None

        self._hard_timeout: Optional[TimerHandle] = None
        self._hide_timer: Optional[TimerHandle] = None
        self._unmount_timer: Optional[TimerHandle] = None
        self._unsubscribers: List[Callable[[], None]] = []

        self._evaluate()

    # read side

    @property
    def phase(self) -> OverlayPhase:
        return self._cycle.phase if self._cycle else OverlayPhase.IDLE

    @property
    def visible(self) -> bool:
        return self._cycle is not None

    @property
    def cycle(self) -> Optional[OverlayCycle]:
        return self._cycle

    @property
    def cycle_id(self) -> int:
        return self._cycle_counter

    @property
    def timed_out(self) -> bool:
        return self._timed_out

    @property
    def wanted(self) -> bool:
        return self._raw_wanted and not self._timed_out

    @property
    def hide_pending(self) -> bool:
        return self._hide_timer is not None

    @property
    def _raw_wanted(self) -> bool:
        return self._document_pending or self._route_pending

    def _snapshot(self) -> OverlaySnapshot:
        return OverlaySnapshot(
            phase=self.phase,
            cycle_id=self._cycle_counter,
            visible=self.visible,
            timed_out=self._timed_out,
        )

    # inputs

    def route_changed(self, route_key: str) -> None:
        """A navigation started; restarts the cycle for a different key"""
        if route_key == self._route_key:
            return

        self._route_key = route_key
        self._route_pending = True
        # New route, new wait: a previous timeout no longer suppresses showing
        self._timed_out = False
        logger.debug("Route changed", extra={"route_key": route_key})
        self._evaluate(restart=True)

    def content_ready(self, route_key: str | None = None) -> None:
        """The current route rendered its first meaningful content"""
        if route_key is not None and route_key != self._route_key:
            logger.debug(
                "Ignoring content-ready for a previous route",
                extra={"route_key": route_key, "current_route_key": self._route_key},
            )
            return

        if not self._route_pending:
            return
        self._route_pending = False
        self._evaluate()

    def set_document_pending(self, pending: bool) -> None:
        if pending == self._document_pending:
            return
        self._document_pending = pending
        self._evaluate()

    def attach(self, bus: SignalBus) -> None:
        """Drive the machine from route-changed and content-ready signals"""
        self._unsubscribers.append(
            bus.subscribe(RouteChanged, lambda msg: self.route_changed(msg.route_key))
        )
        self._unsubscribers.append(
            bus.subscribe(ContentReady, lambda msg: self.content_ready(msg.route_key))
        )

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    # transitions

    def _evaluate(self, restart: bool = False) -> None:
        if not self._raw_wanted and self._timed_out:
            self._timed_out = False

        wanted = self.wanted
        prev = self._prev_wanted
        self._prev_wanted = wanted

        if wanted and (not prev or restart):
            self._begin_show()
        elif prev and not wanted:
            self._begin_hide()

    def _begin_show(self) -> None:
        self._clear_timers()

        self._cycle_counter += 1
        cycle_id = self._cycle_counter
        self._cycle = OverlayCycle(cycle_id=cycle_id, shown_at=self.scheduler.now())
        overlay_cycles_total.inc()

        self._hard_timeout = self.scheduler.call_later(
            self.max_visible_ms, lambda: self._on_hard_timeout(cycle_id)
        )
        logger.debug(
            "Overlay shown",
            extra={"cycle_id": cycle_id, "route_key": self._route_key},
        )
        self._notify()

    def _begin_hide(self) -> None:
        if self._cycle is None:
            return
        self._clear_timers()
        self._schedule_hide(self._cycle.cycle_id)

    def _on_hard_timeout(self, cycle_id: int) -> None:
        if not self._is_current(cycle_id):
            return

        self._hard_timeout = None
        self._timed_out = True
        self._prev_wanted = False
        self._cycle.phase = OverlayPhase.TIMED_OUT
        overlay_timeouts_total.inc()
        logger.warning(
            "Overlay hit hard timeout before content was ready",
            extra={
                "cycle_id": cycle_id,
                "route_key": self._route_key,
                "max_visible_ms": self.max_visible_ms,
            },
        )
        self._notify()
        self._schedule_hide(cycle_id)

    def _schedule_hide(self, cycle_id: int) -> None:
        elapsed = self.scheduler.now() - self._cycle.shown_at
        remaining = max(0.0, self.min_visible_ms - elapsed)
        if remaining == 0:
            self._start_fade(cycle_id)
            return
        self._hide_timer = self.scheduler.call_later(
            remaining, lambda: self._start_fade(cycle_id)
        )

    def _start_fade(self, cycle_id: int) -> None:
        if not self._is_current(cycle_id):
            return

        self._hide_timer = None
        self._cycle.phase = OverlayPhase.HIDING
        self._notify()
        self._unmount_timer = self.scheduler.call_later(
            self.fade_out_ms, lambda: self._finish_hide(cycle_id)
        )

    def _finish_hide(self, cycle_id: int) -> None:
        if not self._is_current(cycle_id):
            return

        self._unmount_timer = None
        visible_ms = self.scheduler.now() - self._cycle.shown_at
        self._cycle = None
        logger.debug(
            "Overlay hidden",
            extra={"cycle_id": cycle_id, "visible_ms": visible_ms},
        )
        self._notify()

    def _is_current(self, cycle_id: int) -> bool:
        if self._cycle is not None and self._cycle.cycle_id == cycle_id:
            return True
        record_stale("overlay")
        logger.debug(
            "Ignoring timer from superseded overlay cycle",
            extra={"stale_cycle_id": cycle_id, "current_cycle_id": self._cycle_counter},
        )
        return False

    def _clear_timers(self) -> None:
        for timer in (self._hard_timeout, self._hide_timer, self._unmount_timer):
            if timer is not None:
                timer.cancel()
        self._hard_timeout = None
        self._hide_timer = None
        self._unmount_timer = None

    def dispose(self) -> None:
        self._clear_timers()
        self.detach()
        self._cycle = None
        self._prev_wanted = False
        self._listeners.clear()
