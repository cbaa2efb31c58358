import asyncio
import inspect
import math
from typing import Any, Callable, Optional, Set

from pageflow.core.clock import Scheduler, TimerHandle
from pageflow.core.config import settings
from pageflow.core.logging import LogContext
from pageflow.models.viewport import ScrollMetrics, VisibleRange
from pageflow.utils.observable import Observable
from pageflow.viewport.visibility import Subscription, VisibilityService

logger = LogContext(__name__)


class ScrollTriggerObserver(Observable[VisibleRange]):
    """
    Requests the next page when a sentinel nears the viewport

    Fires on_trigger at most once per arm(); the caller re-arms after a
    successful append, typically on a sentinel at the new end of the list.
    Also keeps an advisory visible index range, recomputed on a debounced
    scroll handler.
    """

    def __init__(
        self,
        visibility: VisibilityService,
        scheduler: Scheduler,
        on_trigger: Callable[[], Any],
        margin_px: float | None = None,
        debounce_ms: float | None = None,
        batch_size: int | None = None,
        estimated_item_extent: float | None = None,
    ):
        super().__init__()
        self.visibility = visibility
        self.scheduler = scheduler
        self.on_trigger = on_trigger
        self.margin_px = settings.SCROLL_ROOT_MARGIN_PX if margin_px is None else margin_px
        self.debounce_ms = settings.SCROLL_DEBOUNCE_MS if debounce_ms is None else debounce_ms
        self.batch_size = batch_size or settings.PAGE_BATCH_SIZE
        self.estimated_item_extent = estimated_item_extent

        self._armed = False
        self._marker: Any = None
        self._proximity: Optional[Subscription] = None
        self._scroll: Optional[Subscription] = None
        self._debounce: Optional[TimerHandle] = None
        self._item_count: Callable[[], int] = lambda: 0
        self._visible_range = VisibleRange(start=0, end=self.batch_size)
        self._tasks: Set[asyncio.Task] = set()
        self.trigger_count = 0

    @property
    def armed(self) -> bool:
        return self._armed

    @property
    def marker(self) -> Any:
        return self._marker

    @property
    def visible_range(self) -> VisibleRange:
        return self._visible_range

    def _snapshot(self) -> VisibleRange:
        return self._visible_range

    # proximity trigger

    def arm(self, marker: Any) -> None:
        """Observe marker and fire once when it enters the proximity margin"""
        if self._proximity is not None:
            self._proximity.cancel()
        self._marker = marker
        self._armed = True
        self._proximity = self.visibility.observe(marker, self.margin_px, self._on_enter)

    def rearm(self) -> None:
        if self._marker is None:
            return
        if self._proximity is None:
            self.arm(self._marker)
        else:
            self._armed = True

    def disarm(self) -> None:
        self._armed = False

    def _on_enter(self) -> None:
        if not self._armed:
            return
        self._armed = False
        self.trigger_count += 1
        logger.debug("Sentinel entered proximity", extra={"trigger_count": self.trigger_count})

        result = self.on_trigger()
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def wait_idle(self) -> None:
        """Wait for trigger callbacks that are still running"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # visible range

    def watch(self, container: Any, item_count: Callable[[], int]) -> None:
        """Track the visible range of container; item_count reports the loaded count"""
        if self._scroll is not None:
            self._scroll.cancel()
        self._item_count = item_count
        self._scroll = self.visibility.watch_scroll(container, self._on_scroll)

    def _on_scroll(self, metrics: ScrollMetrics) -> None:
        if self._debounce is not None:
            self._debounce.cancel()
        self._debounce = self.scheduler.call_later(
            self.debounce_ms, lambda: self._recompute(metrics)
        )

    def _recompute(self, metrics: ScrollMetrics) -> None:
        self._debounce = None
        new_range = self.compute_range(metrics, self._item_count())
        if new_range != self._visible_range:
            self._visible_range = new_range
            self._notify()

    def compute_range(self, metrics: ScrollMetrics, item_count: int) -> VisibleRange:
        """
        Estimate which item indices are on screen, padded by one batch

        Args:
            metrics: Current scroll position and sizes
            item_count: Number of items loaded

        Returns:
            A [start, end) range clamped to the loaded items
        """
        if item_count <= 0:
            return VisibleRange(start=0, end=0)

        extent = self.estimated_item_extent
        if not extent:
            extent = metrics.content_size / min(item_count, self.batch_size)
        if extent <= 0:
            return VisibleRange(start=0, end=min(item_count, self.batch_size))

        start = max(0, math.floor(metrics.scroll_offset / extent))
        end = min(
            item_count,
            math.ceil((metrics.scroll_offset + metrics.viewport_size) / extent)
            + self.batch_size,
        )
        return VisibleRange(start=min(start, end), end=end)

    def dispose(self) -> None:
        self._armed = False
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None
        for sub in (self._proximity, self._scroll):
            if sub is not None:
                sub.cancel()
        self._proximity = None
        self._scroll = None
        self._listeners.clear()
