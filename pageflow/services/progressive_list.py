import asyncio
from typing import Any, Callable, Generic, Hashable, Optional, Sequence, TypeVar

from pageflow.core.clock import Scheduler
from pageflow.core.logging import LogContext
from pageflow.models.pagination import PageResult
from pageflow.services.cache_service import ListSnapshot, ListStateCache, ScrollPositionCache
from pageflow.services.min_duration import MinDurationFlag
from pageflow.services.paged_fetch import PagedFetchCoordinator
from pageflow.services.readiness import ItemReadinessTracker
from pageflow.viewport.scroll_anchor import ScrollAnchorStabilizer
from pageflow.viewport.scroll_trigger import ScrollTriggerObserver
from pageflow.viewport.visibility import ScrollContainer, VisibilityService

logger = LogContext(__name__)

T = TypeVar("T")


class ProgressiveListController(Generic[T]):
    """
    Wires one infinitely scrolling list together

    Sentinel proximity triggers a fetch; the scroll anchor is captured
    before it and reconciled after the append lays out; appended items
    start as loading in the readiness tracker until the presentation layer
    reports them rendered; the trigger is re-armed on the new last item.
    """

    def __init__(
        self,
        coordinator: PagedFetchCoordinator[T],
        tracker: ItemReadinessTracker,
        visibility: VisibilityService,
        scheduler: Scheduler,
        container: ScrollContainer,
        get_id: Callable[[T], Hashable],
        marker_for: Callable[[T], Any] | None = None,
        spinner: MinDurationFlag | None = None,
        list_cache: ListStateCache | None = None,
        scroll_cache: ScrollPositionCache | None = None,
        route_key: str | None = None,
    ):
        self.coordinator = coordinator
        self.tracker = tracker
        self.container = container
        self.get_id = get_id
        self.marker_for = marker_for
        self.spinner = spinner
        self.list_cache = list_cache
        self.scroll_cache = scroll_cache
        self.route_key = route_key
        self.active_tab = ""
        self.selected_filters: Sequence[int] = ()
        # Bumped whenever the list starts over; loads from an older generation
        # must not touch the anchor or spinner of the current one
        self._generation = 0

        self.trigger = ScrollTriggerObserver(
            visibility,
            scheduler,
            self.load_next,
            batch_size=coordinator.batch_size,
        )
        self.anchor = ScrollAnchorStabilizer(container, visibility, scheduler)

    def start(self, marker: Any) -> None:
        """Arm the trigger on the initial sentinel and start tracking the visible range"""
        self.trigger.arm(marker)
        self.trigger.watch(self.container, lambda: len(self.coordinator.items))

    async def load_next(self) -> Optional[PageResult]:
        """Fetch the next page and hand the new items to readiness and anchoring"""
        if self.coordinator.in_flight or not self.coordinator.has_more:
            return None

        generation = self._generation
        before = len(self.coordinator.items)
        self.anchor.capture_anchor()
        show_spinner = self.spinner is not None and before > 0
        if show_spinner:
            self.spinner.set(True)

        try:
            result = await self.coordinator.load_more()
        except asyncio.CancelledError:
            if generation == self._generation:
                self.anchor.discard()
            raise
        finally:
            if show_spinner and generation == self._generation:
                self.spinner.set(False)

        if generation != self._generation:
            logger.debug(
                "Dropped load from a previous list generation",
                extra={"generation": generation, "current_generation": self._generation},
            )
            return None

        if result is None:
            self.anchor.discard()
            return None

        new_items = self.coordinator.items[before:]
        self.tracker.mark_as_loading([self.get_id(item) for item in new_items])
        self.anchor.reconcile_after_layout()

        if self.coordinator.has_more:
            if self.marker_for is not None and new_items:
                self.trigger.arm(self.marker_for(new_items[-1]))
            else:
                self.trigger.rearm()

        self._save_snapshot()
        return result

    async def retry(self) -> Optional[PageResult]:
        """Re-run the fetch after a failure; failures are never retried automatically"""
        return await self.load_next()

    def mark_rendered(self, ids: Sequence[Hashable]) -> None:
        self.tracker.mark_as_loaded(ids)

    def restore(self, snapshot: ListSnapshot) -> None:
        """Replace the list with a cached snapshot instead of re-fetching"""
        self.coordinator.set_items(snapshot.items, snapshot.page)
        self.coordinator.set_has_more(snapshot.has_more)
        self.tracker.clear()
        logger.debug(
            "Restored list from snapshot",
            extra={"route_key": self.route_key, "item_count": len(snapshot.items)},
        )
        if self.scroll_cache is not None and self.route_key is not None:
            self.scroll_cache.restore(self.route_key, self.container)

    def restore_from_cache(self) -> bool:
        if self.list_cache is None or self.route_key is None:
            return False
        snapshot = self.list_cache.get(
            self.route_key, self.active_tab, self.selected_filters
        )
        if snapshot is None:
            return False
        self.restore(snapshot)
        return True

    def change_filters(
        self, active_tab: str = "", selected_filters: Sequence[int] = ()
    ) -> None:
        """Start over for a new tab or filter set; in-flight results become stale"""
        self.active_tab = active_tab
        self.selected_filters = tuple(selected_filters)
        self._generation += 1
        self.coordinator.reset()
        self.tracker.reset()
        self.anchor.discard()
        if self.spinner is not None and self.spinner.value:
            self.spinner.set(False)
        if self.list_cache is not None and self.route_key is not None:
            self.list_cache.clear(self.route_key)
        if self.scroll_cache is not None and self.route_key is not None:
            self.scroll_cache.cancel_restore(self.route_key)
        self.trigger.rearm()

    def _save_snapshot(self) -> None:
        if self.list_cache is None or self.route_key is None:
            return
        state = self.coordinator.state
        self.list_cache.save(
            self.route_key,
            state.items,
            state.current_page,
            state.has_more,
            active_tab=self.active_tab,
            selected_filters=self.selected_filters,
        )

    def save_scroll_position(self) -> bool:
        """Remember where the list is scrolled so a return to this route can restore it"""
        if self.scroll_cache is None or self.route_key is None:
            return False
        return self.scroll_cache.save(self.route_key, self.container.scroll_offset)

    def dispose(self) -> None:
        """Tear down on leaving the route; the scroll position is saved first"""
        self._generation += 1
        self.save_scroll_position()
        if self.scroll_cache is not None and self.route_key is not None:
            self.scroll_cache.cancel_restore(self.route_key)
        self.trigger.dispose()
        self.anchor.dispose()
        self.tracker.dispose()
        if self.spinner is not None:
            self.spinner.dispose()
