import asyncio
from typing import Generic, List, Optional, Sequence, TypeVar

from pageflow.clients.content_source import ContentSource
from pageflow.core.config import settings
from pageflow.core.exceptions import FetchFailure
from pageflow.core.logging import LogContext, PerformanceLogger, correlation_scope
from pageflow.core.metrics import record_fetch, record_stale
from pageflow.models.pagination import (
    LookaheadWindow,
    PagedListState,
    PageResult,
)
from pageflow.models.viewport import VisibleRange
from pageflow.utils.observable import Observable

logger = LogContext(__name__)

T = TypeVar("T")


class PagedFetchCoordinator(Observable[PagedListState], Generic[T]):
    """
    Single-flight, page-based retrieval for one list

    Owns the list state exclusively. At most one page request is
    outstanding at a time; results from a superseded request context
    (after reset) are discarded on arrival rather than aborted.
    """

    def __init__(
        self,
        source: ContentSource,
        batch_size: int | None = None,
        preload_batches: int | None = None,
    ):
        super().__init__()
        self.source = source
        self.batch_size = batch_size or settings.PAGE_BATCH_SIZE
        self.preload_batches = (
            settings.PRELOAD_BATCHES if preload_batches is None else preload_batches
        )
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self._items: List[T] = []
        self._current_page = 0
        self._is_loading = False
        self._is_loading_more = False
        self._has_more = True
        self._error: Optional[FetchFailure] = None

        self._in_flight = False
        self._request_id = 0
        self.fetch_count = 0

    # state

    @property
    def state(self) -> PagedListState:
        return PagedListState(
            items=list(self._items),
            current_page=self._current_page,
            is_loading=self._is_loading,
            is_loading_more=self._is_loading_more,
            has_more=self._has_more,
            error=self._error,
        )

    @property
    def items(self) -> List[T]:
        return list(self._items)

    @property
    def has_more(self) -> bool:
        return self._has_more

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def request_id(self) -> int:
        return self._request_id

    def _snapshot(self) -> PagedListState:
        return self.state

    # fetching

    async def load_more(self) -> Optional[PageResult]:
        """
        Fetch and append the next page

        No-op while a fetch is in flight or once has_more is False. Failures
        are recorded on the state as FetchFailure and never retried here.

        Returns:
            The applied page, or None when skipped, failed or superseded
        """
        if self._in_flight or not self._has_more:
            logger.debug(
                "load_more skipped",
                extra={"in_flight": self._in_flight, "has_more": self._has_more},
            )
            return None

        # Guard is taken before the first suspension point
        self._in_flight = True
        self._request_id += 1
        request_id = self._request_id
        page_index = self._current_page + 1
        self.fetch_count += 1

        if self._items:
            self._is_loading_more = True
        else:
            self._is_loading = True
        self._notify()

        with correlation_scope(request_id=request_id):
            return await self._fetch(request_id, page_index)

    async def _fetch(self, request_id: int, page_index: int) -> Optional[PageResult]:
        logger.debug(
            "Requesting page",
            extra={"page_index": page_index, "batch_size": self.batch_size},
        )

        perf = PerformanceLogger(logger, f"fetch_page:{page_index}", log_failures=False)
        try:
            with perf:
                result = await self.source.fetch_page(page_index, self.batch_size)
        except asyncio.CancelledError:
            if request_id == self._request_id:
                self._finish_request()
            raise
        except Exception as e:
            if request_id != self._request_id:
                self._discard_stale(request_id, page_index)
                return None

            self._error = FetchFailure(
                detail=f"Failed to fetch page {page_index}: {str(e)}",
                page_index=page_index,
                batch_size=self.batch_size,
                cause=e,
            )
            record_fetch("failure", perf.duration_ms)
            logger.warning(
                "Page fetch failed",
                extra={
                    "page_index": page_index,
                    "error": str(e),
                    "error_type": e.__class__.__name__,
                },
            )
            self._finish_request()
            return None

        if request_id != self._request_id:
            self._discard_stale(request_id, page_index)
            return None

        self._items.extend(result.items)
        self._current_page = page_index
        self._has_more = bool(result.has_more) and len(result.items) >= self.batch_size
        self._error = None
        record_fetch("success", perf.duration_ms)

        logger.info(
            "Page applied",
            extra={
                "page_index": page_index,
                "item_count": len(result.items),
                "total_items": len(self._items),
                "has_more": self._has_more,
            },
        )
        self._finish_request()
        return result

    def _finish_request(self) -> None:
        self._in_flight = False
        self._is_loading = False
        self._is_loading_more = False
        self._notify()

    def _discard_stale(self, request_id: int, page_index: int) -> None:
        record_fetch("stale")
        record_stale("paged_fetch")
        logger.debug(
            "Discarded stale page result",
            extra={
                "stale_request_id": request_id,
                "current_request_id": self._request_id,
                "page_index": page_index,
            },
        )

    # direct state injection

    def reset(self) -> None:
        """Return to the empty state and invalidate any in-flight request"""
        self._request_id += 1
        self._items = []
        self._current_page = 0
        self._is_loading = False
        self._is_loading_more = False
        self._has_more = True
        self._error = None
        self._in_flight = False
        logger.debug("Paged list reset", extra={"request_id": self._request_id})
        self._notify()

    def set_items(self, items: Sequence[T], page: int) -> None:
        """Replace the list, e.g. when restoring a cached snapshot"""
        self._items = list(items)
        self._current_page = page
        self._is_loading = False
        self._is_loading_more = False
        self._notify()

    def append_items(self, items: Sequence[T]) -> None:
        self._items.extend(items)
        self._notify()

    def set_has_more(self, has_more: bool) -> None:
        self._has_more = has_more
        self._notify()

    def set_loading(self, loading: bool) -> None:
        self._is_loading = loading
        if not loading and self._in_flight:
            # Releasing the guard orphans the outstanding request
            self._request_id += 1
            self._in_flight = False
            self._is_loading_more = False
        self._notify()

    # lookahead accounting

    def get_item_at(self, index: int) -> Optional[T]:
        if 0 <= index < len(self._items):
            return self._items[index]
        return None

    def is_preloaded(self, index: int) -> bool:
        return index < len(self._items)

    def window(self, visible_range: VisibleRange) -> LookaheadWindow:
        """
        Split loaded items around a visible range

        Args:
            visible_range: Advisory range from the scroll trigger observer

        Returns:
            Visible items, items preloaded past the range, and how many
            skeletons are needed to cover the lookahead
        """
        lookahead = self.batch_size * self.preload_batches
        preloaded_end = min(len(self._items), visible_range.end + lookahead)
        total_expected = visible_range.end + lookahead
        return LookaheadWindow(
            visible_items=self._items[visible_range.start : visible_range.end],
            preloaded_items=self._items[visible_range.end : preloaded_end],
            skeleton_count=max(0, total_expected - len(self._items)),
        )
