from typing import Optional

from pageflow.core.clock import Scheduler, TimerHandle
from pageflow.core.config import settings
from pageflow.core.logging import LogContext
from pageflow.models.viewport import ScrollAnchor, ScrollMetrics
from pageflow.viewport.visibility import ScrollContainer, Subscription, VisibilityService

logger = LogContext(__name__)


class ScrollAnchorStabilizer:
    """
    Undoes layout-induced scroll jumps after a near-bottom append

    capture_anchor() is called right before the append starts; reconcile()
    runs once after layout settles and restores the captured offset only if
    the viewport was near the bottom, the user did not scroll in between,
    and the offset has drifted by no more than epsilon_px.
    """

    def __init__(
        self,
        container: ScrollContainer,
        visibility: VisibilityService,
        scheduler: Scheduler,
        near_bottom_px: float | None = None,
        epsilon_px: float | None = None,
    ):
        self.container = container
        self.visibility = visibility
        self.scheduler = scheduler
        self.near_bottom_px = (
            settings.SCROLL_ANCHOR_NEAR_BOTTOM_PX if near_bottom_px is None else near_bottom_px
        )
        self.epsilon_px = settings.SCROLL_ANCHOR_EPSILON_PX if epsilon_px is None else epsilon_px

        self._anchor: Optional[ScrollAnchor] = None
        self._user_scrolled = False
        self._watch: Optional[Subscription] = None
        self._pending: Optional[TimerHandle] = None

    @property
    def anchor(self) -> Optional[ScrollAnchor]:
        return self._anchor

    @property
    def user_scrolled(self) -> bool:
        return self._user_scrolled

    def is_near_bottom(self) -> bool:
        distance = self.container.content_size - (
            self.container.scroll_offset + self.container.viewport_size
        )
        return distance <= self.near_bottom_px

    def capture_anchor(self) -> ScrollAnchor:
        """Record the current position and start watching for user scrolls"""
        self._disarm()
        self._anchor = ScrollAnchor(
            scroll_offset=self.container.scroll_offset,
            document_height=self.container.content_size,
            was_near_bottom=self.is_near_bottom(),
        )
        self._user_scrolled = False
        self._watch = self.visibility.watch_scroll(self.container, self._on_scroll)
        logger.debug(
            "Captured scroll anchor",
            extra={
                "scroll_offset": self._anchor.scroll_offset,
                "document_height": self._anchor.document_height,
                "was_near_bottom": self._anchor.was_near_bottom,
            },
        )
        return self._anchor

    def _on_scroll(self, metrics: ScrollMetrics) -> None:
        if self._anchor is None or not metrics.user_initiated:
            return
        if metrics.scroll_offset != self._anchor.scroll_offset:
            self._user_scrolled = True

    def reconcile(self) -> bool:
        """
        Consume the anchor, correcting the scroll offset if it was a layout shift

        Returns:
            True if the scroll offset was restored
        """
        anchor = self._anchor
        user_scrolled = self._user_scrolled
        self._anchor = None
        self._user_scrolled = False
        self._disarm()

        if anchor is None:
            return False

        current = self.container.scroll_offset
        drift = abs(current - anchor.scroll_offset)
        if user_scrolled or not anchor.was_near_bottom or drift > self.epsilon_px:
            logger.debug(
                "Scroll anchor left as is",
                extra={
                    "user_scrolled": user_scrolled,
                    "was_near_bottom": anchor.was_near_bottom,
                    "drift": drift,
                },
            )
            return False

        self.container.scroll_to(anchor.scroll_offset)
        logger.debug(
            "Restored scroll offset after append",
            extra={"scroll_offset": anchor.scroll_offset, "drift": drift},
        )
        return True

    def reconcile_after_layout(self) -> TimerHandle:
        """Run reconcile() on the next scheduler turn, after the append lays out"""
        if self._pending is not None:
            self._pending.cancel()
        self._pending = self.scheduler.call_later(0, self._run_pending)
        return self._pending

    def _run_pending(self) -> None:
        self._pending = None
        self.reconcile()

    def discard(self) -> None:
        """Drop the anchor without touching the scroll position"""
        self._anchor = None
        self._user_scrolled = False
        self._disarm()

    def _disarm(self) -> None:
        if self._watch is not None:
            self._watch.cancel()
            self._watch = None

    def dispose(self) -> None:
        self._disarm()
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._anchor = None
