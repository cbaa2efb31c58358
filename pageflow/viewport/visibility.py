from typing import Any, Callable, Protocol

from pageflow.models.viewport import ScrollMetrics


class Subscription(Protocol):
    def cancel(self) -> None: ...


class VisibilityService(Protocol):
    """Viewport proximity and scroll notifications from the presentation layer"""

    def observe(
        self, marker: Any, margin_px: float, on_enter: Callable[[], None]
    ) -> Subscription:
        """Call on_enter each time marker comes within margin_px of the viewport"""
        ...

    def watch_scroll(
        self, container: Any, on_scroll: Callable[[ScrollMetrics], None]
    ) -> Subscription:
        """Call on_scroll with fresh metrics whenever container scrolls"""
        ...


class ScrollContainer(Protocol):
    """Scrollable element whose position can be read and set"""

    @property
    def scroll_offset(self) -> float: ...

    @property
    def viewport_size(self) -> float: ...

    @property
    def content_size(self) -> float: ...

    def scroll_to(self, offset: float) -> None: ...
