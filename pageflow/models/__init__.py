from .pagination import (
    PageRequest,
    PageResult,
    PagedListState,
    PaginatedResponse,
    LookaheadWindow,
)
from .readiness import ItemState, ReadinessRecord
from .overlay import OverlayPhase, OverlayCycle, OverlaySnapshot
from .viewport import ScrollMetrics, VisibleRange, ScrollAnchor

__all__ = [
    "PageRequest",
    "PageResult",
    "PagedListState",
    "PaginatedResponse",
    "LookaheadWindow",
    "ItemState",
    "ReadinessRecord",
    "OverlayPhase",
    "OverlayCycle",
    "OverlaySnapshot",
    "ScrollMetrics",
    "VisibleRange",
    "ScrollAnchor",
]
