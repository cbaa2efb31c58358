from .cache_service import CacheService, ListSnapshot, ListStateCache
from .min_duration import MinDurationFlag
from .overlay import NavigationOverlayStateMachine
from .paged_fetch import PagedFetchCoordinator
from .progressive_list import ProgressiveListController
from .readiness import ItemReadinessTracker
from .route_ready import RouteContentReadyReporter

__all__ = [
    "CacheService",
    "ListSnapshot",
    "ListStateCache",
    "MinDurationFlag",
    "NavigationOverlayStateMachine",
    "PagedFetchCoordinator",
    "ProgressiveListController",
    "ItemReadinessTracker",
    "RouteContentReadyReporter",
]
