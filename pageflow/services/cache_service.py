import fnmatch
from collections import OrderedDict
from typing import Any, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from pageflow.core.clock import Scheduler, TimerHandle
from pageflow.core.config import settings
from pageflow.core.logging import LogContext
from pageflow.core.signals import CacheUpdated, SignalBus
from pageflow.viewport.visibility import ScrollContainer

logger = LogContext(__name__)

T = TypeVar("T")


class CacheService:
    """
    Bounded in-process cache with per-entry TTL and LRU eviction

    Passed by reference to the components that share it. Time comes from
    the injected scheduler so expiry is testable on a virtual clock.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        max_entries: int | None = None,
        default_ttl_ms: float | None = None,
    ):
        self.scheduler = scheduler
        self.max_entries = max_entries or settings.CACHE_MAX_ENTRIES
        self.default_ttl_ms = default_ttl_ms or settings.LIST_CACHE_TTL_MS
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get_cached_data(self, key: str, default=None) -> Any | None:
        """
        Get data from cache with given key

        Args:
            key: The cache key
            default: Default value if key not found or expired

        Returns:
            Cached value or default value
        """
        entry = self._entries.get(key)
        if entry is None:
            return default

        expires_at, value = entry
        if self.scheduler.now() >= expires_at:
            del self._entries[key]
            logger.debug("Cache entry expired", extra={"cache_key": key})
            return default

        self._entries.move_to_end(key)
        return value

    def set_cached_data(self, key: str, data: Any, expire_ms: float | None = None) -> bool:
        """
        Set data in cache with the given key and expiration time

        Args:
            key: The cache key
            data: The value to cache
            expire_ms: Time to live in milliseconds

        Returns:
            True once stored
        """
        ttl = self.default_ttl_ms if expire_ms is None else expire_ms
        self._entries[key] = (self.scheduler.now() + ttl, data)
        self._entries.move_to_end(key)

        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted least recently used entry", extra={"cache_key": evicted})
        return True

    def invalidate(self, key: str) -> bool:
        """
        Invalidate cache for the given key

        Returns:
            True if an entry was removed
        """
        return self._entries.pop(key, None) is not None

    def keys_by_pattern(self, pattern: str) -> List[str]:
        """
        Get live keys matching a glob pattern

        Args:
            pattern: Pattern with shell-style wildcards
        """
        now = self.scheduler.now()
        return [
            key
            for key, (expires_at, _) in self._entries.items()
            if expires_at > now and fnmatch.fnmatchcase(key, pattern)
        ]

    def invalidate_by_prefix(self, prefix: str) -> int:
        """
        Invalidate all keys with a common prefix

        Returns:
            Number of entries removed
        """
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        logger.info(f"Invalidated {len(doomed)} keys with prefix: {prefix}")
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()


class ListSnapshot(BaseModel, Generic[T]):
    """
    Restorable state of a paged list

    Attributes:
        items: Items loaded when the snapshot was taken
        page: Last page applied
        has_more: Whether more pages were available
        active_tab: Tab the list belonged to
        selected_filters: Filter ids active at the time
        timestamp: Scheduler time the snapshot was saved at
    """

    model_config = ConfigDict(frozen=True)

    items: List[T]
    page: int
    has_more: bool
    active_tab: str = ""
    selected_filters: List[int] = Field(default_factory=list)
    timestamp: float = 0.0


class ListStateCache:
    """Per-route snapshots of paged lists, so returning to a route skips re-fetching"""

    KEY_PREFIX = "list_cache:"

    def __init__(
        self,
        cache: CacheService,
        bus: SignalBus | None = None,
        ttl_ms: float | None = None,
    ):
        self.cache = cache
        self.bus = bus
        self.ttl_ms = settings.LIST_CACHE_TTL_MS if ttl_ms is None else ttl_ms

    def _key(self, route_key: str) -> str:
        return f"{self.KEY_PREFIX}{route_key}"

    def save(
        self,
        route_key: str,
        items: Sequence[Any],
        page: int,
        has_more: bool,
        active_tab: str = "",
        selected_filters: Sequence[int] = (),
    ) -> ListSnapshot:
        snapshot = ListSnapshot(
            items=list(items),
            page=page,
            has_more=has_more,
            active_tab=active_tab,
            selected_filters=sorted(selected_filters),
            timestamp=self.cache.scheduler.now(),
        )
        key = self._key(route_key)
        self.cache.set_cached_data(key, snapshot, expire_ms=self.ttl_ms)
        logger.debug(
            "Saved list snapshot",
            extra={"route_key": route_key, "item_count": len(snapshot.items), "page": page},
        )
        self._publish(key)
        return snapshot

    def get(
        self,
        route_key: str,
        active_tab: str = "",
        selected_filters: Sequence[int] = (),
    ) -> Optional[ListSnapshot]:
        """
        Get the snapshot for a route if it is fresh and matches tab and filters

        A snapshot for a different tab or filter set is dropped.
        """
        key = self._key(route_key)
        snapshot: Optional[ListSnapshot] = self.cache.get_cached_data(key)
        if snapshot is None:
            return None

        if snapshot.active_tab != active_tab or snapshot.selected_filters != sorted(
            selected_filters
        ):
            logger.debug(
                "Dropping list snapshot with mismatched filters",
                extra={"route_key": route_key},
            )
            self.cache.invalidate(key)
            self._publish(key)
            return None

        return snapshot

    def clear(self, route_key: str) -> None:
        key = self._key(route_key)
        if self.cache.invalidate(key):
            self._publish(key)

    def _publish(self, key: str) -> None:
        if self.bus is not None:
            self.bus.publish(CacheUpdated(key=key))


class ScrollPositionCache:
    """
    Per-route scroll offsets, restored once a route's data is back

    A save never replaces a good position with a near-zero one, which is
    what a container reports while its content is torn down during a
    transition. Restoring retries on a fixed backoff until the container
    actually reaches the target, since content may still be laying out.
    """

    KEY_PREFIX = "scroll:"

    def __init__(
        self,
        cache: CacheService,
        ttl_ms: float | None = None,
        transient_px: float | None = None,
        keep_px: float | None = None,
        tolerance_px: float | None = None,
        settle_ms: float | None = None,
        retry_delays_ms: Sequence[float] | None = None,
    ):
        self.cache = cache
        self.scheduler = cache.scheduler
        self.ttl_ms = settings.SCROLL_POSITION_TTL_MS if ttl_ms is None else ttl_ms
        self.transient_px = (
            settings.SCROLL_SAVE_TRANSIENT_PX if transient_px is None else transient_px
        )
        self.keep_px = settings.SCROLL_SAVE_KEEP_PX if keep_px is None else keep_px
        self.tolerance_px = (
            settings.SCROLL_RESTORE_TOLERANCE_PX if tolerance_px is None else tolerance_px
        )
        self.settle_ms = settings.SCROLL_RESTORE_SETTLE_MS if settle_ms is None else settle_ms
        self.retry_delays_ms = list(
            settings.SCROLL_RESTORE_RETRY_DELAYS_MS
            if retry_delays_ms is None
            else retry_delays_ms
        )
        self._pending: Dict[str, TimerHandle] = {}

    def _key(self, route_key: str) -> str:
        return f"{self.KEY_PREFIX}{route_key}"

    def get(self, route_key: str) -> Optional[float]:
        return self.cache.get_cached_data(self._key(route_key))

    def save(self, route_key: str, offset: float) -> bool:
        """
        Remember the offset for a route

        Returns:
            True if the offset was stored
        """
        existing = self.get(route_key) or 0.0
        if offset < self.transient_px and existing > self.keep_px:
            logger.debug(
                "Kept saved scroll position over transient offset",
                extra={"route_key": route_key, "offset": offset, "saved": existing},
            )
            return False
        if offset <= 0:
            return False

        self.cache.set_cached_data(self._key(route_key), offset, expire_ms=self.ttl_ms)
        return True

    def restore(self, route_key: str, container: ScrollContainer) -> bool:
        """
        Scroll container back to the saved offset after a short settle delay

        Returns:
            True if a restore was scheduled
        """
        self.cancel_restore(route_key)
        target = self.get(route_key)
        if target is None or target <= 0:
            return False

        self._pending[route_key] = self.scheduler.call_later(
            self.settle_ms, lambda: self._attempt(route_key, container, target, 0)
        )
        return True

    def is_restoring(self, route_key: str) -> bool:
        return route_key in self._pending

    def cancel_restore(self, route_key: str) -> None:
        handle = self._pending.pop(route_key, None)
        if handle is not None:
            handle.cancel()

    def _attempt(
        self, route_key: str, container: ScrollContainer, target: float, attempt: int
    ) -> None:
        container.scroll_to(target)
        if abs(container.scroll_offset - target) < self.tolerance_px:
            self._pending.pop(route_key, None)
            logger.debug(
                "Restored scroll position",
                extra={"route_key": route_key, "offset": target, "attempts": attempt + 1},
            )
            return

        if attempt >= len(self.retry_delays_ms):
            self._pending.pop(route_key, None)
            logger.debug(
                "Gave up restoring scroll position",
                extra={
                    "route_key": route_key,
                    "target": target,
                    "reached": container.scroll_offset,
                },
            )
            return

        self._pending[route_key] = self.scheduler.call_later(
            self.retry_delays_ms[attempt],
            lambda: self._attempt(route_key, container, target, attempt + 1),
        )
