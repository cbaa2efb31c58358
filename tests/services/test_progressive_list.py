import asyncio

import pytest

from pageflow.services.cache_service import (
    CacheService,
    ListStateCache,
    ScrollPositionCache,
)
from pageflow.services.min_duration import MinDurationFlag
from pageflow.services.paged_fetch import PagedFetchCoordinator
from pageflow.services.progressive_list import ProgressiveListController
from pageflow.services.readiness import ItemReadinessTracker
from tests.fakes import FakeContentSource
from tests.factories import make_page


def sentinel(article) -> str:
    return f"sentinel-{article.id}"


@pytest.fixture
def cache(scheduler):
    return CacheService(scheduler)


@pytest.fixture
def list_cache(cache, bus):
    return ListStateCache(cache, bus=bus, ttl_ms=60000)


@pytest.fixture
def scroll_cache(cache):
    return ScrollPositionCache(cache, settle_ms=50, retry_delays_ms=[100, 200])


@pytest.fixture
def build(scheduler, visibility, container, list_cache, scroll_cache):
    def _build(source):
        coordinator = PagedFetchCoordinator(source, batch_size=20)
        controller = ProgressiveListController(
            coordinator,
            ItemReadinessTracker(scheduler, min_skeleton_duration_ms=200, fade_out_ms=0),
            visibility,
            scheduler,
            container,
            get_id=lambda article: article.id,
            marker_for=sentinel,
            spinner=MinDurationFlag(scheduler, min_ms=400),
            list_cache=list_cache,
            scroll_cache=scroll_cache,
            route_key="/news",
        )
        controller.start("sentinel-top")
        return controller

    return _build


@pytest.fixture
def source():
    return FakeContentSource(
        pages={1: make_page(20), 2: make_page(20), 3: make_page(5, has_more=False)}
    )


async def scroll_to_end(controller, visibility):
    visibility.enter(controller.trigger.marker)
    await controller.trigger.wait_idle()


class TestProgressiveLoading:
    @pytest.mark.asyncio
    async def test_first_page_from_sentinel(self, build, source, visibility):
        controller = build(source)

        await scroll_to_end(controller, visibility)

        items = controller.coordinator.items
        assert len(items) == 20
        assert controller.tracker.loading_ids == frozenset(a.id for a in items)
        assert controller.trigger.armed is True
        assert visibility.active_observations() == [sentinel(items[-1])]

    @pytest.mark.asyncio
    async def test_loads_until_exhausted(self, build, source, visibility):
        controller = build(source)

        for _ in range(3):
            await scroll_to_end(controller, visibility)

        state = controller.coordinator.state
        assert len(state.items) == 45
        assert state.has_more is False
        assert controller.trigger.armed is False

        await scroll_to_end(controller, visibility)
        assert source.call_count == 3

    @pytest.mark.asyncio
    async def test_rendered_items_keep_skeleton_for_minimum(
        self, build, source, visibility, scheduler
    ):
        controller = build(source)
        await scroll_to_end(controller, visibility)
        ids = [a.id for a in controller.coordinator.items]

        scheduler.advance(100)
        controller.mark_rendered(ids)
        assert controller.tracker.is_item_loading(ids[0])

        scheduler.advance(100)
        assert controller.tracker.is_empty

    @pytest.mark.asyncio
    async def test_scroll_anchor_is_reconciled_after_append(
        self, build, source, visibility, scheduler, container
    ):
        controller = build(source)

        await scroll_to_end(controller, visibility)
        container.content_size = 6000
        container.scroll_offset = 3070
        scheduler.advance(0)

        assert container.scroll_calls == [3050]


class TestSpinner:
    @pytest.mark.asyncio
    async def test_spinner_only_for_load_more(self, build, visibility, scheduler):
        source = FakeContentSource(pages={1: make_page(20), 2: make_page(20)}, gated=True)
        controller = build(source)
        values = []
        controller.spinner.subscribe(values.append)

        visibility.enter(controller.trigger.marker)
        await asyncio.sleep(0)
        source.release()
        await controller.trigger.wait_idle()
        assert values == []

        visibility.enter(controller.trigger.marker)
        await asyncio.sleep(0)
        assert controller.spinner.value is True

        source.release()
        await controller.trigger.wait_idle()
        assert controller.spinner.value is True

        scheduler.advance(400)
        assert values == [True, False]


class TestFailureAndRetry:
    @pytest.mark.asyncio
    async def test_failure_stops_trigger_until_retry(self, build, source, visibility):
        source.failures[1] = ConnectionError("reset")
        controller = build(source)

        await scroll_to_end(controller, visibility)

        assert controller.coordinator.state.error is not None
        assert controller.trigger.armed is False
        assert controller.anchor.anchor is None
        assert source.call_count == 1

        del source.failures[1]
        result = await controller.retry()

        assert result is not None
        assert controller.coordinator.state.error is None
        assert len(controller.coordinator.items) == 20
        assert controller.trigger.armed is True


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_snapshot_restores_without_fetching(self, build, source, visibility):
        controller = build(source)
        await scroll_to_end(controller, visibility)
        controller.dispose()

        returning = build(source)
        assert returning.restore_from_cache() is True

        state = returning.coordinator.state
        assert len(state.items) == 20
        assert state.current_page == 1
        assert state.has_more is True
        assert source.call_count == 1

    @pytest.mark.asyncio
    async def test_next_load_after_restore_continues_paging(self, build, source, visibility):
        controller = build(source)
        await scroll_to_end(controller, visibility)

        returning = build(source)
        returning.restore_from_cache()
        await returning.load_next()

        assert source.calls[-1] == (2, 20)
        assert len(returning.coordinator.items) == 40

    def test_restore_without_snapshot(self, build, source):
        controller = build(source)

        assert controller.restore_from_cache() is False


class TestFilterChange:
    @pytest.mark.asyncio
    async def test_change_filters_starts_over(self, build, source, visibility, list_cache):
        controller = build(source)
        await scroll_to_end(controller, visibility)

        controller.change_filters("latest", [2])

        assert controller.coordinator.items == []
        assert controller.tracker.is_empty
        assert list_cache.get("/news", "latest", [2]) is None
        assert controller.trigger.armed is True

    @pytest.mark.asyncio
    async def test_in_flight_page_is_dropped_after_filter_change(self, build, visibility):
        source = FakeContentSource(pages={1: make_page(20)}, gated=True)
        controller = build(source)

        visibility.enter(controller.trigger.marker)
        await asyncio.sleep(0)
        controller.change_filters("latest")

        source.release()
        await controller.trigger.wait_idle()

        assert controller.coordinator.items == []
        assert controller.tracker.is_empty

    @pytest.mark.asyncio
    async def test_superseded_load_keeps_current_anchor(
        self, build, visibility, scheduler, container
    ):
        source = FakeContentSource(pages={1: make_page(20)}, gated=True)
        controller = build(source)

        old_load = asyncio.ensure_future(controller.load_next())
        await asyncio.sleep(0)
        controller.change_filters("latest")

        new_load = asyncio.ensure_future(controller.load_next())
        await asyncio.sleep(0)
        anchor = controller.anchor.anchor
        assert anchor is not None

        source.release()
        assert await old_load is None
        assert controller.anchor.anchor is anchor

        source.release()
        assert await new_load is not None
        container.scroll_offset = 3070
        scheduler.advance(0)
        assert container.scroll_calls == [3050]

    @pytest.mark.asyncio
    async def test_superseded_load_leaves_spinner_to_current_list(self, build, scheduler):
        source = FakeContentSource(pages={2: make_page(20)}, gated=True)
        controller = build(source)
        controller.coordinator.set_items(make_page(20).items, page=1)

        old_load = asyncio.ensure_future(controller.load_next())
        await asyncio.sleep(0)
        assert controller.spinner.value is True

        controller.change_filters("latest")
        scheduler.advance(400)
        assert controller.spinner.value is False

        source.release()
        assert await old_load is None
        assert controller.spinner.value is False
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_cancelled_load_releases_anchor_watch(self, build):
        source = FakeContentSource(pages={1: make_page(20)}, gated=True)
        controller = build(source)

        load = asyncio.ensure_future(controller.load_next())
        await asyncio.sleep(0)
        assert controller.anchor.anchor is not None

        load.cancel()
        with pytest.raises(asyncio.CancelledError):
            await load

        assert controller.anchor.anchor is None
        assert controller.anchor._watch is None
        assert controller.coordinator.in_flight is False


class TestScrollRestore:
    @pytest.mark.asyncio
    async def test_dispose_saves_and_restore_scrolls_back(
        self, build, source, visibility, scheduler, container, scroll_cache
    ):
        controller = build(source)
        await scroll_to_end(controller, visibility)
        container.scroll_offset = 1200
        controller.dispose()

        assert scroll_cache.get("/news") == 1200

        container.scroll_offset = 0
        returning = build(source)
        assert returning.restore_from_cache() is True
        assert container.scroll_calls == []

        scheduler.advance(50)
        assert container.scroll_offset == 1200

    @pytest.mark.asyncio
    async def test_change_filters_cancels_pending_restore(
        self, build, source, visibility, scheduler, container, scroll_cache
    ):
        controller = build(source)
        await scroll_to_end(controller, visibility)
        scroll_cache.save("/news", 900)

        returning = build(source)
        returning.restore_from_cache()
        returning.change_filters("latest")
        scheduler.advance(1000)

        assert 900 not in container.scroll_calls
        assert scroll_cache.is_restoring("/news") is False
