import pytest

from pageflow.models.readiness import ItemState
from pageflow.services.readiness import ItemReadinessTracker


@pytest.fixture
def tracker(scheduler):
    return ItemReadinessTracker(scheduler, min_skeleton_duration_ms=200, fade_out_ms=0)


class TestMinimumSkeletonDuration:
    def test_fast_load_is_held_until_minimum(self, tracker, scheduler):
        tracker.mark_as_loading(["a"])

        scheduler.advance(50)
        tracker.mark_as_loaded(["a"])

        assert tracker.is_item_loading("a")
        assert tracker.get_state("a") == ItemState.LOADED

        scheduler.advance(149)
        assert tracker.is_item_loading("a")

        scheduler.advance(1)
        assert not tracker.is_item_loading("a")
        assert tracker.is_empty

    def test_slow_load_is_removed_immediately(self, tracker, scheduler):
        tracker.mark_as_loading(["a"])

        scheduler.advance(500)
        tracker.mark_as_loaded(["a"])

        assert not tracker.is_item_loading("a")
        assert tracker.pending_timer_count() == 0

    def test_load_exactly_at_minimum_is_removed_immediately(self, tracker, scheduler):
        tracker.mark_as_loading(["a"])

        scheduler.advance(200)
        tracker.mark_as_loaded(["a"])

        assert not tracker.is_item_loading("a")

    def test_fade_out_extends_hold(self, scheduler):
        tracker = ItemReadinessTracker(scheduler, min_skeleton_duration_ms=200, fade_out_ms=100)
        tracker.mark_as_loading(["a"])
        tracker.mark_as_loaded(["a"])

        scheduler.advance(250)
        assert tracker.is_item_loading("a")

        scheduler.advance(50)
        assert not tracker.is_item_loading("a")

    def test_batch_with_mixed_timing(self, tracker, scheduler):
        tracker.mark_as_loading(["a"])
        scheduler.advance(150)
        tracker.mark_as_loading(["b"])

        scheduler.advance(100)
        tracker.mark_as_loaded(["a", "b"])

        assert tracker.loading_ids == frozenset({"b"})
        scheduler.advance(100)
        assert tracker.is_empty


class TestGenerations:
    def test_reloading_cancels_pending_removal(self, tracker, scheduler):
        tracker.mark_as_loading(["a"])
        scheduler.advance(50)
        tracker.mark_as_loaded(["a"])

        scheduler.advance(100)
        tracker.mark_as_loading(["a"])

        scheduler.advance(100)
        assert tracker.is_item_loading("a")
        assert tracker.get_state("a") == ItemState.LOADING

    def test_stale_expiry_is_ignored(self, tracker, scheduler):
        tracker.mark_as_loading(["a"])
        tracker.mark_as_loaded(["a"])
        old_generation = 1

        tracker.mark_as_loading(["a"])
        tracker._expire("a", old_generation)

        assert tracker.is_item_loading("a")

    def test_loaded_twice_is_noop(self, tracker, scheduler):
        tracker.mark_as_loading(["a"])
        tracker.mark_as_loaded(["a"])
        tracker.mark_as_loaded(["a"])

        assert tracker.pending_timer_count() == 1


class TestUnknownAndInitialIds:
    def test_unknown_id_is_ignored(self, tracker):
        tracker.mark_as_loaded(["ghost"])

        assert tracker.is_empty
        assert tracker.get_state("ghost") is None

    def test_initial_ids_are_pending_and_removed_on_load(self, scheduler):
        tracker = ItemReadinessTracker(
            scheduler, min_skeleton_duration_ms=200, initial_loading_ids=[1, 2]
        )

        assert tracker.get_state(1) == ItemState.PENDING
        assert tracker.is_item_loading(2)

        tracker.mark_as_loaded([1])

        assert tracker.loading_ids == frozenset({2})


class TestCleanup:
    def test_remove_items_cancels_timers(self, tracker, scheduler):
        tracker.mark_as_loading(["a", "b"])
        tracker.mark_as_loaded(["a"])

        tracker.remove_items(["a", "b"])

        assert tracker.is_empty
        assert scheduler.pending == 0

    def test_clear_cancels_every_timer(self, tracker, scheduler):
        tracker.mark_as_loading(["a", "b"])
        tracker.mark_as_loaded(["a", "b"])

        tracker.clear()

        assert tracker.is_empty
        assert scheduler.pending == 0

    def test_subscribers_see_loading_sets(self, tracker, scheduler):
        seen = []
        tracker.subscribe(seen.append)

        tracker.mark_as_loading(["a"])
        tracker.mark_as_loaded(["a"])
        scheduler.advance(200)

        assert seen == [frozenset({"a"}), frozenset()]

    def test_dispose_drops_listeners(self, tracker, scheduler):
        seen = []
        tracker.subscribe(seen.append)
        tracker.mark_as_loading(["a"])

        tracker.dispose()
        assert scheduler.pending == 0
        tracker.mark_as_loading(["b"])

        assert seen == [frozenset({"a"})]
