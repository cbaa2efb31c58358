import pytest
from pydantic import ValidationError

from pageflow.core.signals import (
    CacheUpdated,
    ContentReady,
    RouteChanged,
    Signal,
    SignalBus,
)


class TestSignalBus:
    def test_publish_delivers_to_type_subscribers_only(self, bus):
        routes, ready = [], []
        bus.subscribe(RouteChanged, routes.append)
        bus.subscribe(ContentReady, ready.append)

        delivered = bus.publish(RouteChanged(route_key="/news"))

        assert delivered == 1
        assert routes == [RouteChanged(route_key="/news")]
        assert ready == []

    def test_unsubscribe(self, bus):
        received = []
        unsubscribe = bus.subscribe(CacheUpdated, received.append)

        unsubscribe()
        unsubscribe()

        assert bus.publish(CacheUpdated(key="list_cache:/news")) == 0
        assert bus.handler_count(CacheUpdated) == 0
        assert received == []

    def test_failing_handler_does_not_stop_delivery(self, bus):
        received = []

        def broken(_):
            raise RuntimeError("boom")

        bus.subscribe(ContentReady, broken)
        bus.subscribe(ContentReady, received.append)

        delivered = bus.publish(ContentReady(route_key="/news"))

        assert delivered == 1
        assert len(received) == 1

    def test_rejects_unknown_signal_types(self, bus):
        class Custom(Signal):
            value: int

        with pytest.raises(TypeError):
            bus.subscribe(Custom, lambda _: None)
        with pytest.raises(TypeError):
            bus.publish(Custom(value=1))

    def test_signals_are_immutable(self):
        message = RouteChanged(route_key="/news")

        with pytest.raises(ValidationError):
            message.route_key = "/other"
