import pytest

from pageflow.core.clock import ManualScheduler
from pageflow.core.signals import SignalBus
from tests.fakes import FakeScrollContainer, FakeVisibilityService


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def bus():
    return SignalBus()


@pytest.fixture
def visibility():
    return FakeVisibilityService()


@pytest.fixture
def container():
    # 800px viewport, 150px from the bottom of 4000px content
    return FakeScrollContainer(scroll_offset=3050.0)
