from pageflow.core.logging import LogContext
from pageflow.core.signals import ContentReady, SignalBus

logger = LogContext(__name__)


class RouteContentReadyReporter:
    """
    Publishes ContentReady once per route, on the first report(ready=True)

    Pages call report() on every render with whether their first meaningful
    content is visible; the overlay only needs to hear it once.
    """

    def __init__(self, bus: SignalBus, route_key: str | None = None):
        self.bus = bus
        self._route_key = route_key
        self._fired = False

    @property
    def route_key(self) -> str | None:
        return self._route_key

    @property
    def fired(self) -> bool:
        return self._fired

    def route_changed(self, route_key: str) -> None:
        if route_key != self._route_key:
            self._route_key = route_key
            self._fired = False

    def report(self, ready: bool, route_key: str | None = None) -> bool:
        """
        Args:
            ready: Whether the page's first meaningful content is rendered
            route_key: Route the page belongs to; switches routes if it differs

        Returns:
            True if this call published ContentReady
        """
        if route_key is not None:
            self.route_changed(route_key)
        if not ready or self._fired:
            return False

        self._fired = True
        logger.debug("Route content ready", extra={"route_key": self._route_key})
        self.bus.publish(ContentReady(route_key=self._route_key))
        return True
