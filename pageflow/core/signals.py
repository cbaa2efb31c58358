from collections import defaultdict
from typing import Callable, Dict, List, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict

from pageflow.core.logging import LogContext

logger = LogContext(__name__)


class Signal(BaseModel):
    model_config = ConfigDict(frozen=True)


class RouteChanged(Signal):
    """A navigation moved the app to a new route"""

    route_key: str


class ContentReady(Signal):
    """The current route rendered its first meaningful content"""

    route_key: str | None = None


class CacheUpdated(Signal):
    """A cached list snapshot was written or invalidated"""

    key: str


SIGNAL_TYPES = (RouteChanged, ContentReady, CacheUpdated)

AnySignal = Union[RouteChanged, ContentReady, CacheUpdated]
S = TypeVar("S", bound=Signal)


class SignalBus:
    """
    Typed publish/subscribe channel for cross-cutting signals

    Only the message types in SIGNAL_TYPES can be published or subscribed to.
    Delivery is synchronous, in subscription order.
    """

    def __init__(self):
        self._handlers: Dict[Type[Signal], List[Callable[[Signal], None]]] = (
            defaultdict(list)
        )

    def subscribe(
        self, signal_type: Type[S], handler: Callable[[S], None]
    ) -> Callable[[], None]:
        """
        Register a handler for one signal type

        Args:
            signal_type: One of the supported signal classes
            handler: Called with each published message of that type

        Returns:
            A callable that removes the handler
        """
        self._check_type(signal_type)
        self._handlers[signal_type].append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers[signal_type]
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, message: Signal) -> int:
        """
        Deliver a message to every handler subscribed to its type

        Returns:
            Number of handlers that received the message
        """
        signal_type = type(message)
        self._check_type(signal_type)

        delivered = 0
        for handler in list(self._handlers[signal_type]):
            try:
                handler(message)
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Signal handler failed: {str(e)}",
                    extra={"signal": signal_type.__name__},
                    exc_info=True,
                )
        return delivered

    def handler_count(self, signal_type: Type[Signal]) -> int:
        return len(self._handlers.get(signal_type, []))

    @staticmethod
    def _check_type(signal_type: type) -> None:
        if signal_type not in SIGNAL_TYPES:
            raise TypeError(f"Unsupported signal type: {signal_type!r}")
