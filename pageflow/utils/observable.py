from typing import Callable, Generic, List, TypeVar

from pageflow.core.logging import LogContext

logger = LogContext(__name__)

T = TypeVar("T")


class Observable(Generic[T]):
    """
    Minimal observer base for state owners

    Subclasses call _notify() after each mutation; presentation code
    subscribes to snapshots instead of reading internals.
    """

    def __init__(self):
        self._listeners: List[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        """
        Register a listener for state snapshots

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _snapshot(self) -> T:
        raise NotImplementedError

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self._snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(
                    f"State listener failed: {str(e)}",
                    extra={"owner": type(self).__name__},
                    exc_info=True,
                )
