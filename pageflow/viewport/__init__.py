from .scroll_anchor import ScrollAnchorStabilizer
from .scroll_trigger import ScrollTriggerObserver
from .visibility import ScrollContainer, Subscription, VisibilityService

__all__ = [
    "ScrollAnchorStabilizer",
    "ScrollTriggerObserver",
    "ScrollContainer",
    "Subscription",
    "VisibilityService",
]
