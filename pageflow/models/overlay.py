from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict


class OverlayPhase(str, Enum):
    """Navigation overlay lifecycle phases"""

    IDLE = "idle"
    SHOWING = "showing"
    TIMED_OUT = "timed_out"
    HIDING = "hiding"


@dataclass
class OverlayCycle:
    """One hidden-to-shown cycle; destroyed when the fade-out completes"""

    cycle_id: int
    shown_at: float
    phase: OverlayPhase = OverlayPhase.SHOWING


class OverlaySnapshot(BaseModel):
    """
    State published to overlay subscribers

    Attributes:
        phase: Current lifecycle phase
        cycle_id: Id of the current cycle, or of the last one once idle
        visible: Whether the overlay is in the visual tree (fading counts)
        timed_out: Whether the hard timeout suppressed the current wait
    """

    model_config = ConfigDict(frozen=True)

    phase: OverlayPhase
    cycle_id: int
    visible: bool
    timed_out: bool
