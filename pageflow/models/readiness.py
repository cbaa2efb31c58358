from dataclasses import dataclass
from enum import Enum
from typing import Hashable, Optional

ItemId = Hashable


class ItemState(str, Enum):
    """Loading state of a tracked item"""

    PENDING = "pending"
    LOADING = "loading"
    LOADED = "loaded"


@dataclass
class ReadinessRecord:
    """
    Per-item loading record

    LOADED records are still reported as loading until their minimum
    skeleton duration has elapsed and the record is removed.
    """

    state: ItemState
    load_started_at: Optional[float]
    generation: int
