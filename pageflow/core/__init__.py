from .exceptions import (
    PageflowError,
    FetchFailure,
    ContentSourceError,
)
from .logging import setup_logging

__all__ = [
    "PageflowError",
    "FetchFailure",
    "ContentSourceError",
    "setup_logging",
]
