from typing import Optional, List, TypeVar, Generic
from pydantic import BaseModel, ConfigDict, Field


T = TypeVar("T")


class PageRequest(BaseModel):
    """
    One unit of retrieval from the content source

    Attributes:
        page_index: 1-based page number
        batch_size: Number of items requested
    """

    model_config = ConfigDict(frozen=True)

    page_index: int = Field(ge=1)
    batch_size: int = Field(ge=1)


class PageResult(BaseModel, Generic[T]):
    """
    Items returned for a page request

    Attributes:
        items: Items in this page
        has_more: Whether the source reports further pages
    """

    items: List[T]
    has_more: bool


class PaginationInfo(BaseModel):
    """
    Pagination block of a content source response

    Attributes:
        has_more: Whether there are more items available
    """

    has_more: bool


class PaginatedResponse(BaseModel, Generic[T]):
    """
    Wire shape of a paged content source response

    Attributes:
        items: List of items in the current page
        pagination: Pagination information
    """

    items: List[T]
    pagination: PaginationInfo


class PagedListState(BaseModel, Generic[T]):
    """
    Read-only snapshot of a paged list

    Attributes:
        items: All items loaded so far
        current_page: Last page successfully applied, 0 before the first
        is_loading: A fetch is in flight and the list was empty
        is_loading_more: A fetch is in flight and the list already had items
        has_more: Whether another page may be requested
        error: Failure of the last fetch, cleared by the next success or reset
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    items: List[T] = Field(default_factory=list)
    current_page: int = 0
    is_loading: bool = False
    is_loading_more: bool = False
    has_more: bool = True
    error: Optional[Exception] = None


class LookaheadWindow(BaseModel, Generic[T]):
    """
    Items around the visible range, split for soft virtualization

    Attributes:
        visible_items: Items inside the visible range
        preloaded_items: Loaded items past the visible range, up to the lookahead
        skeleton_count: Placeholders needed for items not loaded yet
    """

    visible_items: List[T]
    preloaded_items: List[T]
    skeleton_count: int
