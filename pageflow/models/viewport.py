from pydantic import BaseModel, ConfigDict, Field


class ScrollMetrics(BaseModel):
    """
    Scroll position notification from the viewport visibility service

    Attributes:
        scroll_offset: Distance scrolled from the top of the content
        viewport_size: Visible extent of the scroll container
        content_size: Total extent of the scrollable content
        user_initiated: Whether the scroll came from wheel/touch/keyboard input
    """

    model_config = ConfigDict(frozen=True)

    scroll_offset: float = Field(ge=0)
    viewport_size: float = Field(ge=0)
    content_size: float = Field(ge=0)
    user_initiated: bool = False


class VisibleRange(BaseModel):
    """Coarse [start, end) index range of items around the viewport"""

    model_config = ConfigDict(frozen=True)

    start: int = Field(ge=0)
    end: int = Field(ge=0)


class ScrollAnchor(BaseModel):
    """
    Single-use scroll position record taken before a near-bottom append

    Attributes:
        scroll_offset: Scroll offset at capture time
        document_height: Content size at capture time
        was_near_bottom: Whether the viewport was close to the bottom edge
    """

    model_config = ConfigDict(frozen=True)

    scroll_offset: float
    document_height: float
    was_near_bottom: bool
