from typing import Dict, Any


class PageflowError(Exception):
    """Base exception class for loading orchestration errors"""

    def __init__(
        self,
        detail: str,
        error_code: str,
        additional_info: Dict[str, Any] | None = None,
    ):
        super().__init__(detail)
        self.detail = detail
        self.error_code = error_code
        self.additional_info = additional_info or {}


class FetchFailure(PageflowError):
    """Raised when the content source rejects a page request or the network fails"""

    def __init__(
        self,
        detail: str,
        page_index: int | None = None,
        batch_size: int | None = None,
        cause: BaseException | None = None,
    ):
        additional_info: Dict[str, Any] = {}
        if page_index is not None:
            additional_info["page_index"] = page_index
            additional_info["batch_size"] = batch_size
        if cause is not None:
            additional_info["cause"] = type(cause).__name__
        super().__init__(
            detail=detail,
            error_code="FETCH_FAILURE",
            additional_info=additional_info,
        )
        self.page_index = page_index
        self.batch_size = batch_size
        self.cause = cause


class ContentSourceError(PageflowError):
    """Raised when there's an error talking to the content source"""

    def __init__(
        self,
        detail: str,
        status_code: int | None = None,
        host: str | None = None,
    ):
        additional_info: Dict[str, Any] = {"host": host} if host else {}
        if status_code is not None:
            additional_info["status_code"] = status_code
        super().__init__(
            detail=detail,
            error_code="CONTENT_SOURCE_ERROR",
            additional_info=additional_info,
        )
        self.status_code = status_code
        self.host = host
