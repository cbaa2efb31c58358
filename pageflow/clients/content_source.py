from typing import Any, Dict, Protocol
from urllib.parse import urlparse

import httpx

from pageflow.core.config import settings
from pageflow.core.exceptions import ContentSourceError
from pageflow.core.logging import LogContext
from pageflow.models.pagination import PageRequest, PageResult, PaginatedResponse

logger = LogContext(__name__)


class ContentSource(Protocol):
    """Anything that can be asked for page N of size B"""

    async def fetch_page(self, page_index: int, batch_size: int) -> PageResult: ...


class HTTPContentSource:
    """
    Content source backed by a paged JSON endpoint

    Expects responses shaped like {"items": [...], "pagination": {"has_more": bool}}.
    """

    def __init__(
        self,
        base_url: str | None = None,
        path: str | None = None,
        timeout: float | None = None,
        headers: Dict[str, str] | None = None,
        params: Dict[str, Any] | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url or settings.CONTENT_SOURCE_URL
        self.path = path or settings.CONTENT_SOURCE_PATH
        self.timeout = timeout or settings.REQUEST_TIMEOUT
        self.headers = headers or {"Accept": "application/json"}
        self.params = params or {}
        self._client = client
        self._owns_client = client is None
        self.host = urlparse(self.base_url).netloc

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, headers=self.headers
            )
        return self._client

    async def fetch_page(self, page_index: int, batch_size: int) -> PageResult:
        """
        Request one page from the endpoint

        Args:
            page_index: 1-based page number
            batch_size: Number of items per page

        Returns:
            The parsed page

        Raises:
            ContentSourceError: On transport errors, non-2xx responses or malformed bodies
        """
        request = PageRequest(page_index=page_index, batch_size=batch_size)
        params = {**self.params, "page": request.page_index, "limit": request.batch_size}

        try:
            response = await self.client.get(self.path, params=params)
        except httpx.HTTPError as e:
            logger.warning(
                "Content source request failed",
                extra={"host": self.host, "page_index": page_index, "error": str(e)},
            )
            raise ContentSourceError(
                detail=f"Request to content source failed: {str(e)}", host=self.host
            ) from e

        if response.status_code >= 400:
            logger.warning(
                "Content source returned error status",
                extra={
                    "host": self.host,
                    "page_index": page_index,
                    "status_code": response.status_code,
                },
            )
            raise ContentSourceError(
                detail=f"Content source responded with {response.status_code}",
                status_code=response.status_code,
                host=self.host,
            )

        try:
            body = PaginatedResponse.model_validate(response.json())
        except ValueError as e:
            raise ContentSourceError(
                detail=f"Malformed content source response: {str(e)}",
                status_code=response.status_code,
                host=self.host,
            ) from e

        logger.debug(
            "Fetched page from content source",
            extra={
                "host": self.host,
                "page_index": page_index,
                "item_count": len(body.items),
                "has_more": body.pagination.has_more,
            },
        )
        return PageResult(items=body.items, has_more=body.pagination.has_more)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
