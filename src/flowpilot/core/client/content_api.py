"""Remote content API client.

``ContentApiClient`` is the protocol the engine depends on; any object with
these four coroutines can back the console (tests use an in-memory fake).
``WebflowContentClient`` is the httpx implementation against the Webflow
Data API v2 collection item endpoints.

Errors are raised raw (``ContentApiError`` for non-2xx responses, httpx
exceptions for transport failures); classification and retries belong to
the retry controller, not to the client.

Example usage:
    async with WebflowContentClient(api_token="...") as client:
        page = await client.fetch_page("coll-1", limit=25, offset=0)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import httpx

from flowpilot.core.client.shared import (
    extract_error_code,
    extract_error_message,
    parse_retry_after,
)
from flowpilot.core.cms.models import Item
from flowpilot.core.errors.api import ContentApiError

logger = logging.getLogger(__name__)

# API constants
WEBFLOW_API_BASE_URL = "https://api.webflow.com/v2"
DEFAULT_TIMEOUT = 30.0


@dataclass
class FetchPageResult:
    """One page of items plus the server-reported total."""

    items: List[Item] = field(default_factory=list)
    total: int = 0


class ContentApiClient(Protocol):
    """Operations the engine needs from the remote content API."""

    async def fetch_page(
        self,
        collection_id: str,
        *,
        limit: int,
        offset: int,
        sort: Optional[Sequence[str]] = None,
        filter: Optional[Mapping[str, Any]] = None,
    ) -> FetchPageResult: ...

    async def create(self, collection_id: str, field_data: Mapping[str, Any]) -> Item: ...

    async def update(
        self, collection_id: str, item_id: str, field_data: Mapping[str, Any]
    ) -> Item: ...

    async def delete(self, collection_id: str, item_id: str) -> None: ...


def _list_params(
    limit: int,
    offset: int,
    sort: Optional[Sequence[str]],
    filter: Optional[Mapping[str, Any]],
) -> Dict[str, Any]:
    params: Dict[str, Any] = {"limit": limit, "offset": offset}
    if sort:
        # "field:dir" -> sortBy/sortOrder; the API sorts on one field only
        sort_field, _, direction = sort[0].partition(":")
        params["sortBy"] = sort_field
        if direction:
            params["sortOrder"] = direction
    if filter:
        for key, value in filter.items():
            if value not in (None, ""):
                params[key] = value
    return params


class WebflowContentClient:
    """Async client for Webflow collection items.

    One ``httpx.AsyncClient`` is kept for the lifetime of the object; close
    it with :meth:`aclose` or use the client as an async context manager.
    """

    def __init__(
        self,
        api_token: str,
        base_url: str = WEBFLOW_API_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            api_token: Bearer token for the content API
            base_url: API base URL (default: https://api.webflow.com/v2)
            timeout: Request timeout in seconds (default: 30.0)
            transport: Optional httpx transport (tests pass a MockTransport)

        Raises:
            ValueError: If no API token is provided
        """
        if not api_token:
            raise ValueError(
                "Content API token required. Provide via api_token parameter "
                "or FLOWPILOT_API_TOKEN environment variable."
            )
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_token}",
                "Accept": "application/json",
            },
        )

    async def __aenter__(self) -> "WebflowContentClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = await self._http.request(method, path, **kwargs)
        if response.status_code >= 400:
            error_msg = extract_error_message(response)
            logger.debug(
                "%s %s failed with %d: %s", method, path, response.status_code, error_msg
            )
            raise ContentApiError(
                error_msg,
                status_code=response.status_code,
                retry_after=parse_retry_after(response),
                code=extract_error_code(response),
            )
        return response

    async def fetch_page(
        self,
        collection_id: str,
        *,
        limit: int,
        offset: int,
        sort: Optional[Sequence[str]] = None,
        filter: Optional[Mapping[str, Any]] = None,
    ) -> FetchPageResult:
        response = await self._request(
            "GET",
            f"/collections/{collection_id}/items",
            params=_list_params(limit, offset, sort, filter),
        )
        data = response.json()
        items = [Item.from_api(raw) for raw in data.get("items", [])]
        pagination = data.get("pagination") or {}
        return FetchPageResult(items=items, total=int(pagination.get("total", len(items))))

    async def create(self, collection_id: str, field_data: Mapping[str, Any]) -> Item:
        response = await self._request(
            "POST",
            f"/collections/{collection_id}/items",
            json={"isArchived": False, "isDraft": False, "fieldData": dict(field_data)},
        )
        return Item.from_api(response.json())

    async def update(
        self, collection_id: str, item_id: str, field_data: Mapping[str, Any]
    ) -> Item:
        response = await self._request(
            "PATCH",
            f"/collections/{collection_id}/items/{item_id}",
            json={"fieldData": dict(field_data)},
        )
        return Item.from_api(response.json())

    async def delete(self, collection_id: str, item_id: str) -> None:
        await self._request("DELETE", f"/collections/{collection_id}/items/{item_id}")
