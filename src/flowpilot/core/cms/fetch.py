"""Paged retrieval that repopulates the collection cache.

Every fetch takes the next request number for its collection. Only the
response to the newest request may write to the cache; older responses
that resolve late are discarded.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import TYPE_CHECKING, DefaultDict, Optional

from flowpilot.core.cms.models import SortDirection
from flowpilot.core.cms.store import CmsStore
from flowpilot.core.errors.types import CmsError, ErrorContext
from flowpilot.core.observability import audit_log
from flowpilot.core.resilience.retry import RetryController

if TYPE_CHECKING:
    from flowpilot.core.client.content_api import ContentApiClient, FetchPageResult

logger = logging.getLogger(__name__)


class FetchPath:
    """Fetches pages through the retry controller into a ``CmsStore``."""

    def __init__(
        self,
        client: ContentApiClient,
        store: CmsStore,
        retry: RetryController,
    ) -> None:
        self._client = client
        self._store = store
        self._retry = retry
        self._issued: DefaultDict[str, int] = defaultdict(int)

    def latest_request(self, collection_id: str) -> int:
        """Number of the newest fetch issued for ``collection_id`` (0 if none)."""
        return self._issued[collection_id]

    async def fetch_page(
        self,
        collection_id: str,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        search_query: Optional[str] = None,
        sort_field: Optional[str] = None,
        sort_direction: Optional[SortDirection] = None,
    ) -> Optional[FetchPageResult]:
        """Fetch one page and, if still current, write it to the cache.

        Omitted arguments fall back to the collection's current pagination.

        Returns:
            The page result, or None when a newer fetch superseded this one.

        Raises:
            CmsError: Terminal failure of the newest fetch for the collection.
        """
        cache = self._store.cache
        state = cache.initialize(collection_id)
        current = state.pagination

        page = page if page is not None else current.current_page
        page_size = page_size if page_size is not None else current.page_size
        search_query = search_query if search_query is not None else current.search_query
        sort_field = sort_field if sort_field is not None else current.sort_field
        sort_direction = sort_direction if sort_direction is not None else current.sort_direction
        if page < 1 or page_size < 1:
            raise ValueError(f"page and page_size must be >= 1, got {page}/{page_size}")

        self._issued[collection_id] += 1
        request_no = self._issued[collection_id]

        cache.set_loading(collection_id, True)
        cache.set_error(collection_id, None)

        sort = [f"{sort_field}:{sort_direction or 'asc'}"] if sort_field else None
        filter = {"search": search_query} if search_query else None
        offset = (page - 1) * page_size

        try:
            result = await self._retry.with_retry(
                lambda: self._client.fetch_page(
                    collection_id,
                    limit=page_size,
                    offset=offset,
                    sort=sort,
                    filter=filter,
                ),
                f"fetch:{collection_id}:{page}:{request_no}",
                context=ErrorContext(
                    operation="fetch_page",
                    collection_id=collection_id,
                    additional_data={"page": page, "page_size": page_size},
                ),
            )
        except CmsError as error:
            if request_no != self._issued[collection_id]:
                self._discard(collection_id, request_no, page)
                return None
            logger.warning(
                "Fetch of %s page %d failed: %s", collection_id, page, error.message
            )
            cache.set_error(collection_id, error.user_message)
            cache.set_loading(collection_id, False)
            raise
        except asyncio.CancelledError:
            if request_no == self._issued[collection_id]:
                cache.set_loading(collection_id, False)
            raise

        if request_no != self._issued[collection_id]:
            self._discard(collection_id, request_no, page)
            return None

        cache.replace_items(collection_id, result.items, total_items=result.total)
        cache.set_pagination(
            collection_id,
            current_page=page,
            page_size=page_size,
            search_query=search_query,
            sort_field=sort_field,
            sort_direction=sort_direction,
        )
        cache.set_loading(collection_id, False)
        logger.debug(
            "Fetched %s page %d (%d items, total %d)",
            collection_id,
            page,
            len(result.items),
            result.total,
        )
        return result

    def _discard(self, collection_id: str, request_no: int, page: int) -> None:
        latest = self._issued[collection_id]
        logger.warning(
            "Discarding stale fetch of %s page %d (request %d, latest %d)",
            collection_id,
            page,
            request_no,
            latest,
        )
        audit_log(
            "fetch_discarded",
            collection_id=collection_id,
            page=page,
            request=request_no,
            latest_request=latest,
        )

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    async def change_page(self, collection_id: str, page: int) -> Optional[FetchPageResult]:
        return await self.fetch_page(collection_id, page=page)

    async def change_page_size(
        self, collection_id: str, page_size: int
    ) -> Optional[FetchPageResult]:
        return await self.fetch_page(collection_id, page=1, page_size=page_size)

    async def search(self, collection_id: str, query: str) -> Optional[FetchPageResult]:
        return await self.fetch_page(collection_id, page=1, search_query=query)

    async def sort(
        self,
        collection_id: str,
        field: str,
        direction: SortDirection = "asc",
    ) -> Optional[FetchPageResult]:
        return await self.fetch_page(collection_id, sort_field=field, sort_direction=direction)

    async def refresh(self, collection_id: str) -> Optional[FetchPageResult]:
        return await self.fetch_page(collection_id)
