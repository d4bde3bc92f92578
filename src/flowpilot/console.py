"""Console facade wiring the engine together for the presentation layer.

Example:
    config = ConsoleConfig.from_env()
    config.setup_logging()
    async with CmsConsole.from_config(config) as console:
        await console.fetch_page("coll-1")
        await console.create("coll-1", {"name": "Hello"})
        view = console.view("coll-1")
"""

import logging
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from flowpilot.config import ConsoleConfig
from flowpilot.core.client.content_api import (
    ContentApiClient,
    FetchPageResult,
    WebflowContentClient,
)
from flowpilot.core.cms.fetch import FetchPath
from flowpilot.core.cms.models import Item, SortDirection
from flowpilot.core.cms.orchestrator import (
    BulkDeleteResult,
    MutationOrchestrator,
    ProgressCallback,
)
from flowpilot.core.cms.store import CmsStore, CollectionView
from flowpilot.core.errors.base import RecoveryAction, get_recovery_actions
from flowpilot.core.resilience.classifier import classify_error
from flowpilot.core.resilience.models import SleepFunc
from flowpilot.core.resilience.retry import RetryController

logger = logging.getLogger(__name__)


class CmsConsole:
    """One console session: a store plus the paths that write to it."""

    def __init__(
        self,
        client: ContentApiClient,
        config: Optional[ConsoleConfig] = None,
        store: Optional[CmsStore] = None,
        sleep_func: Optional[SleepFunc] = None,
    ) -> None:
        self.config = config or ConsoleConfig()
        self.client = client
        self.store = store or CmsStore(default_page_size=self.config.default_page_size)
        self.retry = RetryController(self.config.retry, sleep_func=sleep_func)
        self.fetch_path = FetchPath(client, self.store, self.retry)
        self.orchestrator = MutationOrchestrator(
            client,
            self.store,
            self.retry,
            self.fetch_path,
            sleep_func=sleep_func,
            bulk_batch_size=self.config.bulk_batch_size,
            bulk_batch_delay=self.config.bulk_batch_delay,
        )

    @classmethod
    def from_config(cls, config: ConsoleConfig) -> "CmsConsole":
        """Build a console backed by ``WebflowContentClient``.

        Raises:
            ValueError: If the config has no API token
        """
        client = WebflowContentClient(
            api_token=config.api_token or "",
            base_url=config.api_base_url,
            timeout=config.request_timeout,
        )
        logger.debug("Console configured for %s", config.api_base_url)
        return cls(client, config=config)

    async def __aenter__(self) -> "CmsConsole":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        aclose = getattr(self.client, "aclose", None)
        if aclose is not None:
            await aclose()

    # Reads

    def view(self, collection_id: str) -> CollectionView:
        return self.store.view(collection_id)

    def combined_items(self, collection_id: str) -> List[Item]:
        return self.store.combined_items(collection_id)

    def recovery_actions(self, error: BaseException) -> List[RecoveryAction]:
        """Recovery actions for any failure, classifying it first if needed."""
        return get_recovery_actions(classify_error(error))

    # Fetching

    async def fetch_page(
        self,
        collection_id: str,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        search_query: Optional[str] = None,
        sort_field: Optional[str] = None,
        sort_direction: Optional[SortDirection] = None,
    ) -> Optional[FetchPageResult]:
        return await self.fetch_path.fetch_page(
            collection_id,
            page=page,
            page_size=page_size,
            search_query=search_query,
            sort_field=sort_field,
            sort_direction=sort_direction,
        )

    async def refresh(self, collection_id: str) -> Optional[FetchPageResult]:
        return await self.fetch_path.refresh(collection_id)

    # Mutations

    async def create(self, collection_id: str, field_data: Mapping[str, Any]) -> Item:
        return await self.orchestrator.create(collection_id, field_data)

    async def update(
        self, collection_id: str, item_id: str, field_data: Mapping[str, Any]
    ) -> Item:
        return await self.orchestrator.update(collection_id, item_id, field_data)

    async def delete(self, collection_id: str, item_id: str) -> None:
        await self.orchestrator.delete(collection_id, item_id)

    async def bulk_delete(
        self,
        collection_id: str,
        item_ids: Sequence[str],
        on_progress: Optional[ProgressCallback] = None,
    ) -> BulkDeleteResult:
        return await self.orchestrator.bulk_delete(collection_id, item_ids, on_progress)

    async def delete_selected(
        self,
        collection_id: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> BulkDeleteResult:
        """Bulk delete the collection's current selection."""
        state = self.store.cache.get_state(collection_id)
        selected = set(state.selected_ids) if state else set()
        # view order first; stale selections are reported as not found
        ordered = [i.id for i in self.combined_items(collection_id) if i.id in selected]
        ordered.extend(sorted(selected - set(ordered)))
        return await self.bulk_delete(collection_id, ordered, on_progress)

    # Selection

    def select_item(self, collection_id: str, item_id: str) -> None:
        self.store.cache.select_item(collection_id, item_id)

    def deselect_item(self, collection_id: str, item_id: str) -> None:
        self.store.cache.deselect_item(collection_id, item_id)

    def toggle_selection(self, collection_id: str, item_id: str) -> None:
        self.store.cache.toggle_selection(collection_id, item_id)

    def select_all(self, collection_id: str, item_ids: Optional[Iterable[str]] = None) -> None:
        """Select ``item_ids``, or every item currently visible."""
        if item_ids is None:
            item_ids = [item.id for item in self.combined_items(collection_id)]
        self.store.cache.select_all(collection_id, item_ids)

    def clear_selection(self, collection_id: str) -> None:
        self.store.cache.clear_selection(collection_id)

    def select_range(self, collection_id: str, start_id: str, end_id: str) -> None:
        self.store.cache.select_range(
            collection_id, start_id, end_id, self.combined_items(collection_id)
        )
