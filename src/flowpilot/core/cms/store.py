"""Root store owning the collection cache and the optimistic overlay."""

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional

from flowpilot.core.cms.cache import CollectionCache
from flowpilot.core.cms.models import DEFAULT_PAGE_SIZE, Item, PaginationState
from flowpilot.core.cms.overlay import OptimisticOverlay, combine_items

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollectionView:
    """Read-only snapshot the presentation layer renders for one collection."""

    items: List[Item] = field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None
    pagination: PaginationState = field(default_factory=PaginationState)
    pending_count: int = 0
    selected_ids: FrozenSet[str] = frozenset()


class CmsStore:
    """Single root object for console state.

    Created once and injected into the fetch path, the orchestrator and the
    presentation layer.
    """

    def __init__(
        self,
        cache: Optional[CollectionCache] = None,
        overlay: Optional[OptimisticOverlay] = None,
        default_page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.cache = cache or CollectionCache(default_page_size=default_page_size)
        self.overlay = overlay or OptimisticOverlay()

    def combined_items(self, collection_id: str) -> List[Item]:
        """Cached items with this collection's pending operations applied."""
        state = self.cache.get_state(collection_id)
        base = state.items if state is not None else []
        return combine_items(base, self.overlay.for_collection(collection_id))

    def find_visible(self, collection_id: str, item_id: str) -> Optional[Item]:
        for item in self.combined_items(collection_id):
            if item.id == item_id:
                return item
        return None

    def view(self, collection_id: str) -> CollectionView:
        state = self.cache.get_state(collection_id)
        pending = self.overlay.for_collection(collection_id)
        if state is None:
            return CollectionView(items=combine_items([], pending), pending_count=len(pending))
        return CollectionView(
            items=combine_items(state.items, pending),
            loading=state.loading,
            error=state.error,
            pagination=state.pagination,
            pending_count=len(pending),
            selected_ids=frozenset(state.selected_ids),
        )
