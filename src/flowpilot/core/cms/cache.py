"""Per-collection cache of authoritative items.

``CollectionCache`` holds the last-known server state of every collection
the console has opened: items in server order, pagination, loading/error
flags and the selection set. Only the fetch path and the mutation
orchestrator write to it.

Every mutation targeting a collection that was never initialized is a
silent no-op. Item lists are replaced, never mutated in place, so a list
handed out earlier keeps its contents.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional, Sequence

from flowpilot.core.cms.models import (
    DEFAULT_PAGE_SIZE,
    CollectionState,
    Item,
    PaginationState,
    utc_now,
)

logger = logging.getLogger(__name__)

_PAGINATION_FIELDS = frozenset(PaginationState.__dataclass_fields__)


class CollectionCache:
    """Keyed mapping of collection id to ``CollectionState``."""

    def __init__(self, default_page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self._default_page_size = default_page_size
        self._collections: Dict[str, CollectionState] = {}

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def initialize(self, collection_id: str) -> CollectionState:
        """Create default state for a collection; no-op if it already exists."""
        state = self._collections.get(collection_id)
        if state is None:
            state = CollectionState(
                pagination=PaginationState(page_size=self._default_page_size)
            )
            self._collections[collection_id] = state
            logger.debug("Initialized collection %s", collection_id)
        return state

    def is_initialized(self, collection_id: str) -> bool:
        return collection_id in self._collections

    def get_state(self, collection_id: str) -> Optional[CollectionState]:
        return self._collections.get(collection_id)

    def collection_ids(self) -> List[str]:
        return list(self._collections)

    def get_items(self, collection_id: str) -> List[Item]:
        state = self._collections.get(collection_id)
        return list(state.items) if state else []

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def replace_items(
        self,
        collection_id: str,
        items: Sequence[Item],
        total_items: Optional[int] = None,
    ) -> None:
        """Set the item list after a fetch and stamp ``last_fetched``.

        ``total_items`` defaults to the length of ``items``.
        """
        state = self._collections.get(collection_id)
        if state is None:
            return
        state.items = list(items)
        state.pagination = replace(
            state.pagination,
            total_items=total_items if total_items is not None else len(state.items),
        )
        state.last_fetched = utc_now()

    def append_item(self, collection_id: str, item: Item) -> None:
        """Add a confirmed item at the front of the list.

        An item whose id is already cached replaces the cached copy instead.
        """
        state = self._collections.get(collection_id)
        if state is None:
            return
        if any(existing.id == item.id for existing in state.items):
            self.patch_item(collection_id, item.id, item)
            return
        state.items = [item, *state.items]
        state.pagination = replace(
            state.pagination, total_items=state.pagination.total_items + 1
        )

    def patch_item(self, collection_id: str, item_id: str, item: Item) -> None:
        """Replace the cached item with ``item_id`` in place (index preserved)."""
        state = self._collections.get(collection_id)
        if state is None:
            return
        state.items = [item if existing.id == item_id else existing for existing in state.items]

    def remove_item(self, collection_id: str, item_id: str) -> None:
        """Drop a confirmed-deleted item and its selection."""
        state = self._collections.get(collection_id)
        if state is None:
            return
        remaining = [existing for existing in state.items if existing.id != item_id]
        if len(remaining) != len(state.items):
            state.pagination = replace(
                state.pagination,
                total_items=max(0, state.pagination.total_items - 1),
            )
        state.items = remaining
        state.selected_ids = state.selected_ids - {item_id}

    # ------------------------------------------------------------------
    # Flags and pagination
    # ------------------------------------------------------------------

    def set_loading(self, collection_id: str, loading: bool) -> None:
        state = self._collections.get(collection_id)
        if state is not None:
            state.loading = loading

    def set_error(self, collection_id: str, error: Optional[str]) -> None:
        state = self._collections.get(collection_id)
        if state is not None:
            state.error = error

    def set_pagination(self, collection_id: str, **updates: Any) -> None:
        """Merge ``updates`` into the collection's pagination.

        Raises:
            TypeError: If an update names an unknown pagination field
        """
        unknown = set(updates) - _PAGINATION_FIELDS
        if unknown:
            raise TypeError(f"Unknown pagination field(s): {', '.join(sorted(unknown))}")
        state = self._collections.get(collection_id)
        if state is not None:
            state.pagination = replace(state.pagination, **updates)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_item(self, collection_id: str, item_id: str) -> None:
        state = self._collections.get(collection_id)
        if state is not None:
            state.selected_ids = state.selected_ids | {item_id}

    def deselect_item(self, collection_id: str, item_id: str) -> None:
        state = self._collections.get(collection_id)
        if state is not None:
            state.selected_ids = state.selected_ids - {item_id}

    def toggle_selection(self, collection_id: str, item_id: str) -> None:
        state = self._collections.get(collection_id)
        if state is None:
            return
        if item_id in state.selected_ids:
            state.selected_ids = state.selected_ids - {item_id}
        else:
            state.selected_ids = state.selected_ids | {item_id}

    def select_all(self, collection_id: str, item_ids: Iterable[str]) -> None:
        self.set_selected(collection_id, item_ids)

    def set_selected(self, collection_id: str, item_ids: Iterable[str]) -> None:
        state = self._collections.get(collection_id)
        if state is not None:
            state.selected_ids = set(item_ids)

    def clear_selection(self, collection_id: str) -> None:
        state = self._collections.get(collection_id)
        if state is not None:
            state.selected_ids = set()

    def select_range(
        self,
        collection_id: str,
        start_id: str,
        end_id: str,
        items: Sequence[Item],
    ) -> None:
        """Add every item between ``start_id`` and ``end_id`` (inclusive).

        Order comes from ``items`` (normally the combined view being shown).
        Nothing happens if either id is missing from ``items``.
        """
        state = self._collections.get(collection_id)
        if state is None:
            return
        ids = [item.id for item in items]
        try:
            start, end = ids.index(start_id), ids.index(end_id)
        except ValueError:
            return
        low, high = min(start, end), max(start, end)
        state.selected_ids = state.selected_ids | set(ids[low : high + 1])
