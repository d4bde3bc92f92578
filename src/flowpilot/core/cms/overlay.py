"""Optimistic overlay of pending mutations and the combined-view fold.

The overlay is an ordered list of ``OptimisticOperation`` entries across all
collections. ``combine_items`` replays the entries of one collection, in the
order they were issued, over the cached items to produce what the console
renders.
"""

import itertools
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from flowpilot.core.cms.models import Item, OperationKind, OptimisticOperation

logger = logging.getLogger(__name__)


def combine_items(
    base_items: Sequence[Item],
    operations: Iterable[OptimisticOperation],
) -> List[Item]:
    """Fold pending operations over ``base_items``.

    - create: prepend the snapshot unless an item with that id is present
    - update: replace the matching item in place; dropped if absent
    - delete: remove the matching item

    Operations must be given in issuance order. Never raises and never
    mutates ``base_items``; the result is a fresh list.

    Example:
        >>> combine_items([], [])
        []
    """
    working = list(base_items)
    for op in operations:
        if op.kind is OperationKind.CREATE:
            if op.item is not None and not any(i.id == op.item.id for i in working):
                working.insert(0, op.item)
        elif op.kind is OperationKind.UPDATE:
            if op.item is not None:
                working = [op.item if i.id == op.item_id else i for i in working]
        elif op.kind is OperationKind.DELETE:
            working = [i for i in working if i.id != op.item_id]
    return working


class OptimisticOverlay:
    """Pending operations in issuance order.

    Each entry is removed exactly once: ``remove`` on an id that is no
    longer pending is a no-op that returns False.
    """

    def __init__(self) -> None:
        self._operations: List[OptimisticOperation] = []
        self._sequence = itertools.count(1)

    def next_sequence(self) -> int:
        """Next process-wide issuance number (monotonically increasing)."""
        return next(self._sequence)

    @property
    def pending(self) -> Tuple[OptimisticOperation, ...]:
        return tuple(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def add(self, operation: OptimisticOperation) -> None:
        if any(op.id == operation.id for op in self._operations):
            raise ValueError(f"Operation {operation.id} is already pending")
        self._operations = [*self._operations, operation]
        logger.debug(
            "Overlay add %s %s on %s (item=%s, pending=%d)",
            operation.kind.value,
            operation.id,
            operation.collection_id,
            operation.item_id,
            len(self._operations),
        )

    def get(self, operation_id: str) -> Optional[OptimisticOperation]:
        for op in self._operations:
            if op.id == operation_id:
                return op
        return None

    def replace(self, operation: OptimisticOperation) -> bool:
        """Swap the pending entry with the same id, keeping its position."""
        if self.get(operation.id) is None:
            return False
        self._operations = [
            operation if op.id == operation.id else op for op in self._operations
        ]
        return True

    def remove(self, operation_id: str) -> bool:
        remaining = [op for op in self._operations if op.id != operation_id]
        if len(remaining) == len(self._operations):
            return False
        self._operations = remaining
        logger.debug("Overlay remove %s (pending=%d)", operation_id, len(remaining))
        return True

    def clear(self, collection_id: Optional[str] = None) -> None:
        if collection_id is None:
            self._operations = []
        else:
            self._operations = [
                op for op in self._operations if op.collection_id != collection_id
            ]

    def for_collection(self, collection_id: str) -> List[OptimisticOperation]:
        return [op for op in self._operations if op.collection_id == collection_id]
