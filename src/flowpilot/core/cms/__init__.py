"""Collection cache, optimistic overlay and mutation orchestration."""

from flowpilot.core.cms.models import (
    BooleanValue,
    CollectionState,
    DateValue,
    FieldValue,
    Item,
    JsonValue,
    NumberValue,
    OperationKind,
    OptimisticOperation,
    PaginationState,
    RichTextValue,
    TextValue,
    field_value_from_raw,
)
from flowpilot.core.cms.cache import CollectionCache
from flowpilot.core.cms.overlay import OptimisticOverlay, combine_items
from flowpilot.core.cms.store import CmsStore, CollectionView
from flowpilot.core.cms.fetch import FetchPath
from flowpilot.core.cms.orchestrator import (
    BulkDeleteResult,
    MutationOrchestrator,
    new_operation_id,
)

__all__ = [
    # Models
    "Item",
    "FieldValue",
    "TextValue",
    "NumberValue",
    "BooleanValue",
    "DateValue",
    "RichTextValue",
    "JsonValue",
    "field_value_from_raw",
    "PaginationState",
    "CollectionState",
    "OperationKind",
    "OptimisticOperation",
    # State
    "CollectionCache",
    "OptimisticOverlay",
    "combine_items",
    "CmsStore",
    "CollectionView",
    # Remote paths
    "FetchPath",
    "MutationOrchestrator",
    "BulkDeleteResult",
    "new_operation_id",
]
