"""Record, pagination and optimistic-operation models for CMS collections.

Items are parsed from the content API's camelCase JSON into frozen pydantic
models whose field map holds tagged values, so merge and comparison logic
never has to guess at the type of a field.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

SortDirection = Literal["asc", "desc"]

DEFAULT_PAGE_SIZE = 25

_HTML_TAG = re.compile(r"<[a-zA-Z][^>]*>")
_ISO_DATE = re.compile(
    r"^\d{4}-\d{2}-\d{2}"
    r"(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?$"
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Field values
# =============================================================================


class _TaggedValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    def to_raw(self) -> Any:
        return getattr(self, "value")


class TextValue(_TaggedValue):
    type: Literal["text"] = "text"
    value: str


class NumberValue(_TaggedValue):
    type: Literal["number"] = "number"
    value: Union[int, float]


class BooleanValue(_TaggedValue):
    type: Literal["boolean"] = "boolean"
    value: bool


class DateValue(_TaggedValue):
    type: Literal["date"] = "date"
    value: datetime

    def to_raw(self) -> str:
        return self.value.isoformat()


class RichTextValue(_TaggedValue):
    type: Literal["rich_text"] = "rich_text"
    value: str


class JsonValue(_TaggedValue):
    """Structured values (references, images, options, null) kept verbatim."""

    type: Literal["json"] = "json"
    value: Any = None


FieldValue = Annotated[
    Union[TextValue, NumberValue, BooleanValue, DateValue, RichTextValue, JsonValue],
    Field(discriminator="type"),
]

_FIELD_TAGS = frozenset({"text", "number", "boolean", "date", "rich_text", "json"})


def _parse_iso(value: str) -> Optional[datetime]:
    if not _ISO_DATE.match(value):
        return None
    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        return datetime.fromisoformat(normalized)
    except ValueError:
        return None


def field_value_from_raw(raw: Any) -> Any:
    """Coerce a raw JSON field value into its tagged form.

    Already-tagged values (model instances, or ``{"type", "value"}`` dicts
    with a known tag) are passed through for pydantic to validate.
    """
    if isinstance(raw, _TaggedValue):
        return raw
    if isinstance(raw, dict) and set(raw) == {"type", "value"} and raw["type"] in _FIELD_TAGS:
        return raw
    # bool is an int subclass, so it has to be checked first
    if isinstance(raw, bool):
        return BooleanValue(value=raw)
    if isinstance(raw, (int, float)):
        return NumberValue(value=raw)
    if isinstance(raw, datetime):
        return DateValue(value=raw)
    if isinstance(raw, str):
        if _HTML_TAG.search(raw):
            return RichTextValue(value=raw)
        parsed = _parse_iso(raw)
        if parsed is not None:
            return DateValue(value=parsed)
        return TextValue(value=raw)
    return JsonValue(value=raw)


def coerce_field_data(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: field_value_from_raw(value) for key, value in data.items()}


# =============================================================================
# Items
# =============================================================================


class Item(BaseModel):
    """One record of a collection.

    The engine only ever compares items by ``id``; everything else is
    carried through untouched.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    cms_locale_id: Optional[str] = Field(None, alias="cmsLocaleId")
    created_on: Optional[datetime] = Field(None, alias="createdOn")
    last_updated: Optional[datetime] = Field(None, alias="lastUpdated")
    last_published: Optional[datetime] = Field(None, alias="lastPublished")
    is_draft: bool = Field(False, alias="isDraft")
    is_archived: bool = Field(False, alias="isArchived")
    field_data: Dict[str, FieldValue] = Field(default_factory=dict, alias="fieldData")

    @field_validator("field_data", mode="before")
    @classmethod
    def _coerce_field_data(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, Mapping):
            return coerce_field_data(v)
        return v

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "Item":
        return cls.model_validate(payload)

    @classmethod
    def placeholder(cls, item_id: str, field_data: Mapping[str, Any]) -> "Item":
        """Provisional draft item shown while a create is in flight."""
        now = utc_now()
        return cls(
            id=item_id,
            created_on=now,
            last_updated=now,
            is_draft=True,
            is_archived=False,
            field_data=coerce_field_data(field_data),
        )

    def to_api_fields(self) -> Dict[str, Any]:
        """Field map in raw JSON form, as the content API expects it."""
        return {key: value.to_raw() for key, value in self.field_data.items()}

    def with_fields(self, updates: Mapping[str, Any]) -> "Item":
        """Copy of this item with ``updates`` merged over its field map."""
        data = self.model_dump()
        data["field_data"].update(coerce_field_data(updates))
        data["last_updated"] = utc_now()
        return type(self).model_validate(data)


# =============================================================================
# Collection state
# =============================================================================


@dataclass
class PaginationState:
    current_page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    total_items: int = 0
    search_query: str = ""
    sort_field: Optional[str] = None
    sort_direction: Optional[SortDirection] = None

    @property
    def offset(self) -> int:
        return (self.current_page - 1) * self.page_size

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total_items / self.page_size)


@dataclass
class CollectionState:
    """Last-known authoritative state of one collection.

    ``pagination.total_items`` is whatever the server last reported (or a
    confirmed append/remove adjusted it to); optimistic operations never
    touch it.
    """

    items: List[Item] = field(default_factory=list)
    pagination: PaginationState = field(default_factory=PaginationState)
    loading: bool = False
    error: Optional[str] = None
    last_fetched: Optional[datetime] = None
    selected_ids: Set[str] = field(default_factory=set)


# =============================================================================
# Optimistic operations
# =============================================================================


class OperationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class OptimisticOperation:
    """A pending mutation rendered over the cache until it resolves.

    Attributes:
        id: Unique operation id (also the placeholder item id for creates)
        kind: Create, update or delete
        collection_id: Collection the operation belongs to
        sequence: Process-wide issuance number; higher means issued later
        item_id: Target item (required for update/delete)
        item: Snapshot to show (required for create/update)
        original_item: Item as it was before the mutation (update/delete)
        field_data: Raw field changes sent to the API (create/update)
        issued_at: When the operation was issued
    """

    id: str
    kind: OperationKind
    collection_id: str
    sequence: int
    item_id: Optional[str] = None
    item: Optional[Item] = None
    original_item: Optional[Item] = None
    field_data: Optional[Dict[str, Any]] = None
    issued_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if self.kind in (OperationKind.UPDATE, OperationKind.DELETE) and not self.item_id:
            raise ValueError(f"{self.kind.value} operation requires item_id")
        if self.kind in (OperationKind.CREATE, OperationKind.UPDATE) and self.item is None:
            raise ValueError(f"{self.kind.value} operation requires an item snapshot")
