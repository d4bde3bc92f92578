"""Tests for CMS record models and tagged field values."""

from datetime import datetime, timezone

import pydantic
import pytest

from flowpilot.core.cms.models import (
    BooleanValue,
    DateValue,
    Item,
    JsonValue,
    NumberValue,
    PaginationState,
    RichTextValue,
    TextValue,
    field_value_from_raw,
)


class TestFieldValueFromRaw:
    """Tests for raw JSON to tagged value coercion."""

    @pytest.mark.parametrize(
        "raw,expected_type",
        [
            ("plain", TextValue),
            (True, BooleanValue),
            (0, NumberValue),
            (2.5, NumberValue),
            ("<p>Hello</p>", RichTextValue),
            ("2024-03-01T10:00:00Z", DateValue),
            ("2024-03-01", DateValue),
            (None, JsonValue),
            ({"url": "https://x/y.png"}, JsonValue),
            (["ref-1", "ref-2"], JsonValue),
        ],
    )
    def test_tagging(self, raw, expected_type):
        assert isinstance(field_value_from_raw(raw), expected_type)

    def test_bool_is_not_a_number(self):
        value = field_value_from_raw(False)
        assert isinstance(value, BooleanValue)
        assert value.value is False

    def test_tagged_dict_passes_through(self):
        item = Item(id="a", field_data={"n": {"type": "number", "value": 3}})
        assert isinstance(item.field_data["n"], NumberValue)

    def test_date_round_trips_to_iso(self):
        value = field_value_from_raw(datetime(2024, 1, 2, tzinfo=timezone.utc))
        assert value.to_raw() == "2024-01-02T00:00:00+00:00"


class TestItem:
    """Tests for Item parsing and copying."""

    def test_from_api_camel_case(self):
        item = Item.from_api(
            {
                "id": "abc",
                "cmsLocaleId": "loc",
                "isDraft": True,
                "isArchived": False,
                "createdOn": "2024-01-01T00:00:00Z",
                "fieldData": {"name": "Hello", "slug": "hello", "views": 10},
            }
        )
        assert item.id == "abc"
        assert item.cms_locale_id == "loc"
        assert item.is_draft is True
        assert item.created_on.year == 2024
        assert item.to_api_fields() == {"name": "Hello", "slug": "hello", "views": 10}

    def test_missing_id_is_a_validation_error(self):
        with pytest.raises(pydantic.ValidationError):
            Item.from_api({"fieldData": {}})

    def test_items_are_frozen(self):
        item = Item(id="a")
        with pytest.raises(pydantic.ValidationError):
            item.id = "b"

    def test_with_fields_merges_without_touching_original(self):
        item = Item(id="a", field_data={"name": "Old", "rank": 1})
        updated = item.with_fields({"name": "New"})

        assert updated.id == "a"
        assert updated.to_api_fields() == {"name": "New", "rank": 1}
        assert item.to_api_fields() == {"name": "Old", "rank": 1}
        assert updated.last_updated is not None

    def test_placeholder_is_draft(self):
        item = Item.placeholder("optimistic-1", {"name": "Draft"})
        assert item.id == "optimistic-1"
        assert item.is_draft is True
        assert item.is_archived is False
        assert item.to_api_fields() == {"name": "Draft"}


class TestPaginationState:
    """Tests for pagination helpers."""

    def test_offset_for_page_three(self):
        pagination = PaginationState(current_page=3, page_size=10, total_items=25)
        assert pagination.offset == 20
        assert pagination.total_pages == 3

    def test_empty_collection_has_no_pages(self):
        assert PaginationState().total_pages == 0
