"""Tests for CmsStore and the collection view it renders."""

from dataclasses import FrozenInstanceError

import pytest

from flowpilot.core.cms.models import Item, OperationKind, OptimisticOperation
from flowpilot.core.cms.store import CmsStore


def _item(item_id, **fields):
    return Item(id=item_id, field_data=fields)


@pytest.fixture
def loaded_store():
    store = CmsStore(default_page_size=10)
    store.cache.initialize("coll")
    store.cache.replace_items("coll", [_item("a", name="Alpha"), _item("b", name="Beta")], 2)
    return store


def _op(store, kind, **kwargs):
    return OptimisticOperation(
        id=f"op-{kind.value}-{kwargs.get('item_id', 'new')}",
        kind=kind,
        collection_id="coll",
        sequence=store.overlay.next_sequence(),
        **kwargs,
    )


class TestView:
    def test_unknown_collection(self):
        view = CmsStore().view("missing")
        assert view.items == []
        assert view.loading is False
        assert view.error is None
        assert view.pending_count == 0
        assert view.selected_ids == frozenset()

    def test_pending_ops_applied(self, loaded_store):
        store = loaded_store
        store.overlay.add(_op(store, OperationKind.CREATE, item=_item("tmp", name="New")))
        store.overlay.add(_op(store, OperationKind.DELETE, item_id="a"))

        view = store.view("coll")
        assert [i.id for i in view.items] == ["tmp", "b"]
        assert view.pending_count == 2
        assert view.pagination.total_items == 2

        # the cache itself is untouched
        assert [i.id for i in store.cache.get_items("coll")] == ["a", "b"]

    def test_other_collections_do_not_leak(self, loaded_store):
        store = loaded_store
        other = OptimisticOperation(
            id="op-x",
            kind=OperationKind.DELETE,
            collection_id="other",
            sequence=store.overlay.next_sequence(),
            item_id="a",
        )
        store.overlay.add(other)
        view = store.view("coll")
        assert [i.id for i in view.items] == ["a", "b"]
        assert view.pending_count == 0

    def test_pending_create_visible_before_first_fetch(self):
        store = CmsStore()
        store.overlay.add(
            OptimisticOperation(
                id="op-1",
                kind=OperationKind.CREATE,
                collection_id="fresh",
                sequence=store.overlay.next_sequence(),
                item=_item("op-1", name="Draft"),
            )
        )
        view = store.view("fresh")
        assert [i.id for i in view.items] == ["op-1"]
        assert view.pending_count == 1

    def test_selection_is_snapshotted(self, loaded_store):
        loaded_store.cache.select_item("coll", "a")
        view = loaded_store.view("coll")
        loaded_store.cache.select_item("coll", "b")
        assert view.selected_ids == frozenset({"a"})

    def test_view_is_frozen(self, loaded_store):
        view = loaded_store.view("coll")
        with pytest.raises(FrozenInstanceError):
            view.loading = True

    def test_flags_are_reported(self, loaded_store):
        loaded_store.cache.set_loading("coll", True)
        loaded_store.cache.set_error("coll", "boom")
        view = loaded_store.view("coll")
        assert view.loading is True
        assert view.error == "boom"


class TestFindVisible:
    def test_finds_pending_update_snapshot(self, loaded_store):
        store = loaded_store
        store.overlay.add(
            _op(store, OperationKind.UPDATE, item_id="b", item=_item("b", name="Bee"))
        )
        found = store.find_visible("coll", "b")
        assert found.field_data["name"].value == "Bee"

    def test_deleted_item_is_not_visible(self, loaded_store):
        store = loaded_store
        store.overlay.add(_op(store, OperationKind.DELETE, item_id="a"))
        assert store.find_visible("coll", "a") is None
        assert store.find_visible("coll", "zzz") is None
