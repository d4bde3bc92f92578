"""Tests for FetchPath paging, fencing and error reporting."""

import asyncio

import pytest

from flowpilot.core.cms.fetch import FetchPath
from flowpilot.core.cms.models import Item
from flowpilot.core.cms.overlay import combine_items
from flowpilot.core.errors import AuthenticationError, ContentApiError, ServiceError
from flowpilot.core.resilience import RetryConfig, RetryController


def _unavailable():
    return ContentApiError("boom", status_code=503)


@pytest.fixture
def paged(fake_client):
    fake_client.seed("coll", [Item(id=f"i{n:02d}", field_data={"n": n}) for n in range(25)])
    return fake_client


class TestFetchPage:
    """Tests for fetch_page()."""

    @pytest.mark.asyncio
    async def test_page_three_of_twenty_five(self, paged, fetch_path, store):
        """total=25, page_size=10, page 3 -> offset 20 and five items."""
        result = await fetch_path.fetch_page("coll", page=3, page_size=10)

        call = paged.calls_to("fetch_page")[-1]
        assert call["offset"] == 20
        assert call["limit"] == 10
        assert result.total == 25

        state = store.cache.get_state("coll")
        assert state.pagination.current_page == 3
        assert state.pagination.total_items == 25
        assert state.loading is False
        assert store.overlay.for_collection("coll") == []
        view = combine_items(state.items, store.overlay.for_collection("coll"))
        assert [i.id for i in view] == ["i20", "i21", "i22", "i23", "i24"]

    @pytest.mark.asyncio
    async def test_defaults_come_from_current_pagination(self, paged, fetch_path, store):
        await fetch_path.fetch_page("coll")
        call = paged.calls_to("fetch_page")[-1]
        assert call == {
            "collection_id": "coll",
            "limit": 10,
            "offset": 0,
            "sort": None,
            "filter": None,
        }
        assert store.cache.is_initialized("coll")

    @pytest.mark.asyncio
    async def test_sort_and_search_are_forwarded(self, paged, fetch_path, store):
        await fetch_path.fetch_page(
            "coll", search_query="gam", sort_field="name", sort_direction="desc"
        )
        call = paged.calls_to("fetch_page")[-1]
        assert call["sort"] == ["name:desc"]
        assert call["filter"] == {"search": "gam"}

        pagination = store.cache.get_state("coll").pagination
        assert pagination.search_query == "gam"
        assert pagination.sort_field == "name"
        assert pagination.sort_direction == "desc"

    @pytest.mark.asyncio
    async def test_invalid_page_raises(self, fetch_path):
        with pytest.raises(ValueError):
            await fetch_path.fetch_page("coll", page=0)

    @pytest.mark.asyncio
    async def test_terminal_failure_sets_error(self, paged, fetch_path, store):
        paged.fail_next("fetch_page", ContentApiError("bad token", status_code=401))

        with pytest.raises(AuthenticationError):
            await fetch_path.fetch_page("coll")

        state = store.cache.get_state("coll")
        assert state.loading is False
        assert state.error == "Please check your API key and try again."
        assert state.items == []

    @pytest.mark.asyncio
    async def test_next_fetch_clears_error(self, paged, fetch_path, store):
        paged.fail_next("fetch_page", ContentApiError("bad token", status_code=401))
        with pytest.raises(AuthenticationError):
            await fetch_path.fetch_page("coll")

        await fetch_path.fetch_page("coll")
        assert store.cache.get_state("coll").error is None

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, paged, fetch_path, store, recording_sleep):
        paged.fail_next("fetch_page", ContentApiError("upstream", status_code=503))
        result = await fetch_path.fetch_page("coll")
        assert len(result.items) == 10
        assert recording_sleep.delays == [1.0]
        assert len(paged.calls_to("fetch_page")) == 2


class TestFencing:
    """Tests for discarding stale responses."""

    @pytest.mark.asyncio
    async def test_stale_response_is_discarded(self, paged, fetch_path, store):
        gate = paged.hold("fetch_page")
        slow = asyncio.create_task(fetch_path.fetch_page("coll", page=1, page_size=10))
        await asyncio.sleep(0)

        fast = await fetch_path.fetch_page("coll", page=2, page_size=5)
        assert fast is not None

        gate.set()
        assert await slow is None

        state = store.cache.get_state("coll")
        assert [i.id for i in state.items] == ["i05", "i06", "i07", "i08", "i09"]
        assert state.pagination.current_page == 2
        assert state.pagination.page_size == 5
        assert state.loading is False
        assert fetch_path.latest_request("coll") == 2

    @pytest.mark.asyncio
    async def test_stale_failure_does_not_set_error(self, paged, fetch_path, store):
        gate = paged.hold("fetch_page")
        paged.fail_next("fetch_page", ContentApiError("bad token", status_code=401))
        slow = asyncio.create_task(fetch_path.fetch_page("coll", page=1))
        await asyncio.sleep(0)

        newer = asyncio.create_task(fetch_path.fetch_page("coll", page=2))
        await asyncio.sleep(0)
        gate.set()

        assert await slow is None
        await newer
        state = store.cache.get_state("coll")
        assert state.error is None
        assert state.pagination.current_page == 2


class TestConvenience:
    """Tests for page/size/search/sort helpers."""

    @pytest.mark.asyncio
    async def test_change_page_size_resets_to_first_page(self, paged, fetch_path, store):
        await fetch_path.change_page("coll", 3)
        await fetch_path.change_page_size("coll", 5)
        pagination = store.cache.get_state("coll").pagination
        assert pagination.current_page == 1
        assert pagination.page_size == 5

    @pytest.mark.asyncio
    async def test_search_resets_to_first_page(self, paged, fetch_path, store):
        await fetch_path.change_page("coll", 2)
        await fetch_path.search("coll", "beta")
        pagination = store.cache.get_state("coll").pagination
        assert pagination.current_page == 1
        assert pagination.search_query == "beta"

    @pytest.mark.asyncio
    async def test_sort_keeps_page(self, paged, fetch_path, store):
        await fetch_path.change_page("coll", 2)
        await fetch_path.sort("coll", "n", "desc")
        call = paged.calls_to("fetch_page")[-1]
        assert call["sort"] == ["n:desc"]
        assert call["offset"] == 10


class TestOverlappingFetches:
    """Concurrent fetches of one page keep separate retry budgets."""

    @pytest.mark.asyncio
    async def test_newest_fetch_gets_full_retry_budget(self, paged, store, make_parking_sleep):
        sleep = make_parking_sleep(park_at=2)
        retry = RetryController(RetryConfig(), sleep_func=sleep)
        fetch_path = FetchPath(paged, store, retry)

        # older refresh fails twice and waits in its second backoff
        paged.fail_next("fetch_page", _unavailable(), _unavailable())
        older = asyncio.create_task(fetch_path.refresh("coll"))
        await sleep.parked.wait()

        paged.fail_next("fetch_page", _unavailable(), _unavailable(), _unavailable())
        before = len(paged.calls_to("fetch_page"))
        with pytest.raises(ServiceError):
            await fetch_path.refresh("coll")
        assert len(paged.calls_to("fetch_page")) - before == 3

        sleep.release()
        assert await older is None
        state = store.cache.get_state("coll")
        assert state.error == ServiceError.default_user_message
        assert state.loading is False
        assert retry._attempts == {}


class TestCancellation:
    """Tests for cancelled fetches."""

    @pytest.mark.asyncio
    async def test_cancelling_newest_fetch_clears_loading(self, paged, fetch_path, store):
        paged.hold("fetch_page")
        task = asyncio.create_task(fetch_path.fetch_page("coll"))
        await asyncio.sleep(0)
        assert store.cache.get_state("coll").loading is True

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert store.cache.get_state("coll").loading is False

    @pytest.mark.asyncio
    async def test_cancelling_stale_fetch_keeps_newer_loading(self, paged, fetch_path, store):
        paged.hold("fetch_page")
        newer_gate = paged.hold("fetch_page")
        older = asyncio.create_task(fetch_path.fetch_page("coll", page=1))
        await asyncio.sleep(0)
        newer = asyncio.create_task(fetch_path.fetch_page("coll", page=2))
        await asyncio.sleep(0)

        older.cancel()
        with pytest.raises(asyncio.CancelledError):
            await older
        assert store.cache.get_state("coll").loading is True

        newer_gate.set()
        await newer
        state = store.cache.get_state("coll")
        assert state.loading is False
        assert state.pagination.current_page == 2
