"""Shared fixtures for engine and console tests.

Provides an in-memory content API client whose calls can be failed or held
at a gate, and a sleep function that records delays instead of waiting.
"""

import asyncio
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Mapping, Optional, Sequence, Tuple

import pytest

from flowpilot.core.client.content_api import FetchPageResult
from flowpilot.core.cms.fetch import FetchPath
from flowpilot.core.cms.models import Item
from flowpilot.core.cms.orchestrator import MutationOrchestrator
from flowpilot.core.cms.store import CmsStore
from flowpilot.core.errors.api import ContentApiError
from flowpilot.core.resilience.models import RetryConfig
from flowpilot.core.resilience.retry import RetryController


def make_item(item_id: str, **fields: Any) -> Item:
    return Item(id=item_id, field_data=fields)


class RecordingSleep:
    """Async sleep stand-in that records requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


class ParkingSleep(RecordingSleep):
    """Recording sleep whose ``park_at``-th call blocks until ``release()``."""

    def __init__(self, park_at: int) -> None:
        super().__init__()
        self.park_at = park_at
        self.parked = asyncio.Event()
        self._released = asyncio.Event()

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if len(self.delays) == self.park_at:
            self.parked.set()
            await self._released.wait()
        else:
            await asyncio.sleep(0)

    def release(self) -> None:
        self._released.set()


class FakeContentClient:
    """In-memory content API.

    ``fail_next(method, *errors)`` queues exceptions raised by the next
    calls of ``method``; ``hold(method)`` returns an event the next call of
    ``method`` waits on before doing anything.
    """

    def __init__(self) -> None:
        self.collections: Dict[str, List[Item]] = defaultdict(list)
        self.calls: List[Tuple[str, Any]] = []
        self._failures: Dict[str, Deque[BaseException]] = defaultdict(deque)
        self._gates: Dict[str, Deque[asyncio.Event]] = defaultdict(deque)
        self._next_id = 0

    # -- scripting --------------------------------------------------------

    def seed(self, collection_id: str, items: Sequence[Item]) -> None:
        self.collections[collection_id] = list(items)

    def fail_next(self, method: str, *errors: BaseException) -> None:
        self._failures[method].extend(errors)

    def hold(self, method: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates[method].append(gate)
        return gate

    def calls_to(self, method: str) -> List[Any]:
        return [args for name, args in self.calls if name == method]

    async def _enter(self, method: str, args: Any) -> None:
        self.calls.append((method, args))
        # a call claims its scripted failure on entry, before any gate
        failure = self._failures[method].popleft() if self._failures[method] else None
        if self._gates[method]:
            await self._gates[method].popleft().wait()
        if failure is not None:
            raise failure

    def _find(self, collection_id: str, item_id: str) -> int:
        for index, item in enumerate(self.collections[collection_id]):
            if item.id == item_id:
                return index
        raise ContentApiError("Item not found", status_code=404)

    # -- ContentApiClient -------------------------------------------------

    async def fetch_page(
        self,
        collection_id: str,
        *,
        limit: int,
        offset: int,
        sort: Optional[Sequence[str]] = None,
        filter: Optional[Mapping[str, Any]] = None,
    ) -> FetchPageResult:
        await self._enter(
            "fetch_page",
            {
                "collection_id": collection_id,
                "limit": limit,
                "offset": offset,
                "sort": sort,
                "filter": filter,
            },
        )
        items = self.collections[collection_id]
        return FetchPageResult(items=list(items[offset : offset + limit]), total=len(items))

    async def create(self, collection_id: str, field_data: Mapping[str, Any]) -> Item:
        await self._enter("create", (collection_id, dict(field_data)))
        self._next_id += 1
        item = make_item(f"server-{self._next_id}", **field_data)
        self.collections[collection_id].insert(0, item)
        return item

    async def update(
        self, collection_id: str, item_id: str, field_data: Mapping[str, Any]
    ) -> Item:
        await self._enter("update", (collection_id, item_id, dict(field_data)))
        index = self._find(collection_id, item_id)
        updated = self.collections[collection_id][index].with_fields(field_data)
        self.collections[collection_id][index] = updated
        return updated

    async def delete(self, collection_id: str, item_id: str) -> None:
        await self._enter("delete", (collection_id, item_id))
        index = self._find(collection_id, item_id)
        del self.collections[collection_id][index]


@pytest.fixture
def fake_client():
    return FakeContentClient()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def store():
    return CmsStore(default_page_size=10)


@pytest.fixture
def retry(recording_sleep):
    return RetryController(RetryConfig(), sleep_func=recording_sleep)


@pytest.fixture
def fetch_path(fake_client, store, retry):
    return FetchPath(fake_client, store, retry)


@pytest.fixture
def orchestrator(fake_client, store, retry, fetch_path, recording_sleep):
    return MutationOrchestrator(
        fake_client,
        store,
        retry,
        fetch_path,
        sleep_func=recording_sleep,
        bulk_batch_size=2,
        bulk_batch_delay=1.0,
    )


@pytest.fixture
def seeded(fake_client):
    """Collection ``coll`` with three items a, b, c on the server."""
    fake_client.seed(
        "coll",
        [
            make_item("a", name="Alpha", rank=1),
            make_item("b", name="Beta", rank=2),
            make_item("c", name="Gamma", rank=3),
        ],
    )
    return fake_client


@pytest.fixture
def make_parking_sleep():
    return ParkingSleep
