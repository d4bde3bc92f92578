"""Mutation orchestrator for optimistic create, update and delete.

Each mutation moves through ``Idle -> OverlayApplied -> RemoteSucceeded |
RemoteFailed -> Resolved``:

1. An overlay entry is added synchronously, so the combined view shows the
   change before any network call.
2. The remote call runs through the retry controller.
3. On success the overlay entry is removed, the server result is written to
   the cache in the same step, and the collection is refetched.
4. On terminal failure the overlay entry is removed and the classified error
   is raised. The cache was never touched, so removal is the whole rollback.

Concurrent updates of one item resolve last-issued-wins: if an update
confirms after a newer-issued update of the same item already confirmed,
the newer field data is sent again so the server ends on the newest value.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ulid import ULID

from flowpilot.core.cms.fetch import FetchPath
from flowpilot.core.cms.models import Item, OperationKind, OptimisticOperation
from flowpilot.core.cms.store import CmsStore
from flowpilot.core.errors.types import CmsError, ErrorContext, ErrorSeverity, NotFoundError
from flowpilot.core.observability import audit_log, get_audit_logger
from flowpilot.core.resilience.models import SleepFunc
from flowpilot.core.resilience.retry import RetryController

if TYPE_CHECKING:
    from flowpilot.core.client.content_api import ContentApiClient

logger = logging.getLogger(__name__)

DEFAULT_BULK_BATCH_SIZE = 25
DEFAULT_BULK_BATCH_DELAY = 1.0

ProgressCallback = Callable[[int, int], None]


def new_operation_id() -> str:
    """Process-unique operation id (``optimistic-<ULID>``)."""
    return f"optimistic-{ULID()}"


@dataclass
class BulkDeleteResult:
    """Outcome of a bulk delete: confirmed ids and per-item failures."""

    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, CmsError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class MutationOrchestrator:
    """Entry point for optimistic mutations on a ``CmsStore``."""

    def __init__(
        self,
        client: ContentApiClient,
        store: CmsStore,
        retry: RetryController,
        fetch_path: FetchPath,
        sleep_func: Optional[SleepFunc] = None,
        bulk_batch_size: int = DEFAULT_BULK_BATCH_SIZE,
        bulk_batch_delay: float = DEFAULT_BULK_BATCH_DELAY,
    ) -> None:
        if bulk_batch_size < 1:
            raise ValueError(f"bulk_batch_size must be >= 1, got {bulk_batch_size}")
        self._client = client
        self._store = store
        self._retry = retry
        self._fetch = fetch_path
        self._sleep = sleep_func or asyncio.sleep
        self._bulk_batch_size = bulk_batch_size
        self._bulk_batch_delay = bulk_batch_delay
        # (collection_id, item_id) -> (sequence, field_data) of the newest
        # confirmed update while other updates of that item are pending
        self._confirmed_updates: Dict[Tuple[str, str], Tuple[int, Dict[str, Any]]] = {}

    # ------------------------------------------------------------------
    # Overlay bookkeeping
    # ------------------------------------------------------------------

    def _issue(
        self,
        kind: OperationKind,
        collection_id: str,
        *,
        item_id: Optional[str] = None,
        item: Optional[Item] = None,
        original_item: Optional[Item] = None,
        field_data: Optional[Mapping[str, Any]] = None,
        operation_id: Optional[str] = None,
    ) -> OptimisticOperation:
        overlay = self._store.overlay
        op = OptimisticOperation(
            id=operation_id or new_operation_id(),
            kind=kind,
            collection_id=collection_id,
            sequence=overlay.next_sequence(),
            item_id=item_id,
            item=item,
            original_item=original_item,
            field_data=dict(field_data) if field_data is not None else None,
        )
        overlay.add(op)
        get_audit_logger().mutation_issued(
            kind.value,
            collection_id,
            op.id,
            item_id=item_id,
            sequence=op.sequence,
        )
        return op

    def _rollback(self, op: OptimisticOperation, error: CmsError) -> None:
        self._store.overlay.remove(op.id)
        if op.item_id is not None:
            self._forget_if_idle(op.collection_id, op.item_id)

        level = logging.WARNING
        if error.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            level = logging.ERROR
        logger.log(
            level,
            "Rolled back %s %s on %s (item=%s): %s",
            op.kind.value,
            op.id,
            op.collection_id,
            op.item_id,
            error.message,
        )
        get_audit_logger().mutation_rolled_back(
            op.kind.value,
            op.collection_id,
            op.id,
            error_kind=error.kind.value,
            item_id=op.item_id,
        )

    def _confirmed(self, op: OptimisticOperation, item_id: Optional[str]) -> None:
        logger.info(
            "Confirmed %s %s on %s (item=%s)", op.kind.value, op.id, op.collection_id, item_id
        )
        audit_log(
            "mutation_confirmed",
            kind=op.kind.value,
            collection_id=op.collection_id,
            operation_id=op.id,
            item_id=item_id,
        )

    def _forget_if_idle(self, collection_id: str, item_id: str) -> None:
        still_pending = any(
            op.kind is OperationKind.UPDATE and op.item_id == item_id
            for op in self._store.overlay.for_collection(collection_id)
        )
        if not still_pending:
            self._confirmed_updates.pop((collection_id, item_id), None)

    async def _refetch(self, collection_id: str) -> None:
        """Resynchronize after a confirmed mutation; failures do not propagate."""
        try:
            await self._fetch.refresh(collection_id)
        except CmsError as error:
            logger.warning(
                "Refetch of %s after confirmed mutation failed: %s",
                collection_id,
                error.message,
            )

    async def _call(
        self,
        op: OptimisticOperation,
        func: Callable[[], Any],
        operation_key: str,
    ) -> Any:
        context = ErrorContext(
            operation=op.kind.value,
            collection_id=op.collection_id,
            item_id=op.item_id,
            additional_data={"operation_id": op.id},
        )
        try:
            return await self._retry.with_retry(func, operation_key, context=context)
        except CmsError as error:
            self._rollback(op, error)
            raise
        except asyncio.CancelledError:
            self._store.overlay.remove(op.id)
            raise

    def _require_visible(self, collection_id: str, item_id: str, operation: str) -> Item:
        current = self._store.find_visible(collection_id, item_id)
        if current is None:
            raise NotFoundError(
                f"Item {item_id} is not visible in collection {collection_id}",
                context=ErrorContext(
                    operation=operation, collection_id=collection_id, item_id=item_id
                ),
            )
        return current

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(self, collection_id: str, field_data: Mapping[str, Any]) -> Item:
        """Create an item optimistically.

        A draft placeholder whose id is the operation id is shown at the top
        of the combined view until the remote create resolves.

        Returns:
            The item as created by the server.

        Raises:
            CmsError: Terminal failure; the placeholder is already gone.
        """
        self._store.cache.initialize(collection_id)
        op_id = new_operation_id()
        op = self._issue(
            OperationKind.CREATE,
            collection_id,
            item=Item.placeholder(op_id, field_data),
            field_data=field_data,
            operation_id=op_id,
        )

        created: Item = await self._call(
            op,
            lambda: self._client.create(collection_id, op.field_data or {}),
            f"create:{collection_id}:{op.id}",
        )

        self._store.overlay.remove(op.id)
        self._store.cache.append_item(collection_id, created)
        self._confirmed(op, created.id)
        await self._refetch(collection_id)
        return created

    async def update(
        self, collection_id: str, item_id: str, field_data: Mapping[str, Any]
    ) -> Item:
        """Update an item optimistically.

        The overlay shows the visible item with ``field_data`` merged over
        its fields until the remote update resolves.

        Raises:
            NotFoundError: The item is not in the combined view.
            CmsError: Terminal failure of the remote update.
        """
        current = self._require_visible(collection_id, item_id, "update")
        op = self._issue(
            OperationKind.UPDATE,
            collection_id,
            item_id=item_id,
            item=current.with_fields(field_data),
            original_item=current,
            field_data=field_data,
        )

        updated: Item = await self._call(
            op,
            lambda: self._client.update(collection_id, item_id, op.field_data or {}),
            f"update:{collection_id}:{item_id}:{op.id}",
        )

        key = (collection_id, item_id)
        newer = self._confirmed_updates.get(key)
        self._store.overlay.remove(op.id)

        if newer is not None and newer[0] > op.sequence:
            updated = await self._resend_newer(op, newer, updated)
        else:
            self._store.cache.patch_item(collection_id, item_id, updated)
            self._confirmed_updates[key] = (op.sequence, op.field_data or {})
            self._show_over_older(op, updated)

        self._forget_if_idle(collection_id, item_id)
        self._confirmed(op, item_id)
        await self._refetch(collection_id)
        return updated

    def _show_over_older(self, op: OptimisticOperation, updated: Item) -> None:
        # Older pending updates of the same item must not cover this result.
        overlay = self._store.overlay
        for pending in overlay.for_collection(op.collection_id):
            if (
                pending.kind is OperationKind.UPDATE
                and pending.item_id == op.item_id
                and pending.sequence < op.sequence
            ):
                overlay.replace(replace(pending, item=updated))

    async def _resend_newer(
        self,
        op: OptimisticOperation,
        newer: Tuple[int, Dict[str, Any]],
        confirmed: Item,
    ) -> Item:
        collection_id, item_id = op.collection_id, op.item_id or ""
        newer_sequence, newer_fields = newer
        logger.warning(
            "Update %s of %s/%s confirmed after newer update #%d; re-sending newer fields",
            op.id,
            collection_id,
            item_id,
            newer_sequence,
        )
        audit_log(
            "mutation_superseded",
            collection_id=collection_id,
            item_id=item_id,
            operation_id=op.id,
            sequence=op.sequence,
            superseded_by=newer_sequence,
        )
        try:
            resent: Item = await self._retry.with_retry(
                lambda: self._client.update(collection_id, item_id, newer_fields),
                f"update:{collection_id}:{item_id}:{op.id}:resend",
                context=ErrorContext(
                    operation="update", collection_id=collection_id, item_id=item_id
                ),
            )
        except CmsError as error:
            logger.error(
                "Re-sending update #%d of %s/%s failed: %s",
                newer_sequence,
                collection_id,
                item_id,
                error.message,
            )
            self._store.cache.patch_item(collection_id, item_id, confirmed)
            self._store.cache.set_error(collection_id, error.user_message)
            return confirmed
        self._store.cache.patch_item(collection_id, item_id, resent)
        return resent

    async def delete(self, collection_id: str, item_id: str) -> None:
        """Delete an item optimistically.

        Raises:
            NotFoundError: The item is not in the combined view.
            CmsError: Terminal failure; the item reappears.
        """
        current = self._require_visible(collection_id, item_id, "delete")
        op = self._issue(
            OperationKind.DELETE,
            collection_id,
            item_id=item_id,
            original_item=current,
        )

        await self._call(
            op,
            lambda: self._client.delete(collection_id, item_id),
            f"delete:{collection_id}:{item_id}:{op.id}",
        )

        self._store.overlay.remove(op.id)
        self._store.cache.remove_item(collection_id, item_id)
        self._confirmed(op, item_id)
        await self._refetch(collection_id)

    async def bulk_delete(
        self,
        collection_id: str,
        item_ids: Sequence[str],
        on_progress: Optional[ProgressCallback] = None,
    ) -> BulkDeleteResult:
        """Delete many items in batches.

        Every visible item disappears from the view at once. Deletes run
        ``bulk_batch_size`` at a time with ``bulk_batch_delay`` seconds
        between batches; ``on_progress(completed, total)`` is called after
        each batch. Failed items are rolled back individually and reported
        in the result rather than raised. The collection is refetched once
        at the end if anything was deleted.
        """
        result = BulkDeleteResult()
        ops: List[OptimisticOperation] = []

        for item_id in dict.fromkeys(item_ids):
            try:
                current = self._require_visible(collection_id, item_id, "bulk_delete")
            except NotFoundError as error:
                result.failed[item_id] = error
                continue
            ops.append(
                self._issue(
                    OperationKind.DELETE,
                    collection_id,
                    item_id=item_id,
                    original_item=current,
                )
            )

        total = len(ops)
        completed = 0
        try:
            for start in range(0, total, self._bulk_batch_size):
                if start:
                    await self._sleep(self._bulk_batch_delay)
                batch = ops[start : start + self._bulk_batch_size]
                outcomes = await asyncio.gather(
                    *(self._bulk_delete_one(op) for op in batch), return_exceptions=True
                )
                for op, outcome in zip(batch, outcomes):
                    item_id = op.item_id or ""
                    if isinstance(outcome, CmsError):
                        result.failed[item_id] = outcome
                    elif isinstance(outcome, BaseException):
                        raise outcome
                    else:
                        self._store.overlay.remove(op.id)
                        self._store.cache.remove_item(collection_id, item_id)
                        self._confirmed(op, item_id)
                        result.deleted.append(item_id)
                completed += len(batch)
                if on_progress is not None:
                    on_progress(completed, total)
        except BaseException:
            # every unresolved delete reappears in the view
            for pending in ops:
                self._store.overlay.remove(pending.id)
            logger.warning(
                "Bulk delete on %s interrupted after %d of %d items",
                collection_id,
                completed,
                total,
            )
            raise

        logger.info(
            "Bulk delete on %s: %d deleted, %d failed",
            collection_id,
            len(result.deleted),
            len(result.failed),
        )
        if result.deleted:
            await self._refetch(collection_id)
        return result

    async def _bulk_delete_one(self, op: OptimisticOperation) -> None:
        collection_id, item_id = op.collection_id, op.item_id or ""
        await self._call(
            op,
            lambda: self._client.delete(collection_id, item_id),
            f"delete:{collection_id}:{item_id}:{op.id}",
        )
