"""Durable outbox of writes to the remote store.

Writes are attempted immediately when the store is reachable and nothing is
queued for the same target, and queued otherwise. A newer update of an A1 range
replaces any queued update of that range. Queued operations are drained in
FIFO order by :meth:`SyncQueue.process`. The queue state lives in a
:class:`~shelfrank.database.blob_store.BlobStore` slot so it survives restarts.

The queue runs on a single asyncio event loop, so a plain boolean is enough
to keep two drains from overlapping.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, ValidationError
from tenacity import RetryCallState, wait_exponential_jitter

from shelfrank.exceptions import AuthError, RemoteStoreError, TransientError
from shelfrank.sync.rows import Cell, item_to_row, row_range

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from shelfrank.config.settings import SyncSettings
    from shelfrank.database.blob_store import BlobStore
    from shelfrank.ranking.models import Item
    from shelfrank.sync.client import AppendResult, RemoteStoreClient
    from shelfrank.sync.connectivity import Connectivity

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_SLOT = "sync_queue"


class SyncKind(StrEnum):
    APPEND = "append-new-items"
    UPDATE = "update-existing-item"


class SyncOutcome(StrEnum):
    """Result of :meth:`SyncQueue.submit`."""

    SYNCED = "synced"
    QUEUED = "queued"
    AUTH_REQUIRED = "auth-required"
    FAILED = "failed"


class SyncOperation(BaseModel):
    """One pending write towards the remote store."""

    operation_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    kind: SyncKind
    target: str = Field(description="Sheet name for appends, A1 range for updates")
    rows: list[list[Cell]]
    item_ids: list[int] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    retries: int = 0
    last_error: str | None = None

    @classmethod
    def append_items(cls, sheet: str, items: Sequence[Item]) -> SyncOperation:
        return cls(
            kind=SyncKind.APPEND,
            target=sheet,
            rows=[item_to_row(item) for item in items],
            item_ids=[item.item_id for item in items],
        )

    @classmethod
    def update_item(cls, sheet: str, row_number: int, item: Item) -> SyncOperation:
        return cls(
            kind=SyncKind.UPDATE,
            target=row_range(sheet, row_number),
            rows=[item_to_row(item)],
            item_ids=[item.item_id],
        )


class QueueState(BaseModel):
    """Serialized form of the queue."""

    pending: list[SyncOperation] = Field(default_factory=list)
    failures: list[SyncOperation] = Field(default_factory=list)
    auth_required: bool = False


@dataclass(frozen=True, slots=True)
class QueueStatus:
    pending: int
    failures: tuple[SyncOperation, ...]
    auth_required: bool
    processing: bool


@dataclass(frozen=True, slots=True)
class ProcessReport:
    """What one drain pass did. ``skipped`` is set when the pass did not run."""

    attempted: int = 0
    synced: int = 0
    retried: int = 0
    failed: int = 0
    remaining: int = 0
    stopped: str | None = None
    skipped: str | None = None


class SyncQueue:
    """Offline-tolerant FIFO of remote writes with retry, backoff and auth hold."""

    def __init__(  # noqa: PLR0913
        self,
        client: RemoteStoreClient,
        blobs: BlobStore,
        connectivity: Connectivity,
        settings: SyncSettings | None = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_success: Callable[[SyncOperation, AppendResult | None], None] | None = None,
        on_permanent_failure: Callable[[SyncOperation, RemoteStoreError], None] | None = None,
    ) -> None:
        self.client = client
        self.blobs = blobs
        self.connectivity = connectivity
        self.max_retries = settings.max_retries if settings else DEFAULT_MAX_RETRIES
        self.slot = settings.queue_slot if settings else DEFAULT_SLOT
        self._wait = wait_exponential_jitter(
            initial=settings.backoff_initial if settings else 1.0,
            max=settings.backoff_max if settings else 30.0,
            jitter=settings.backoff_jitter if settings else 1.0,
        )
        self._sleep = sleep
        self.on_success = on_success
        self.on_permanent_failure = on_permanent_failure
        self._state = QueueState()
        self._processing = False

    # Persistence

    def load(self) -> None:
        """Restore the queue from its slot. A missing slot means an empty queue."""
        raw = self.blobs.get(self.slot)
        if raw is None:
            self._state = QueueState()
            return
        try:
            self._state = QueueState.model_validate_json(raw)
        except ValidationError:
            backup = f"{self.slot}.corrupt"
            logger.exception("Stored sync queue is unreadable; moved it to slot %s", backup)
            self.blobs.put(backup, raw)
            self._state = QueueState()
            self.save()
            return
        logger.info(
            "Loaded sync queue: %d pending, %d failed%s",
            len(self._state.pending),
            len(self._state.failures),
            ", waiting for re-authentication" if self._state.auth_required else "",
        )

    def save(self) -> None:
        self.blobs.put(self.slot, self._state.model_dump_json())

    # Queue operations

    @property
    def pending(self) -> list[SyncOperation]:
        return list(self._state.pending)

    @property
    def failures(self) -> list[SyncOperation]:
        return list(self._state.failures)

    def enqueue(self, operation: SyncOperation) -> None:
        self._supersede(operation)
        self._state.pending.append(operation)
        self.save()
        logger.debug("Queued %s operation %s (%s)", operation.kind, operation.operation_id, operation.target)

    def _supersede(self, operation: SyncOperation) -> None:
        """Drop queued updates of the same range; ``operation`` carries newer values."""
        if operation.kind is not SyncKind.UPDATE:
            return
        kept = [
            queued
            for queued in self._state.pending
            if queued.kind is not SyncKind.UPDATE or queued.target != operation.target
        ]
        dropped = len(self._state.pending) - len(kept)
        if dropped:
            self._state.pending = kept
            logger.debug("Dropped %d stale update(s) of %s", dropped, operation.target)

    def _is_pending(self, operation: SyncOperation) -> bool:
        return any(queued is operation for queued in self._state.pending)

    def refresh_item(self, item: Item) -> int:
        """Rewrite the row of ``item`` in queued appends. Returns the number of rows rewritten."""
        refreshed = 0
        for operation in self._state.pending:
            if operation.kind is not SyncKind.APPEND:
                continue
            for index, item_id in enumerate(operation.item_ids):
                if item_id == item.item_id:
                    operation.rows[index] = item_to_row(item)
                    refreshed += 1
        if refreshed:
            self.save()
        return refreshed

    def status(self) -> QueueStatus:
        return QueueStatus(
            pending=len(self._state.pending),
            failures=tuple(self._state.failures),
            auth_required=self._state.auth_required,
            processing=self._processing,
        )

    def acknowledge_failures(self) -> list[SyncOperation]:
        """Clear and return the reported permanent failures."""
        cleared = self._state.failures
        self._state.failures = []
        self.save()
        return cleared

    def resume_after_reauth(self) -> None:
        """Lift the auth hold once the user has signed in again."""
        if not self._state.auth_required:
            return
        self._state.auth_required = False
        self.save()
        logger.info("Authentication restored; %d queued operations can sync", len(self._state.pending))

    def backoff_delay(self, retries: int) -> float:
        """Seconds to wait before the next attempt of an operation that failed ``retries`` times."""
        state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})  # type: ignore[arg-type]
        state.attempt_number = retries
        return self._wait(state)

    async def _attempt(self, operation: SyncOperation) -> Callable[[], None]:
        """Send ``operation`` and return the success notification to run once the queue is settled."""
        result: AppendResult | None = None
        if operation.kind is SyncKind.APPEND:
            result = await self.client.append(operation.target, operation.rows)
        else:
            await self.client.write(operation.target, operation.rows)
        logger.info("Synced %s operation %s (%s)", operation.kind, operation.operation_id, operation.target)
        return lambda: self._notify_success(operation, result)

    def _notify_success(self, operation: SyncOperation, result: AppendResult | None) -> None:
        if self.on_success is None:
            return
        try:
            self.on_success(operation, result)
        except Exception:  # noqa: BLE001
            logger.exception("Post-sync hook failed for operation %s", operation.operation_id)

    def _fail(self, operation: SyncOperation, error: RemoteStoreError) -> Callable[[], None]:
        """Record ``operation`` as a permanent failure and return its notification."""
        operation.last_error = str(error)
        self._state.failures.append(operation)
        logger.error(
            "Giving up on %s operation %s after %d retries: %s",
            operation.kind,
            operation.operation_id,
            operation.retries,
            error,
        )
        return lambda: self._notify_failure(operation, error)

    def _notify_failure(self, operation: SyncOperation, error: RemoteStoreError) -> None:
        if self.on_permanent_failure is None:
            return
        try:
            self.on_permanent_failure(operation, error)
        except Exception:  # noqa: BLE001
            logger.exception("Failure hook raised for operation %s", operation.operation_id)

    async def submit(self, operation: SyncOperation) -> SyncOutcome:
        """Write now if possible, otherwise queue the operation.

        An operation whose target already has queued writes waits behind them,
        so the remote store never sees an older value land after a newer one.
        """
        if not self.connectivity.is_online():
            self.enqueue(operation)
            return SyncOutcome.QUEUED
        if self._state.auth_required:
            self.enqueue(operation)
            return SyncOutcome.AUTH_REQUIRED
        self._supersede(operation)
        if self._processing or any(queued.target == operation.target for queued in self._state.pending):
            self.enqueue(operation)
            return SyncOutcome.QUEUED

        try:
            notify = await self._attempt(operation)
        except TransientError as exc:
            operation.last_error = str(exc)
            logger.warning("Write failed, queued for retry: %s", exc)
            self.enqueue(operation)
            return SyncOutcome.QUEUED
        except AuthError as exc:
            operation.last_error = str(exc)
            self._state.auth_required = True
            logger.warning("Remote store requires re-authentication: %s", exc)
            self.enqueue(operation)
            return SyncOutcome.AUTH_REQUIRED
        except RemoteStoreError as exc:
            notify = self._fail(operation, exc)
            self.save()
            notify()
            return SyncOutcome.FAILED
        self.save()
        notify()
        return SyncOutcome.SYNCED

    async def process(self) -> ProcessReport:
        """Drain the queue once, in order."""
        if self._processing:
            return ProcessReport(remaining=len(self._state.pending), skipped="already processing")
        if not self.connectivity.is_online():
            return ProcessReport(remaining=len(self._state.pending), skipped="offline")
        if self._state.auth_required:
            return ProcessReport(remaining=len(self._state.pending), skipped="auth required")
        if not self._state.pending:
            return ProcessReport()

        self._processing = True
        notifications: list[Callable[[], None]] = []
        try:
            return await self._drain(notifications)
        finally:
            self._processing = False
            self.save()
            for notify in notifications:
                notify()

    async def _drain(self, notifications: list[Callable[[], None]]) -> ProcessReport:
        batch = list(self._state.pending)
        logger.info("Processing %d queued sync operations", len(batch))

        remaining: list[SyncOperation] = []
        attempted = synced = retried = failed = 0
        stopped: str | None = None
        for operation in batch:
            if not self._is_pending(operation):
                continue
            if stopped is None and not self.connectivity.is_online():
                stopped = "offline"
                logger.info("Connection lost; stopping sync pass")
            if stopped is not None:
                remaining.append(operation)
                continue

            if operation.retries > 0:
                await self._sleep(self.backoff_delay(operation.retries))

            attempted += 1
            try:
                notifications.append(await self._attempt(operation))
            except TransientError as exc:
                operation.retries += 1
                operation.last_error = str(exc)
                if operation.retries >= self.max_retries:
                    notifications.append(self._fail(operation, exc))
                    failed += 1
                else:
                    logger.warning(
                        "Retry %d/%d failed for operation %s: %s",
                        operation.retries,
                        self.max_retries,
                        operation.operation_id,
                        exc,
                    )
                    remaining.append(operation)
                    retried += 1
            except AuthError as exc:
                operation.last_error = str(exc)
                self._state.auth_required = True
                stopped = "auth required"
                logger.warning("Remote store requires re-authentication; holding queued operations: %s", exc)
                remaining.append(operation)
            except RemoteStoreError as exc:
                notifications.append(self._fail(operation, exc))
                failed += 1
            else:
                synced += 1

        # Operations enqueued while this pass was awaiting stay behind the batch;
        # batch operations superseded meanwhile are dropped.
        in_batch = {id(operation) for operation in batch}
        arrived = [operation for operation in self._state.pending if id(operation) not in in_batch]
        self._state.pending = [operation for operation in remaining if self._is_pending(operation)] + arrived
        report = ProcessReport(
            attempted=attempted,
            synced=synced,
            retried=retried,
            failed=failed,
            remaining=len(self._state.pending),
            stopped=stopped,
        )
        logger.info(
            "Sync pass done: %d synced, %d to retry, %d failed, %d pending",
            report.synced,
            report.retried,
            report.failed,
            report.remaining,
        )
        return report
