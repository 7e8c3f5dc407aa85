"""
Bounded-concurrency batch runner.

Runs one async task per item in consecutive batches of at most
``concurrency_limit`` items. A batch must fully settle before the next one
starts. A failing task is logged and counted but never stops its siblings
or later batches.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[str], None]
# task_fn(item, report) where report(msg) emits "[k/N] name: msg"
TaskFn = Callable[[Any, ProgressCallback], Awaitable[None]]


def partition_batches(items: Sequence[T], size: int) -> list[list[T]]:
    """Split ``items`` into consecutive chunks of at most ``size``."""
    if size < 1:
        raise ValueError(f"batch size must be at least 1, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def default_item_name(item: Any) -> str:
    name = getattr(item, "name", None)
    return str(name) if name else str(item)


@dataclass
class BatchRunResult:
    """Outcome of one batched run."""
    total_items: int = 0
    total_batches: int = 0
    success_count: int = 0
    failed_count: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed_count == 0

    def to_dict(self) -> dict:
        return {
            "total_items": self.total_items,
            "total_batches": self.total_batches,
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "errors": self.errors,
        }


class BatchScheduler:
    """
    Runs per-item async tasks in ordered, size-limited batches.

    The scheduler also holds a semaphore sized to ``concurrency_limit``, so
    several runs sharing one scheduler still never exceed the limit
    together.
    """

    def __init__(self, concurrency_limit: int):
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be at least 1, got {concurrency_limit}")
        self.concurrency_limit = concurrency_limit
        self._semaphore = asyncio.Semaphore(concurrency_limit)
        self._active = 0

    @property
    def active_count(self) -> int:
        """Number of tasks currently running."""
        return self._active

    async def run(
        self,
        items: Sequence[Any],
        task_fn: TaskFn,
        on_batch_progress: Optional[ProgressCallback] = None,
        on_item_progress: Optional[ProgressCallback] = None,
        name_of: Callable[[Any], str] = default_item_name,
        batch_label: str = "batch",
    ) -> BatchRunResult:
        """
        Run ``task_fn`` over ``items`` batch by batch.

        Args:
            items: Items to process, in order
            task_fn: ``async task_fn(item, report)``; ``report(msg)`` forwards
                fine-grained status to ``on_item_progress``
            on_batch_progress: Receives "Syncing batch i/N: a, b, c" per batch
            on_item_progress: Receives "[k/N] name: msg" from tasks
            name_of: How to display an item
            batch_label: Word(s) used for a batch in progress text
        """
        items = list(items)
        batches = partition_batches(items, self.concurrency_limit)
        result = BatchRunResult(total_items=len(items), total_batches=len(batches))
        if not batches:
            return result

        total = len(items)
        offset = 0
        for batch_num, batch in enumerate(batches, start=1):
            names = ", ".join(name_of(item) for item in batch)
            logger.info("[SYNC-BATCH] %s %s/%s: %s", batch_label, batch_num, len(batches), names)
            if on_batch_progress:
                on_batch_progress(f"Syncing {batch_label} {batch_num}/{len(batches)}: {names}")

            outcomes = await asyncio.gather(*(
                self._run_one(item, offset + idx + 1, total, task_fn, on_item_progress, name_of)
                for idx, item in enumerate(batch)
            ))
            for item, error in zip(batch, outcomes):
                if error is None:
                    result.success_count += 1
                else:
                    result.failed_count += 1
                    result.errors.append(f"{name_of(item)}: {error}")
            offset += len(batch)

        logger.info("[SYNC-BATCH] Finished %s items: %s succeeded, %s failed",
                    result.total_items, result.success_count, result.failed_count)
        return result

    async def _run_one(
        self,
        item: Any,
        position: int,
        total: int,
        task_fn: TaskFn,
        on_item_progress: Optional[ProgressCallback],
        name_of: Callable[[Any], str],
    ) -> Optional[str]:
        """Run one task. Returns None on success, the error text on failure."""
        name = name_of(item)
        prefix = f"[{position}/{total}] {name}"

        def report(message: str) -> None:
            if on_item_progress:
                on_item_progress(f"{prefix}: {message}")

        async with self._semaphore:
            self._active += 1
            try:
                outcome = task_fn(item, report)
                if inspect.isawaitable(outcome):
                    await outcome
                return None
            except Exception as e:
                logger.error("[SYNC-BATCH] %s failed: %s", prefix, e, exc_info=True)
                return str(e) or type(e).__name__
            finally:
                self._active -= 1


async def run_batched(
    items: Sequence[Any],
    concurrency_limit: int,
    task_fn: TaskFn,
    on_batch_progress: Optional[ProgressCallback] = None,
    on_item_progress: Optional[ProgressCallback] = None,
    name_of: Callable[[Any], str] = default_item_name,
    batch_label: str = "batch",
) -> BatchRunResult:
    """Run ``items`` through a fresh BatchScheduler; see BatchScheduler.run."""
    scheduler = BatchScheduler(concurrency_limit)
    return await scheduler.run(
        items,
        task_fn,
        on_batch_progress=on_batch_progress,
        on_item_progress=on_item_progress,
        name_of=name_of,
        batch_label=batch_label,
    )
