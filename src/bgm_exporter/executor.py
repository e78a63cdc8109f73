"""Parallel executor: fixed worker pool streaming per-item outcomes.

Work items are split into one contiguous partition per worker. Each worker
reads its items' raw payloads from the archive, hands them to the item
handler, and forwards the handler's ThreadStatus over a single shared
channel. After its partition a worker sends exactly one Complete, so a
consumer knows the run is over once it has seen worker_count Completes.

Within one worker messages follow partition order; across workers they
interleave arbitrarily.
"""

from __future__ import annotations

import logging
import queue
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, TypeVar, Union

from .archive import ArchiveIdentifier, ArchiveStore
from .callbacks import ProgressObserver
from .distribution import split_work
from .errors import ArchiveError, InvalidConfigurationError

logger = logging.getLogger(__name__)

O = TypeVar("O")


@dataclass(frozen=True)
class WorkItem:
    """One selected sheet row and the archive entry it points at."""

    index: int
    identifier: ArchiveIdentifier


@dataclass(frozen=True)
class Continue(Generic[O]):
    """Item processed. A value of None marks a skip (nothing was produced)."""

    index: int
    value: Optional[O] = None


@dataclass(frozen=True)
class Complete:
    """The sending worker has exhausted its partition."""


@dataclass(frozen=True)
class Error:
    """Item failed; the worker carries on with its next item."""

    reason: str
    index: int


ThreadStatus = Union[Continue, Complete, Error]
ItemHandler = Callable[[int, bytes], ThreadStatus]


class ParallelExecutor:
    """Thread pool that runs one static partition of work per worker.

    Example:
        >>> executor = ParallelExecutor(archive, worker_count=4)
        >>> for status in executor.run(work, handler):
        ...     ...
    """

    def __init__(self, archive: ArchiveStore, worker_count: int):
        """
        Args:
            archive: Shared read-only archive store
            worker_count: Number of workers (and partitions) per run, >= 1
        """
        if worker_count < 1:
            raise InvalidConfigurationError(
                f"Worker count must be at least 1, got {worker_count}"
            )
        self.archive = archive
        self.worker_count = worker_count

    def run(self, work: Sequence[WorkItem], handler: ItemHandler) -> "EventStream":
        """Start the workers and return the aggregation channel as an iterator.

        The iterator blocks until the next message is available and never
        ends on its own; stop after worker_count Complete messages.
        """
        partitions = split_work(work, self.worker_count)
        channel: "queue.Queue[ThreadStatus]" = queue.Queue()

        executor = ThreadPoolExecutor(
            max_workers=self.worker_count, thread_name_prefix="bgm-worker"
        )
        for worker_id, partition in enumerate(partitions):
            future = executor.submit(self._worker, worker_id, partition, handler, channel)
            future.add_done_callback(_log_worker_failure)
        # Threads keep running; the pool is released once they finish
        executor.shutdown(wait=False)

        return EventStream(channel, self.worker_count)

    def _worker(
        self,
        worker_id: int,
        partition: List[WorkItem],
        handler: ItemHandler,
        channel: "queue.Queue[ThreadStatus]",
    ) -> None:
        containers: Dict[str, Any] = {}
        logger.debug("Worker %d started with %d items", worker_id, len(partition))

        try:
            for item in partition:
                channel.put(self._process_item(item, handler, containers))
        finally:
            channel.put(Complete())
            logger.debug("Worker %d complete", worker_id)

    def _process_item(
        self, item: WorkItem, handler: ItemHandler, containers: Dict[str, Any]
    ) -> ThreadStatus:
        identifier = item.identifier
        try:
            container = containers.get(identifier.container_name)
            if container is None:
                container = self.archive.resolve_index(identifier)
                containers[identifier.container_name] = container

            data = self.archive.read_raw(identifier, container)
        except ArchiveError as e:
            return Error(str(e), item.index)
        except Exception as e:
            logger.debug("Archive read failed for item %d", item.index, exc_info=True)
            return Error(f"{type(e).__name__}: {e}", item.index)

        try:
            return handler(item.index, data)
        except Exception as e:
            # Any handler failure is confined to its item
            logger.debug("Handler failed for item %d", item.index, exc_info=True)
            return Error(f"{type(e).__name__}: {e}", item.index)


def _log_worker_failure(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error("Worker stopped early", exc_info=exc)


class EventStream:
    """Blocking iterator over a run's aggregation channel."""

    def __init__(self, channel: "queue.Queue[ThreadStatus]", worker_count: int):
        self.channel = channel
        self.worker_count = worker_count

    def __iter__(self) -> "EventStream":
        return self

    def __next__(self) -> ThreadStatus:
        return self.channel.get()

    def pending(self) -> int:
        """Messages sent but not yet received."""
        return self.channel.qsize()


@dataclass
class RunSummary(Generic[O]):
    """Outcome of one consumed run."""

    values: List[O]
    completed: int
    errored: int


def consume(
    stream: EventStream,
    total: int,
    observer: ProgressObserver,
) -> RunSummary:
    """
    Read a run's channel until every worker has reported Complete.

    Every Continue and Error counts as one completed operation and is
    reported to the observer as it arrives. Continue values other than None
    are collected in arrival order.
    """
    values = []
    completed = 0
    errored = 0
    workers_done = 0

    observer.process_begin(total)

    for status in stream:
        if isinstance(status, Complete):
            workers_done += 1
            if workers_done == stream.worker_count:
                break
        elif isinstance(status, Error):
            completed += 1
            errored += 1
            logger.warning("Item %d failed: %s", status.index, status.reason)
            observer.process_nonfatal_error(status.index, status.reason)
            observer.process_progress(total, completed, status.index, False)
        elif isinstance(status, Continue):
            completed += 1
            is_skip = status.value is None
            if not is_skip:
                values.append(status.value)
            observer.process_progress(total, completed, status.index, is_skip)
        else:
            raise TypeError(f"Unexpected message on worker channel: {status!r}")

    observer.process_complete(completed, errored)
    return RunSummary(values=values, completed=completed, errored=errored)

