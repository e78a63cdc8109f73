"""Progress observer contract.

The pipeline calls an observer synchronously, from the consuming thread only,
at phase boundaries and for every item a threaded operation finishes. Phases
always arrive in ProcessPhase order, though HASHING, SAVING_MANIFEST and
EXPORTING are omitted entirely when their options are not set.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from tqdm import tqdm

logger = logging.getLogger(__name__)


class ProcessPhase(str, Enum):
    """Pipeline phases, in execution order."""

    BEGIN = "begin"
    READING_INDEX = "reading_index"
    HASHING = "hashing"
    COLLECTING = "collecting"
    SAVING_MANIFEST = "saving_manifest"
    EXPORTING = "exporting"


class ProgressObserver(ABC):
    """Receives phase and per-item events from the pipeline."""

    @abstractmethod
    def pre_phase(self, phase: ProcessPhase) -> None:
        """Called before a phase begins."""
        pass

    @abstractmethod
    def post_phase(self, phase: ProcessPhase) -> None:
        """Called after a phase has completed."""
        pass

    @abstractmethod
    def process_begin(self, total_count: int) -> None:
        """Called when a threaded operation starts with total_count items."""
        pass

    @abstractmethod
    def process_progress(
        self, total_count: int, completed_count: int, item_index: int, is_skip: bool
    ) -> None:
        """Called when an item finishes.

        Args:
            total_count: Items in this threaded operation
            completed_count: Items finished so far across all workers
            item_index: Sheet row of the finished item; arrives in any order
            is_skip: True if nothing was produced for the item
        """
        pass

    @abstractmethod
    def process_nonfatal_error(self, item_index: int, reason: str) -> None:
        """Called when an item fails without stopping the operation."""
        pass

    @abstractmethod
    def process_complete(self, completed_count: int, errored_count: int) -> None:
        """Called when every worker of the operation has finished."""
        pass


class NoOpObserver(ProgressObserver):
    """Observer for callers that don't need telemetry."""

    def pre_phase(self, phase: ProcessPhase) -> None:
        pass

    def post_phase(self, phase: ProcessPhase) -> None:
        pass

    def process_begin(self, total_count: int) -> None:
        pass

    def process_progress(
        self, total_count: int, completed_count: int, item_index: int, is_skip: bool
    ) -> None:
        pass

    def process_nonfatal_error(self, item_index: int, reason: str) -> None:
        pass

    def process_complete(self, completed_count: int, errored_count: int) -> None:
        pass


class LoggingObserver(ProgressObserver):
    """Writes every event to a logger."""

    def __init__(self, log: Optional[logging.Logger] = None, level: int = logging.INFO):
        self.log = log or logger
        self.level = level

    def pre_phase(self, phase: ProcessPhase) -> None:
        self.log.log(self.level, "Phase %s started", phase.value)

    def post_phase(self, phase: ProcessPhase) -> None:
        self.log.log(self.level, "Phase %s finished", phase.value)

    def process_begin(self, total_count: int) -> None:
        self.log.log(self.level, "Processing %d items", total_count)

    def process_progress(
        self, total_count: int, completed_count: int, item_index: int, is_skip: bool
    ) -> None:
        self.log.log(
            self.level,
            "[%d/%d] item %d %s",
            completed_count,
            total_count,
            item_index,
            "skipped" if is_skip else "done",
        )

    def process_nonfatal_error(self, item_index: int, reason: str) -> None:
        self.log.warning("Item %d failed: %s", item_index, reason)

    def process_complete(self, completed_count: int, errored_count: int) -> None:
        self.log.log(
            self.level, "Processed %d items, %d errors", completed_count, errored_count
        )


class TqdmObserver(ProgressObserver):
    """Renders one tqdm progress bar per threaded phase."""

    DESCRIPTIONS = {
        ProcessPhase.HASHING: "Hashing tracks",
        ProcessPhase.EXPORTING: "Exporting tracks",
    }

    def __init__(self, **tqdm_kwargs):
        self.tqdm_kwargs = tqdm_kwargs
        self._phase: Optional[ProcessPhase] = None
        self._bar: Optional[tqdm] = None
        self.errors = []

    def pre_phase(self, phase: ProcessPhase) -> None:
        self._phase = phase

    def post_phase(self, phase: ProcessPhase) -> None:
        self._close()
        self._phase = None

    def process_begin(self, total_count: int) -> None:
        self._close()
        self._bar = tqdm(
            total=total_count,
            desc=self.DESCRIPTIONS.get(self._phase, "Processing"),
            unit="track",
            **self.tqdm_kwargs,
        )

    def process_progress(
        self, total_count: int, completed_count: int, item_index: int, is_skip: bool
    ) -> None:
        if self._bar is not None:
            self._bar.update(completed_count - self._bar.n)

    def process_nonfatal_error(self, item_index: int, reason: str) -> None:
        self.errors.append((item_index, reason))
        if self._bar is not None:
            self._bar.write(f"  ✗ Track {item_index}: {reason}")

    def process_complete(self, completed_count: int, errored_count: int) -> None:
        if self._bar is not None:
            self._bar.set_postfix(errors=errored_count)
        self._close()

    def _close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None
