"""
Completion tracking for migration stages.

Each stage gets one outstanding-unit counter per run. Units are batches
(push mode) or pages (poll mode). Every resolved unit, successful or not,
decrements the counter; the single decrement that takes it to zero
publishes STAGE_COMPLETE. No one ever waits on a counter.
"""

import logging
import threading
from typing import Dict, Optional, Set

from core.exceptions import StageOrderError
from migration.bus import EventBus, Topic
from migration.stages import MigrationStage

logger = logging.getLogger(__name__)


class CompletionTracker:
    """Per-stage outstanding-count bookkeeping over the event bus"""

    def __init__(self, bus: EventBus):
        self.bus = bus
        self._counters: Dict[MigrationStage, int] = {}
        self._skipped: Set[MigrationStage] = set()
        self._lock = threading.Lock()

    def start(self, stage: MigrationStage, expected_units: int):
        """
        Open the counter for ``stage``.

        Args:
            stage: Stage about to issue work
            expected_units: Number of batches/pages that will be issued

        Raises:
            ValueError: If expected_units is negative
            StageOrderError: If the stage counter was already started this run
        """
        if expected_units < 0:
            raise ValueError(f"expected_units must be >= 0, got {expected_units}")

        with self._lock:
            if stage in self._counters:
                raise StageOrderError(
                    f"Counter for {stage.value} already started",
                    context={"stage": stage.value, "outstanding": self._counters[stage]}
                )
            self._counters[stage] = expected_units

        if expected_units == 0:
            self._fire(stage)
            return

        logger.info(f"TASK STARTED: {stage.label} - submitting {expected_units} request(s)")
        self.bus.publish(Topic.STAGE_COUNT, {"stage": stage, "outstanding": expected_units})

    def skip(self, stage: MigrationStage, reason: str):
        """Resolve a stage that has nothing to do"""
        with self._lock:
            if stage in self._counters:
                raise StageOrderError(
                    f"Counter for {stage.value} already started",
                    context={"stage": stage.value}
                )
            self._counters[stage] = 0
            self._skipped.add(stage)

        logger.info(f"TASK IGNORED: {stage.label} not migrated ({reason})")
        self.bus.publish(Topic.STAGE_COMPLETE, stage)

    def complete(self, stage: MigrationStage) -> bool:
        """
        Resolve one unit of work for ``stage``.

        Returns:
            True if this call completed the stage
        """
        with self._lock:
            if stage not in self._counters:
                raise StageOrderError(
                    f"Counter for {stage.value} was never started",
                    context={"stage": stage.value}
                )
            if self._counters[stage] == 0:
                logger.warning(f"Ignoring extra completion for finished stage {stage.value}")
                return False
            self._counters[stage] -= 1
            remaining = self._counters[stage]

        self.bus.publish(Topic.STAGE_COUNT, {"stage": stage, "outstanding": remaining})
        if remaining == 0:
            self._fire(stage)
            return True
        return False

    def _fire(self, stage: MigrationStage):
        logger.info(f"TASK COMPLETED: {stage.label} migrated")
        self.bus.publish(Topic.STAGE_COMPLETE, stage)

    def outstanding(self, stage: MigrationStage) -> Optional[int]:
        with self._lock:
            return self._counters.get(stage)

    def was_skipped(self, stage: MigrationStage) -> bool:
        return stage in self._skipped

    def snapshot(self) -> Dict[MigrationStage, int]:
        with self._lock:
            return dict(self._counters)
