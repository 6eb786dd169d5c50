"""
Unit tests for stage completion tracking
"""

import threading

import pytest

from core.exceptions import StageOrderError
from migration.bus import Topic
from migration.stages import MigrationStage


class TestCompletionTracker:
    """Test counter bookkeeping and completion events"""

    def test_last_completion_fires_once(self, tracker, completions):
        tracker.start(MigrationStage.LOCATIONS, 3)

        assert tracker.complete(MigrationStage.LOCATIONS) is False
        assert tracker.complete(MigrationStage.LOCATIONS) is False
        assert completions == []

        assert tracker.complete(MigrationStage.LOCATIONS) is True
        assert completions == [MigrationStage.LOCATIONS]
        assert tracker.outstanding(MigrationStage.LOCATIONS) == 0

    def test_zero_units_completes_immediately(self, tracker, completions):
        tracker.start(MigrationStage.USERS, 0)

        assert completions == [MigrationStage.USERS]
        assert tracker.was_skipped(MigrationStage.USERS) is False

    def test_concurrent_completions_fire_exactly_once(self, tracker, completions):
        """Many threads racing on one counter produce a single event"""
        units = 200
        tracker.start(MigrationStage.ORGANIZATIONS, units)
        results = []
        lock = threading.Lock()

        def worker():
            for _ in range(units // 10):
                fired = tracker.complete(MigrationStage.ORGANIZATIONS)
                with lock:
                    results.append(fired)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1
        assert completions == [MigrationStage.ORGANIZATIONS]
        assert tracker.outstanding(MigrationStage.ORGANIZATIONS) == 0

    def test_extra_completion_never_goes_negative(self, tracker, completions):
        tracker.start(MigrationStage.LOCATIONS, 1)
        tracker.complete(MigrationStage.LOCATIONS)

        assert tracker.complete(MigrationStage.LOCATIONS) is False
        assert tracker.outstanding(MigrationStage.LOCATIONS) == 0
        assert completions == [MigrationStage.LOCATIONS]

    def test_second_start_rejected(self, tracker):
        tracker.start(MigrationStage.LOCATIONS, 2)

        with pytest.raises(StageOrderError):
            tracker.start(MigrationStage.LOCATIONS, 2)

    def test_complete_before_start_rejected(self, tracker):
        with pytest.raises(StageOrderError):
            tracker.complete(MigrationStage.USERS)

    def test_negative_units_rejected(self, tracker):
        with pytest.raises(ValueError):
            tracker.start(MigrationStage.LOCATIONS, -1)

    def test_skip(self, tracker, completions):
        tracker.skip(MigrationStage.USER_GROUPS, "nothing to do")

        assert completions == [MigrationStage.USER_GROUPS]
        assert tracker.was_skipped(MigrationStage.USER_GROUPS) is True
        assert tracker.snapshot() == {MigrationStage.USER_GROUPS: 0}

    def test_count_updates_published(self, bus, tracker):
        counts = []
        bus.subscribe(Topic.STAGE_COUNT, counts.append)

        tracker.start(MigrationStage.LOCATIONS, 2)
        tracker.complete(MigrationStage.LOCATIONS)

        assert [c["outstanding"] for c in counts] == [2, 1]
