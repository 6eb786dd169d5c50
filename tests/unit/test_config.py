"""
Unit tests for settings and run state
"""

import pytest

from core.exceptions import StateOwnershipError
from migration.stages import MigrationStage, STAGE_SEQUENCE, first_stage, next_stage
from migration.state import RunStore
from schemas.organization import Organization


class TestSettings:
    """Test derived settings"""

    def test_geo_levels(self, settings):
        settings = settings.copy(update={"LOCATION_HIERARCHY": "Country:0, Province : 1,bogus"})

        assert settings.geo_levels() == {"Country": 0, "Province": 1}

    def test_geo_levels_empty(self, settings):
        assert settings.geo_levels() == {}

    def test_millisecond_settings(self, settings):
        settings = settings.copy(update={"REQUEST_INTERVAL": 10, "REQUEST_TIMEOUT": 30000})

        assert settings.request_interval_seconds == 0.01
        assert settings.request_timeout_seconds == 30.0


def test_stage_sequence():
    assert first_stage() == MigrationStage.LOCATIONS
    assert [s.value for s in STAGE_SEQUENCE] == [
        "LOCATIONS", "ORGANIZATIONS", "ORGANIZATION_LOCATIONS", "USERS", "USER_GROUPS"
    ]
    assert next_stage(MigrationStage.ORGANIZATION_LOCATIONS) == MigrationStage.USERS
    assert next_stage(MigrationStage.USER_GROUPS) is None


class TestRunStore:
    """Test owner-gated writes and read-only views"""

    def test_only_owner_writes(self):
        store = RunStore()
        store.claim(MigrationStage.LOCATIONS)

        store.record_locations(MigrationStage.LOCATIONS, [], {"/Kenya": "loc-1"})

        with pytest.raises(StateOwnershipError):
            store.record_user_id(MigrationStage.USERS, "alice", "u-1")

    def test_views_are_read_only(self):
        store = RunStore()
        store.claim(MigrationStage.LOCATIONS)
        store.record_locations(MigrationStage.LOCATIONS, [], {"/Kenya": "loc-1"})
        store.record_teams(MigrationStage.LOCATIONS, [Organization(identifier="o-1", name="Team Kenya")], [])

        ids = store.location_ids
        with pytest.raises(TypeError):
            ids["/Uganda"] = "loc-2"

        assert isinstance(store.organizations, tuple)
        assert store.location_ids == {"/Kenya": "loc-1"}

    def test_user_ids_case_insensitive(self):
        store = RunStore()
        store.claim(MigrationStage.USERS)

        store.record_user_id(MigrationStage.USERS, "Alice", "u-1")

        assert store.user_id("ALICE") == "u-1"
        assert store.resolved_user_count == 1
