"""
Run-scoped mutable state shared across stages.

One store per run. Only the stage that currently owns the store may
write; everything handed to later stages is a read-only view.
"""

import logging
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from core.exceptions import StateOwnershipError
from migration.stages import MigrationStage
from schemas.location import Location
from schemas.organization import Organization, OrganizationLocation
from schemas.user import UserRecord

logger = logging.getLogger(__name__)


class RunStore:
    """Location ids, generated teams, users and resolved user ids for one run"""

    def __init__(self):
        self._owner: Optional[MigrationStage] = None
        self._new_locations: List[Location] = []
        self._organizations: List[Organization] = []
        self._organization_locations: List[OrganizationLocation] = []
        self._location_ids: Dict[str, str] = {}
        self._users: List[UserRecord] = []
        self._user_ids: Dict[str, str] = {}  # keyed by lower-cased username

    @property
    def owner(self) -> Optional[MigrationStage]:
        return self._owner

    def claim(self, stage: MigrationStage):
        """Hand write access to ``stage``; the previous owner loses it"""
        self._owner = stage

    def _check_owner(self, stage: MigrationStage):
        if stage != self._owner:
            raise StateOwnershipError(
                f"{stage.value} cannot write run state owned by "
                f"{self._owner.value if self._owner else 'no stage'}",
                context={"writer": stage.value, "owner": self._owner.value if self._owner else None}
            )

    # Writers

    def record_locations(self, stage: MigrationStage, new_locations: List[Location],
                         location_ids: Mapping[str, str]):
        self._check_owner(stage)
        self._new_locations.extend(new_locations)
        self._location_ids.update(location_ids)

    def record_teams(self, stage: MigrationStage, organizations: List[Organization],
                     organization_locations: List[OrganizationLocation]):
        self._check_owner(stage)
        self._organizations.extend(organizations)
        self._organization_locations.extend(organization_locations)

    def record_users(self, stage: MigrationStage, users: List[UserRecord]):
        self._check_owner(stage)
        self._users = list(users)

    def record_user_id(self, stage: MigrationStage, username: str, user_id: str):
        self._check_owner(stage)
        self._user_ids[username.lower()] = user_id

    # Read-only views

    @property
    def new_locations(self) -> Tuple[Location, ...]:
        return tuple(self._new_locations)

    @property
    def organizations(self) -> Tuple[Organization, ...]:
        return tuple(self._organizations)

    @property
    def organization_locations(self) -> Tuple[OrganizationLocation, ...]:
        return tuple(self._organization_locations)

    @property
    def location_ids(self) -> Mapping[str, str]:
        return MappingProxyType(dict(self._location_ids))

    @property
    def users(self) -> Tuple[UserRecord, ...]:
        return tuple(self._users)

    def user_id(self, username: str) -> Optional[str]:
        return self._user_ids.get(username.lower())

    @property
    def resolved_user_count(self) -> int:
        return len(self._user_ids)
