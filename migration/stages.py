"""
Migration stages in their fixed dependency order
"""

import enum
from typing import Optional


class MigrationStage(str, enum.Enum):
    """Ordered migration stages; declaration order is execution order"""
    LOCATIONS = "LOCATIONS"
    ORGANIZATIONS = "ORGANIZATIONS"
    ORGANIZATION_LOCATIONS = "ORGANIZATION_LOCATIONS"
    USERS = "USERS"
    USER_GROUPS = "USER_GROUPS"

    @property
    def label(self) -> str:
        return self.value.lower()


STAGE_SEQUENCE = tuple(MigrationStage)


def first_stage() -> MigrationStage:
    return STAGE_SEQUENCE[0]


def next_stage(stage: MigrationStage) -> Optional[MigrationStage]:
    """Stage that follows ``stage``, or None after the last one"""
    index = STAGE_SEQUENCE.index(stage)
    if index + 1 < len(STAGE_SEQUENCE):
        return STAGE_SEQUENCE[index + 1]
    return None
