"""
Group users by location and link them to organization locations
"""

import logging
from typing import Dict, List, Mapping

from schemas.user import UserRecord

logger = logging.getLogger(__name__)


def group_users(users: List[UserRecord]) -> Dict[str, List[UserRecord]]:
    """Group users by their (parent location, location) key, keeping file order"""
    groups: Dict[str, List[UserRecord]] = {}
    for user in users:
        groups.setdefault(user.location_key, []).append(user)
    return groups


def attach_organization_locations(
    groups: Mapping[str, List[UserRecord]],
    location_ids: Mapping[str, str]
) -> List[UserRecord]:
    """
    Resolve each group's location id now that the hierarchy has been built.

    Users whose location is unknown are kept without a link.
    """
    linked = []
    for key, users in groups.items():
        location_id = location_ids.get(key)
        if location_id is None:
            logger.warning(f"No location found for {len(users)} user(s) at '{key}'")
        for user in users:
            linked.append(user.copy(update={"organization_location_id": location_id}))
    return linked
