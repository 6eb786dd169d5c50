"""
Rebuild a location hierarchy from a flat, paired-column CSV.

The header lists one ``(<Level> Id, <Level>)`` pair per hierarchy level,
root first, e.g. ``Country Id, Country, Province Id, Province``. Every
data row is one root-to-leaf path. Blank id cells mean the location is
new: an id is minted once per (parent name, name) key and reused by every
row that shares the key.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from core.exceptions import CSVValidationError
from schemas.location import Location, LocationProperties, LocationTag, location_key
from schemas.organization import Organization, OrganizationLocation

logger = logging.getLogger(__name__)

ID_SUFFIX = "id"


@dataclass
class HierarchyResult:
    """Output of one transform run"""
    locations: List[Location] = field(default_factory=list)
    new_locations: List[Location] = field(default_factory=list)
    team_locations: List[Location] = field(default_factory=list)
    organizations: List[Organization] = field(default_factory=list)
    organization_locations: List[OrganizationLocation] = field(default_factory=list)
    location_ids: Dict[str, str] = field(default_factory=dict)


def _normalize(value: str) -> str:
    return " ".join(value.split()).lower()


def _dedupe_by_id(locations: Sequence[Location]) -> List[Location]:
    seen = {}
    for location in locations:
        seen.setdefault(location.id, location)
    return list(seen.values())


class LocationHierarchyTransformer:
    """
    Transform location CSV rows into Location chains.

    Args:
        location_tags: Destination tags keyed by name
        team_level: Level name whose locations get a generated team ("" disables teams)
        geo_levels: Optional level name -> geographic level override
        id_factory: Source of new identifiers
    """

    def __init__(
        self,
        location_tags: Mapping[str, LocationTag],
        team_level: str = "",
        geo_levels: Optional[Mapping[str, int]] = None,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4())
    ):
        self.location_tags = location_tags
        self.team_level = team_level.strip()
        self.geo_levels = dict(geo_levels or {})
        self.id_factory = id_factory
        self._ids: Dict[str, str] = {}

    def validate_headers(self, headers: Sequence[str]):
        """
        Reject a malformed header before any row is read.

        Raises:
            CSVValidationError: On odd/short headers, unknown tags or mismatched id columns
        """
        headers = [h.strip() for h in headers]

        if len(headers) % 2 != 0 or len(headers) < 4:
            raise CSVValidationError(
                "CSV format not valid - expected an even number of at least 4 columns",
                context={"column_count": len(headers)}
            )

        for position in range(0, len(headers), 2):
            level_id, level = headers[position], headers[position + 1]

            if level not in self.location_tags:
                raise CSVValidationError(
                    f"Location tag {level} does not exist. Import location tags and continue.",
                    context={"columns": [level_id, level]}
                )

            normalized_id = _normalize(level_id)
            if not normalized_id.endswith(ID_SUFFIX) or \
                    normalized_id[:-len(ID_SUFFIX)].strip() != _normalize(level):
                raise CSVValidationError(
                    f"Incorrect format for columns ({level_id} and {level}). Columns must be named in "
                    "the order of location levels with the id column preceding, "
                    "e.g. Country Id, Country, Province Id, Province",
                    context={"columns": [level_id, level]}
                )

    def is_team_level(self, level: str) -> bool:
        return bool(self.team_level) and level.strip().lower() == self.team_level.lower()

    def process_row(self, headers: Sequence[str], cells: Sequence[str]) -> List[Location]:
        """
        Build the root-to-leaf Location chain for one row.

        Each location's parent is the location before it in the same
        row; the root has none. A level with a blank name ends the chain.
        """
        headers = [h.strip() for h in headers]
        cells = [str(c).strip() for c in cells] + [""] * (len(headers) - len(cells))

        chain: List[Location] = []
        parent_name = ""
        parent_id: Optional[str] = None

        for position in range(0, len(headers), 2):
            level = headers[position + 1]
            location_id, name = cells[position], cells[position + 1]
            if not name:
                break

            key = location_key(parent_name, name)
            is_new = not location_id
            if is_new:
                location_id = self._ids.get(key)
                if location_id is None:
                    location_id = self.id_factory()
                    self._ids[key] = location_id

            has_team = self.is_team_level(level)
            if has_team:
                self._ids[key] = location_id

            chain.append(Location(
                id=location_id,
                location_tags=[self.location_tags[level]],
                properties=LocationProperties(
                    parent_id=parent_id,
                    name=name,
                    geographic_level=self.geo_levels.get(level, position // 2)
                ),
                is_new=is_new,
                has_team=has_team,
                unique_name=key
            ))

            parent_name, parent_id = name, location_id

        return chain

    def transform(self, headers: Sequence[str], rows: Sequence[Sequence[str]]) -> HierarchyResult:
        """Validate the header, then process every row"""
        self.validate_headers(headers)

        result = HierarchyResult()
        for row in rows:
            result.locations.extend(self.process_row(headers, row))

        result.new_locations = _dedupe_by_id([loc for loc in result.locations if loc.is_new])
        result.team_locations = _dedupe_by_id([loc for loc in result.locations if loc.has_team])

        for location in result.team_locations:
            organization, organization_location = self.create_team(location)
            result.organizations.append(organization)
            result.organization_locations.append(organization_location)

        result.location_ids = dict(self._ids)

        logger.info(
            f"Transformed {len(rows)} row(s): {len(result.new_locations)} new location(s), "
            f"{len(result.organizations)} team(s)"
        )
        return result

    def create_team(self, location: Location):
        organization = Organization(
            identifier=self.id_factory(),
            name=f"Team {location.name}"
        )
        organization_location = OrganizationLocation(
            organization_id=organization.identifier,
            location_id=location.id
        )
        return organization, organization_location
