"""
Pydantic schemas for organizations (teams) and their location assignments
"""

from pydantic import BaseModel, Field
from typing import Dict, Any, List, Optional


TEAM_TYPE_CODING = {
    "coding": [
        {
            "system": "http://terminology.hl7.org/CodeSystem/organization-type",
            "code": "team",
            "display": "Team"
        }
    ]
}


class Organization(BaseModel):
    """Team generated for a team-bearing location"""
    identifier: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    active: bool = True
    type: Dict[str, List[Dict[str, str]]] = Field(default_factory=lambda: TEAM_TYPE_CODING)

    class Config:
        frozen = True

    def to_payload(self) -> Dict[str, Any]:
        return self.dict()

    def to_row(self) -> Dict[str, Any]:
        """Flat row for the organizations CSV artifact"""
        return {"identifier": self.identifier, "name": self.name, "active": self.active}


class OrganizationLocation(BaseModel):
    """Assignment of an organization to a location (jurisdiction)"""
    organization_id: str = Field(..., min_length=1, alias="organization")
    location_id: str = Field(..., min_length=1, alias="jurisdiction")
    plan: str = ""
    from_date: Optional[str] = Field(None, alias="fromDate")
    to_date: Optional[str] = Field(None, alias="toDate")

    class Config:
        frozen = True
        populate_by_name = True

    def to_payload(self) -> Dict[str, Any]:
        return self.dict(by_alias=True, exclude_none=True)

    def to_row(self) -> Dict[str, Any]:
        return {"organization": self.organization_id, "jurisdiction": self.location_id}
