"""
Pydantic schema for user accounts read from the users CSV
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, Dict, Any
from schemas.location import location_key


class UserRecord(BaseModel):
    """
    One row of the users CSV.

    ``organization_location_id`` is unknown at parse time: it is filled in
    once the location stage has minted identifiers for new locations.
    """
    parent_location: str = ""
    location: str = ""
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    organization_location_id: Optional[str] = None

    @validator("parent_location", "location", pre=True)
    def clean_location_names(cls, v):
        if v is None:
            return ""
        return str(v).strip()

    @validator("username", "first_name", "last_name", "email", "password", pre=True)
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @property
    def location_key(self) -> str:
        return location_key(self.parent_location, self.location)

    def to_payload(self) -> Dict[str, Any]:
        """Identity-provider user representation"""
        payload: Dict[str, Any] = {
            "username": self.username,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "enabled": True,
        }
        if self.password:
            payload["credentials"] = [
                {"type": "password", "value": self.password, "temporary": False}
            ]
        if self.organization_location_id:
            payload["attributes"] = {"locationId": [self.organization_location_id]}
        return {k: v for k, v in payload.items() if v is not None}
