"""
Pydantic schemas for destination locations and location tags
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Union, Dict, Any


def location_key(parent_name: str, name: str) -> str:
    """Key identifying a location by its immediate parent's name and its own name"""
    return f"{(parent_name or '').strip()}/{(name or '').strip()}"


class LocationTag(BaseModel):
    """Location tag as returned by the destination tag endpoint"""
    id: Optional[Union[int, str]] = None
    name: str = Field(..., min_length=1)
    active: bool = True
    description: Optional[str] = None

    @validator("name")
    def clean_name(cls, v):
        return v.strip()

    class Config:
        frozen = True


class LocationProperties(BaseModel):
    """Properties block of a location feature"""
    parent_id: Optional[str] = Field(None, alias="parentId")
    name: str
    geographic_level: int = Field(0, ge=0, alias="geographicLevel")
    status: str = "Active"
    version: int = 0

    class Config:
        frozen = True
        populate_by_name = True


class Location(BaseModel):
    """
    Location feature posted to the destination.

    ``is_new``, ``has_team`` and ``unique_name`` are local bookkeeping and
    are never serialized into the request payload.
    """
    type: str = "Feature"
    id: str = Field(..., min_length=1)
    location_tags: List[LocationTag] = Field(default_factory=list, alias="locationTags")
    properties: LocationProperties
    is_new: bool = Field(False, exclude=True)
    has_team: bool = Field(False, exclude=True)
    unique_name: Optional[str] = Field(None, exclude=True)

    class Config:
        frozen = True
        populate_by_name = True

    @property
    def parent_id(self) -> Optional[str]:
        return self.properties.parent_id

    @property
    def name(self) -> str:
        return self.properties.name

    def to_payload(self) -> Dict[str, Any]:
        payload = self.dict(by_alias=True)
        # Tags the destination does not know about carry no id
        if any(tag.get("id") is None for tag in payload["locationTags"]):
            payload.pop("locationTags")
        return payload
