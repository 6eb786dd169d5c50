"""
Pydantic schemas for migrated records and the status API.

Schemas:
    location: Location features and location tags
    organization: Organizations (teams) and organization-location assignments
    user: User accounts read from the users CSV
    api: Status API response models

Usage:
    from schemas.location import Location, LocationProperties, LocationTag
    from schemas.organization import Organization, OrganizationLocation
    from schemas.user import UserRecord

Serialization:
    Each record exposes ``to_payload()`` which produces the JSON body
    expected by the destination endpoint (camelCase aliases, local-only
    bookkeeping fields excluded).
"""

__all__ = [
    "Location",
    "LocationProperties",
    "LocationTag",
    "Organization",
    "OrganizationLocation",
    "UserRecord",
    "HealthResponse",
    "ProgressResponse",
    "StageProgress",
]
