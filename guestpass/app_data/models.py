"""
Entity models mirrored from the remote store.

This module contains Pydantic models for residents, communities and units.
Remote documents use camelCase field names; aliases keep both spellings valid.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LoadState(Enum):
    """Load state of an entity type in the orchestrator."""
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"


class Membership(BaseModel):
    """A resident's membership in one community."""
    model_config = ConfigDict(populate_by_name=True)

    community_id: str = Field(alias="communityId", description="Community the resident belongs to")
    unit: str = Field(default="", description="Unit identifier, unique only within the community")
    role: str = Field(default="owner", description="Role tag such as 'owner', 'family' or 'tenant'")
    community_name: Optional[str] = Field(default=None, alias="communityName")
    community_type: Optional[str] = Field(default=None, alias="communityType")
    community_location: Optional[str] = Field(default=None, alias="communityLocation")

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> Optional["Membership"]:
        """Normalize a stored membership; legacy records use projectId."""
        community_id = raw.get("communityId") or raw.get("projectId")
        if not community_id:
            return None
        return cls(
            community_id=str(community_id),
            unit=str(raw.get("unit") or "").strip(),
            role=str(raw.get("role") or raw.get("roleTag") or "owner"),
        )


class Resident(BaseModel):
    """A resident record owned by the remote store."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="Resident document id")
    display_name: str = Field(default="", alias="displayName")
    email: Optional[str] = Field(default=None)
    mobile: Optional[str] = Field(default=None)
    national_id: Optional[str] = Field(default=None, alias="nationalId")
    memberships: List[Membership] = Field(default_factory=list)
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Resident":
        """Build a Resident from a raw remote document."""
        raw_memberships = data.get("memberships")
        if raw_memberships is None:
            raw_memberships = data.get("projects") or []

        memberships = []
        for raw in raw_memberships if isinstance(raw_memberships, list) else []:
            if isinstance(raw, dict):
                membership = Membership.from_raw(raw)
                if membership is not None:
                    memberships.append(membership)

        created_at = data.get("createdAt")
        return cls(
            id=doc_id,
            display_name=_display_name(data),
            email=_optional_str(data.get("email")),
            mobile=_optional_str(data.get("mobile")),
            national_id=_optional_str(data.get("nationalId")),
            memberships=memberships,
            created_at=created_at if isinstance(created_at, datetime) else None,
        )

    def membership_for(self, community_id: str) -> Optional[Membership]:
        for membership in self.memberships:
            if membership.community_id == community_id:
                return membership
        return None

    def belongs_to(self, community_id: str) -> bool:
        return self.membership_for(community_id) is not None


class Community(BaseModel):
    """A residential community (compound, tower, project)."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = Field(default="")
    type: Optional[str] = Field(default=None)
    location: Optional[str] = Field(default=None)

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Community":
        return cls(
            id=doc_id,
            name=str(data.get("name") or ""),
            type=_optional_str(data.get("type")),
            location=_optional_str(data.get("location")),
        )


class Unit(BaseModel):
    """A unit inside a community."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    community_id: str = Field(alias="communityId")
    unit: str = Field(description="Unit identifier shown to admins")
    building: Optional[str] = Field(default=None)

    @classmethod
    def from_document(cls, community_id: str, doc_id: str, data: Dict[str, Any]) -> "Unit":
        return cls(
            id=doc_id,
            community_id=community_id,
            unit=str(data.get("unit") or data.get("name") or doc_id).strip(),
            building=_optional_str(data.get("building")),
        )


def _display_name(data: Dict[str, Any]) -> str:
    if data.get("displayName"):
        return str(data["displayName"])
    if data.get("fullName"):
        return str(data["fullName"])
    first, last = data.get("firstName"), data.get("lastName")
    if first and last:
        return f"{first} {last}"
    return str(data.get("email") or "")


def _optional_str(value: Any) -> Optional[str]:
    """Stored contact fields are sometimes numbers (e.g. a mobile saved as int)."""
    if value is None:
        return None
    return str(value)
