"""
Data models for the guest pass quota system.
"""

from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union


class Inherit:
    """Option value meaning "use the community default"."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "INHERIT"

    def __bool__(self) -> bool:
        return False


INHERIT = Inherit()

Limit = Union[int, Inherit]


class BlockReason(Enum):
    """Which blocking tier forbids issuance."""
    GLOBAL = "global"    # Community blocks every resident
    FAMILY = "family"    # Community blocks family-role members
    UNIT = "unit"        # The resident's unit is blocked
    USER = "user"        # Legacy per-user block


def parse_limit(value: Any) -> Limit:
    """
    Normalize a stored monthlyLimit.

    Legacy documents sometimes hold the limit as a string; anything that is
    not a non-negative integer is treated as absent.
    """
    if value is None or isinstance(value, bool):
        return INHERIT
    if isinstance(value, int):
        return value if value >= 0 else INHERIT
    if isinstance(value, float) and value.is_integer() and value >= 0:
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
    return INHERIT


@dataclass
class QuotaSettings:
    """Overrides stored for a unit or (legacy) a single user."""
    community_id: str
    monthly_limit: Limit = INHERIT
    blocked: bool = False
    blocked_reason: Optional[str] = None
    updated_at: Optional[datetime] = None

    @property
    def has_custom_limit(self) -> bool:
        return not isinstance(self.monthly_limit, Inherit)

    def _base_dict(self) -> dict:
        return {
            "community_id": self.community_id,
            "monthly_limit": self.monthly_limit if self.has_custom_limit else None,
            "inherits_default": not self.has_custom_limit,
            "blocked": self.blocked,
            "blocked_reason": self.blocked_reason,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class UnitQuotaSettings(QuotaSettings):
    """Settings keyed by (community, unit)."""
    unit: str = ""

    @classmethod
    def from_document(cls, community_id: str, unit: str, data: Optional[dict]) -> "UnitQuotaSettings":
        data = data or {}
        return cls(
            community_id=community_id,
            unit=str(data.get("unit") or unit),
            monthly_limit=parse_limit(data.get("monthlyLimit")),
            blocked=bool(data.get("blocked", False)),
            blocked_reason=data.get("blockedReason"),
            updated_at=data.get("updatedAt") if isinstance(data.get("updatedAt"), datetime) else None,
        )

    def to_dict(self) -> dict:
        result = self._base_dict()
        result["unit"] = self.unit
        return result


@dataclass
class UserQuotaSettings(QuotaSettings):
    """Legacy settings keyed by (community, user)."""
    user_id: str = ""

    @classmethod
    def from_document(cls, community_id: str, user_id: str, data: Optional[dict]) -> "UserQuotaSettings":
        data = data or {}
        return cls(
            community_id=community_id,
            user_id=user_id,
            monthly_limit=parse_limit(data.get("monthlyLimit")),
            blocked=bool(data.get("blocked", False)),
            blocked_reason=data.get("blockedReason"),
            updated_at=data.get("updatedAt") if isinstance(data.get("updatedAt"), datetime) else None,
        )

    def to_dict(self) -> dict:
        result = self._base_dict()
        result["user_id"] = self.user_id
        return result


@dataclass
class CommunityQuotaDefaults:
    """Community-wide defaults and blocking switches."""
    community_id: str
    monthly_limit: int = 100
    block_all_users: bool = False
    block_family_members_only: bool = False
    validity_duration_hours: int = 24
    usage_reset_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, community_id: str, data: dict, fallback: "QuotaConfig") -> "CommunityQuotaDefaults":
        limit = parse_limit(data.get("monthlyLimit"))
        hours = data.get("validityDurationHours")
        reset_at = data.get("usageResetAt")
        return cls(
            community_id=community_id,
            monthly_limit=fallback.default_monthly_limit if isinstance(limit, Inherit) else limit,
            block_all_users=bool(data.get("blockAllUsers", False)),
            block_family_members_only=bool(data.get("blockFamilyMembersOnly", False)),
            validity_duration_hours=hours if isinstance(hours, int) and hours > 0 else fallback.default_validity_hours,
            usage_reset_at=reset_at if isinstance(reset_at, datetime) else None,
        )

    @classmethod
    def fallback(cls, community_id: str, config: "QuotaConfig") -> "CommunityQuotaDefaults":
        return cls(
            community_id=community_id,
            monthly_limit=config.default_monthly_limit,
            validity_duration_hours=config.default_validity_hours,
        )

    def to_document(self) -> dict:
        return {
            "monthlyLimit": self.monthly_limit,
            "blockAllUsers": self.block_all_users,
            "blockFamilyMembersOnly": self.block_family_members_only,
            "validityDurationHours": self.validity_duration_hours,
        }

    def to_dict(self) -> dict:
        return {
            "community_id": self.community_id,
            "monthly_limit": self.monthly_limit,
            "block_all_users": self.block_all_users,
            "block_family_members_only": self.block_family_members_only,
            "validity_duration_hours": self.validity_duration_hours,
            "usage_reset_at": self.usage_reset_at.isoformat() if self.usage_reset_at else None,
        }


# Pass fields owned by the quota engine; anything else in a payload is kept as extra data
PASS_FIELDS = (
    "id", "communityId", "userId", "userName", "unit", "createdAt",
    "sentStatus", "sentAt", "validFrom", "validUntil", "updatedAt",
)


@dataclass
class GuestPass:
    """An issued guest pass. Only sent_status and sent_at change after creation."""
    id: str
    community_id: str
    user_id: str
    user_name: str
    created_at: Optional[datetime] = None
    sent_status: bool = False
    sent_at: Optional[datetime] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    unit: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_document(self) -> dict:
        doc = dict(self.extra)
        doc.update({
            "id": self.id,
            "communityId": self.community_id,
            "userId": self.user_id,
            "userName": self.user_name,
            "unit": self.unit,
            "createdAt": self.created_at,
            "sentStatus": self.sent_status,
            "sentAt": self.sent_at,
            "validFrom": self.valid_from,
            "validUntil": self.valid_until,
        })
        return doc

    @classmethod
    def from_document(cls, community_id: str, doc_id: str, data: dict) -> "GuestPass":
        def as_datetime(value):
            return value if isinstance(value, datetime) else None

        return cls(
            id=str(data.get("id") or doc_id),
            community_id=str(data.get("communityId") or community_id),
            user_id=str(data.get("userId") or ""),
            user_name=str(data.get("userName") or ""),
            created_at=as_datetime(data.get("createdAt")),
            sent_status=bool(data.get("sentStatus", False)),
            sent_at=as_datetime(data.get("sentAt")),
            valid_from=as_datetime(data.get("validFrom")),
            valid_until=as_datetime(data.get("validUntil")),
            unit=data.get("unit"),
            extra={k: v for k, v in data.items() if k not in PASS_FIELDS},
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        def iso(value):
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "community_id": self.community_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "unit": self.unit,
            "created_at": iso(self.created_at),
            "sent_status": self.sent_status,
            "sent_at": iso(self.sent_at),
            "valid_from": iso(self.valid_from),
            "valid_until": iso(self.valid_until),
            "extra": self.extra,
        }


@dataclass
class EligibilityResult:
    """Result of an eligibility check."""
    can_issue: bool
    reason: str  # "eligible", "limit_reached", "blocked", "not_found", "not_in_community"
    user_id: str = ""
    user_name: Optional[str] = None
    unit: Optional[str] = None
    effective_limit: Optional[int] = None
    limit_source: Optional[str] = None  # "unit", "user", "community"
    used_this_month: int = 0
    remaining: int = 0
    blocked_by: Optional[BlockReason] = None
    blocked_reason: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "can_issue": self.can_issue,
            "reason": self.reason,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "unit": self.unit,
            "effective_limit": self.effective_limit,
            "limit_source": self.limit_source,
            "used_this_month": self.used_this_month,
            "remaining": self.remaining,
            "blocked_by": self.blocked_by.value if self.blocked_by else None,
            "blocked_reason": self.blocked_reason,
            "message": self.message,
        }


@dataclass
class QuotaConfig:
    """Configuration for quota fallbacks."""
    default_monthly_limit: int = 100
    default_validity_hours: int = 24
    family_roles: List[str] = field(default_factory=lambda: ["family"])
    default_block_reason: str = "Blocked by admin"

    @classmethod
    def from_dict(cls, data: dict) -> "QuotaConfig":
        """Create QuotaConfig from dictionary."""
        return cls(
            default_monthly_limit=data.get("monthly_limit", 100),
            default_validity_hours=data.get("validity_duration_hours", 24),
            family_roles=data.get("family_roles", ["family"]),
            default_block_reason=data.get("default_block_reason", "Blocked by admin"),
        )
