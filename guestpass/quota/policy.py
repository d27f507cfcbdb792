"""
Pure limit and blocking resolution.

Kept free of I/O so the precedence rules can be tested directly.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from .models import BlockReason, CommunityQuotaDefaults, UnitQuotaSettings, UserQuotaSettings


@dataclass
class LimitResolution:
    limit: int
    source: str  # "unit", "user", "community"


def resolve_limit(
    defaults: CommunityQuotaDefaults,
    unit_settings: Optional[UnitQuotaSettings] = None,
    user_settings: Optional[UserQuotaSettings] = None,
) -> LimitResolution:
    """
    Effective monthly limit, first match wins:
    unit override, then legacy user override, then the community default.
    """
    if unit_settings is not None and unit_settings.has_custom_limit:
        return LimitResolution(unit_settings.monthly_limit, "unit")
    if user_settings is not None and user_settings.has_custom_limit:
        return LimitResolution(user_settings.monthly_limit, "user")
    return LimitResolution(defaults.monthly_limit, "community")


def is_family_role(role: Optional[str], family_roles: Iterable[str]) -> bool:
    if not role:
        return False
    return role.strip().lower() in {r.lower() for r in family_roles}


def resolve_block(
    defaults: CommunityQuotaDefaults,
    role: Optional[str],
    family_roles: Iterable[str],
    unit_settings: Optional[UnitQuotaSettings] = None,
    user_settings: Optional[UserQuotaSettings] = None,
) -> Optional[BlockReason]:
    """First blocking tier that applies, or None when issuance is allowed."""
    if defaults.block_all_users:
        return BlockReason.GLOBAL
    if defaults.block_family_members_only and is_family_role(role, family_roles):
        return BlockReason.FAMILY
    if unit_settings is not None and unit_settings.blocked:
        return BlockReason.UNIT
    if user_settings is not None and user_settings.blocked:
        return BlockReason.USER
    return None


def start_of_month(now: datetime) -> datetime:
    """First instant of the month containing now (same tzinfo)."""
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
