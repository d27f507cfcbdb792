"""
Guest pass quota management.
Resolves monthly limits and blocking per community, unit and (legacy) user.
"""

from .models import (
    INHERIT,
    BlockReason,
    CommunityQuotaDefaults,
    EligibilityResult,
    GuestPass,
    Inherit,
    QuotaConfig,
    UnitQuotaSettings,
    UserQuotaSettings,
)
from .manager import QuotaManager
from .reports import QuotaReports

__all__ = [
    "INHERIT",
    "BlockReason",
    "CommunityQuotaDefaults",
    "EligibilityResult",
    "GuestPass",
    "Inherit",
    "QuotaConfig",
    "QuotaManager",
    "QuotaReports",
    "UnitQuotaSettings",
    "UserQuotaSettings",
]
