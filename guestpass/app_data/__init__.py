"""
Entity fetch orchestration for residents, units and communities.
"""

from .models import Community, LoadState, Membership, Resident, Unit
from .store import AppDataStore

__all__ = [
    "AppDataStore",
    "Community",
    "LoadState",
    "Membership",
    "Resident",
    "Unit",
]
