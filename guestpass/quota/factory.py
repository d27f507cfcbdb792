"""
Factory for creating guest pass quota components.
"""

from datetime import datetime
from typing import Callable, List, Optional

from guestpass.app_data import AppDataStore
from guestpass.remote import DocumentStore
from .manager import QuotaManager
from .models import QuotaConfig
from .reports import QuotaReports
from .routes import create_quota_routes


def create_quota_module(
    document_store: DocumentStore,
    app_data: AppDataStore,
    default_monthly_limit: int = 100,
    default_validity_hours: int = 24,
    family_roles: Optional[List[str]] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> dict:
    """
    Create quota management module.

    Args:
        document_store: Remote store for passes and settings
        app_data: Fetch orchestrator for resident membership
        default_monthly_limit: Limit for communities without settings
        default_validity_hours: Pass validity for communities without settings
        family_roles: Membership roles blocked by the family-only switch
        clock: Returns the current UTC datetime

    Returns:
        Dictionary with:
        - manager: QuotaManager instance
        - reports: QuotaReports instance
        - config: QuotaConfig instance
        - blueprint: Flask blueprint with the guest pass API
    """
    config = QuotaConfig(
        default_monthly_limit=default_monthly_limit,
        default_validity_hours=default_validity_hours,
        family_roles=family_roles or ["family"],
    )

    manager = QuotaManager(
        document_store=document_store,
        app_data=app_data,
        config=config,
        clock=clock,
    )
    reports = QuotaReports(document_store, app_data, manager)

    return {
        "manager": manager,
        "reports": reports,
        "config": config,
        "blueprint": create_quota_routes(manager, reports),
    }
