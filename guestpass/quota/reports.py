"""
Read-only guest pass statistics and listings for the dashboard.

Every report degrades to defaults or empty results when the remote store is
unavailable so screens keep rendering.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from guestpass.app_data import AppDataStore
from guestpass.errors import RemoteUnavailable
from guestpass.remote import DocumentStore, where

from .manager import QuotaManager
from .models import CommunityQuotaDefaults, GuestPass, UnitQuotaSettings
from .policy import is_family_role, start_of_month

logger = logging.getLogger(__name__)

ANALYTICS_PERIODS = ("week", "month", "year")


class QuotaReports:
    """Statistics, pass listings and analytics per community."""

    def __init__(self, document_store: DocumentStore, app_data: AppDataStore, manager: QuotaManager):
        self.document_store = document_store
        self.app_data = app_data
        self.manager = manager

    def _now(self) -> datetime:
        return self.manager.now()

    async def get_stats(self, community_id: str) -> dict:
        """
        Monthly statistics for a community.

        Returns dict with:
        - total_passes_this_month
        - passes_sent: passes sent this month
        - active_residents: members not blocked from issuing passes
        - default_limit
        - sent_percentage
        """
        month_start = start_of_month(self._now())
        collection = self.manager.passes_collection(community_id)

        total = 0
        sent = 0
        active = 0
        default_limit = self.manager.config.default_monthly_limit

        try:
            total = len(await self.document_store.query(
                collection, filters=[where("createdAt", ">=", month_start)]
            ))
        except RemoteUnavailable as e:
            logger.warning(f"Stats: could not count passes for {community_id}: {e.message}")

        try:
            sent = len(await self.document_store.query(
                collection,
                filters=[where("sentStatus", "==", True), where("sentAt", ">=", month_start)],
            ))
        except RemoteUnavailable as e:
            logger.warning(f"Stats: could not count sent passes for {community_id}: {e.message}")

        try:
            defaults = await self.manager.get_community_defaults(community_id)
            default_limit = defaults.monthly_limit
            active = 0 if defaults.block_all_users else await self._count_active_residents(community_id, defaults)
        except RemoteUnavailable as e:
            logger.warning(f"Stats: could not load settings or residents for {community_id}: {e.message}")

        return {
            "total_passes_this_month": total,
            "passes_sent": sent,
            "active_residents": active,
            "default_limit": default_limit,
            "sent_percentage": (sent / total) * 100 if total > 0 else 0,
        }

    async def list_passes(
        self,
        community_id: str,
        sent_status: Optional[bool] = None,
        user_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[GuestPass]:
        """Passes of a community, newest first."""
        filters = []
        if sent_status is not None:
            filters.append(where("sentStatus", "==", sent_status))
        if user_id:
            filters.append(where("userId", "==", user_id))

        try:
            docs = await self.document_store.query(
                self.manager.passes_collection(community_id),
                filters=filters,
                order_by="createdAt",
                descending=True,
                limit=limit,
            )
        except RemoteUnavailable as e:
            logger.error(f"Error getting passes for {community_id}: {e.message}")
            return []

        logger.info(f"Found {len(docs)} passes for community {community_id}")
        return [GuestPass.from_document(community_id, doc.id, doc.data) for doc in docs]

    async def get_analytics(self, community_id: str, period: str = "month") -> dict:
        """Daily and per-resident pass totals for week, month or year."""
        now = self._now()
        if period == "week":
            start = now - timedelta(days=7)
        elif period == "year":
            start = now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
        else:
            period = "month"
            start = start_of_month(now)

        try:
            docs = await self.document_store.query(
                self.manager.passes_collection(community_id),
                filters=[where("createdAt", ">=", start)],
                order_by="createdAt",
            )
        except RemoteUnavailable as e:
            logger.error(f"Error getting analytics for {community_id}: {e.message}")
            return {"period": period, "daily_data": [], "user_data": [], "total_passes": 0, "sent_passes": 0}

        daily = {}
        users = {}
        sent_total = 0
        for doc in docs:
            guest_pass = GuestPass.from_document(community_id, doc.id, doc.data)
            day = guest_pass.created_at.date().isoformat() if guest_pass.created_at else "unknown"

            day_row = daily.setdefault(day, {"date": day, "total": 0, "sent": 0})
            user_row = users.setdefault(guest_pass.user_id, {
                "user_id": guest_pass.user_id,
                "user_name": guest_pass.user_name,
                "total": 0,
                "sent": 0,
            })
            day_row["total"] += 1
            user_row["total"] += 1
            if guest_pass.sent_status:
                day_row["sent"] += 1
                user_row["sent"] += 1
                sent_total += 1

        return {
            "period": period,
            "daily_data": list(daily.values()),
            "user_data": list(users.values()),
            "total_passes": len(docs),
            "sent_passes": sent_total,
        }

    async def list_custom_units(self, community_id: str) -> List[UnitQuotaSettings]:
        """Units whose limit differs from the default or that are blocked."""
        try:
            defaults = await self.manager.get_community_defaults(community_id)
            docs = await self.document_store.query(f"communities/{community_id}/unitSettings")
        except RemoteUnavailable as e:
            logger.error(f"Error listing unit settings for {community_id}: {e.message}")
            return []

        custom = []
        for doc in docs:
            settings = UnitQuotaSettings.from_document(community_id, doc.id, doc.data)
            differs = settings.has_custom_limit and settings.monthly_limit != defaults.monthly_limit
            if differs or settings.blocked:
                custom.append(settings)
        return sorted(custom, key=lambda s: s.unit)

    async def _count_active_residents(self, community_id: str, defaults: CommunityQuotaDefaults) -> int:
        residents = await self.app_data.fetch_residents(community_id=community_id)

        blocked_units = {
            doc.data.get("unit") or doc.id
            for doc in await self.document_store.query(
                f"communities/{community_id}/unitSettings", filters=[where("blocked", "==", True)]
            )
        }
        blocked_users = {
            doc.id
            for doc in await self.document_store.query(
                f"communities/{community_id}/userSettings", filters=[where("blocked", "==", True)]
            )
        }

        family_roles = self.manager.config.family_roles
        active = 0
        for resident in residents:
            membership = resident.membership_for(community_id)
            if membership is None or resident.id in blocked_users:
                continue
            if membership.unit and membership.unit in blocked_units:
                continue
            if defaults.block_family_members_only and is_family_role(membership.role, family_roles):
                continue
            active += 1
        return active
