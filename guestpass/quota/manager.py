"""
Quota manager for guest pass issuance.

Resolves per-unit limits and blocking against community defaults, counts
this month's passes with a live range query and performs the issuance write.
"""

import logging
import re
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from guestpass.app_data import AppDataStore, Membership, Resident
from guestpass.errors import (
    InvalidInput,
    LimitReached,
    NotFoundError,
    NotInCommunity,
    PassBlocked,
    RemoteUnavailable,
    ResidentNotFound,
)
from guestpass.remote import DELETE_FIELD, SERVER_TIMESTAMP, DocumentStore, where

from .models import (
    PASS_FIELDS,
    BlockReason,
    CommunityQuotaDefaults,
    EligibilityResult,
    GuestPass,
    QuotaConfig,
    UnitQuotaSettings,
    UserQuotaSettings,
    parse_limit,
)
from .policy import resolve_block, resolve_limit, start_of_month

logger = logging.getLogger(__name__)

PASS_ID_PATTERN = re.compile(r"^GP-[A-Z0-9]+-[A-Z0-9]+$")
_BASE36 = string.digits + string.ascii_lowercase

BLOCK_MESSAGES = {
    "global": "Guest passes are blocked for all residents of this community",
    "family": "Guest passes are blocked for family members in this community",
    "unit": "Guest passes are blocked for this unit",
    "user": "Resident is blocked from generating guest passes",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def settings_doc_id(key: str) -> str:
    """Document id for a unit or user key (slashes would split the path)."""
    return key.strip().replace("/", "_")


class QuotaManager:
    """
    Decides guest pass eligibility and writes passes and settings.

    Limit precedence: unit override -> legacy user override -> community
    default. Blocking: block-all -> family-only (family roles) -> unit ->
    legacy user; any of them blocks.

    The count-then-write in create_pass is not atomic. Two concurrent calls
    for the same resident can both pass the limit check.
    """

    def __init__(
        self,
        document_store: DocumentStore,
        app_data: AppDataStore,
        config: QuotaConfig,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize QuotaManager.

        Args:
            document_store: Remote store for passes and settings documents
            app_data: Fetch orchestrator used to resolve resident membership
            config: Fallback defaults for communities without settings
            clock: Returns the current UTC datetime
        """
        self.document_store = document_store
        self.app_data = app_data
        self.config = config
        self._clock = clock or _utcnow

    def now(self) -> datetime:
        return self._clock()

    # =====================
    # Document paths
    # =====================

    @staticmethod
    def community_settings_path(community_id: str) -> str:
        return f"communities/{community_id}/settings/guestPasses"

    @staticmethod
    def unit_settings_path(community_id: str, unit: str) -> str:
        return f"communities/{community_id}/unitSettings/{settings_doc_id(unit)}"

    @staticmethod
    def user_settings_path(community_id: str, user_id: str) -> str:
        return f"communities/{community_id}/userSettings/{settings_doc_id(user_id)}"

    @staticmethod
    def passes_collection(community_id: str) -> str:
        return f"communities/{community_id}/guestPasses"

    @staticmethod
    def usage_path(community_id: str, user_id: str) -> str:
        return f"communities/{community_id}/usage/{settings_doc_id(user_id)}"

    # =====================
    # Settings reads
    # =====================

    async def get_community_defaults(
        self,
        community_id: str,
        create_if_missing: bool = False,
    ) -> CommunityQuotaDefaults:
        """
        Community defaults, falling back to the configured values.

        With create_if_missing the fallback document is written so later
        merge updates land on a complete settings document.
        """
        path = self.community_settings_path(community_id)
        doc = await self.document_store.get_document(path)
        if doc is not None:
            return CommunityQuotaDefaults.from_document(community_id, doc.data, self.config)

        defaults = CommunityQuotaDefaults.fallback(community_id, self.config)
        if not create_if_missing:
            return defaults

        logger.info(f"Creating default guest pass settings for community {community_id}")
        payload = defaults.to_document()
        payload.update({"createdAt": SERVER_TIMESTAMP, "updatedAt": SERVER_TIMESTAMP})
        await self.document_store.set_document(path, payload, merge=True)
        return defaults

    async def get_unit_settings(self, community_id: str, unit: str) -> UnitQuotaSettings:
        doc = await self.document_store.get_document(self.unit_settings_path(community_id, unit))
        return UnitQuotaSettings.from_document(community_id, unit, doc.data if doc else None)

    async def get_user_settings(self, community_id: str, user_id: str) -> UserQuotaSettings:
        doc = await self.document_store.get_document(self.user_settings_path(community_id, user_id))
        return UserQuotaSettings.from_document(community_id, user_id, doc.data if doc else None)

    async def count_passes_this_month(self, community_id: str, user_id: str) -> int:
        """Authoritative monthly usage: passes created since the start of the month."""
        docs = await self.document_store.query(
            self.passes_collection(community_id),
            filters=[
                where("userId", "==", user_id),
                where("createdAt", ">=", start_of_month(self._clock())),
            ],
        )
        return len(docs)

    # =====================
    # Eligibility and issuance
    # =====================

    async def check_eligibility(self, community_id: str, user_id: str) -> EligibilityResult:
        """
        Check whether a resident can issue a guest pass.

        Unknown residents and non-members come back as structured results.
        RemoteUnavailable propagates.
        """
        logger.info(f"Eligibility check: community={community_id}, user={user_id}")
        try:
            result, _ = await self._evaluate(community_id, user_id)
        except ResidentNotFound as e:
            return EligibilityResult(can_issue=False, reason="not_found", user_id=user_id, message=e.message)
        except NotInCommunity as e:
            return EligibilityResult(can_issue=False, reason="not_in_community", user_id=user_id, message=e.message)

        if not result.can_issue:
            logger.info(f"User {user_id} is NOT eligible: {result.reason}")
        return result

    async def create_pass(self, community_id: str, payload: Dict[str, Any]) -> GuestPass:
        """
        Issue a guest pass after re-running blocking and limit checks.

        Args:
            community_id: Community id
            payload: Must carry userId; userName and any extra fields are optional

        Raises:
            InvalidInput, ResidentNotFound, NotInCommunity, PassBlocked,
            LimitReached, RemoteUnavailable
        """
        user_id = payload.get("userId") if isinstance(payload, dict) else None
        if not community_id or not user_id or not isinstance(user_id, str):
            raise InvalidInput("Community ID and User ID are required")

        result, resident = await self._evaluate(community_id, user_id)

        if result.blocked_by is not None:
            raise PassBlocked(
                result.blocked_by.value,
                result.message or BLOCK_MESSAGES[result.blocked_by.value],
                details={"blocked_reason": result.blocked_reason, "unit": result.unit},
            )
        if not result.can_issue:
            raise LimitReached(
                "Resident has reached their monthly limit",
                details={
                    "effective_limit": result.effective_limit,
                    "used_this_month": result.used_this_month,
                },
            )

        defaults = await self.get_community_defaults(community_id)
        now = self._clock()
        guest_pass = GuestPass(
            id=self.generate_pass_id(),
            community_id=community_id,
            user_id=user_id,
            user_name=str(payload.get("userName") or resident.display_name),
            created_at=now,
            valid_from=now,
            valid_until=now + timedelta(hours=defaults.validity_duration_hours),
            unit=result.unit,
            extra={k: v for k, v in payload.items() if k not in PASS_FIELDS},
        )

        doc = guest_pass.to_document()
        doc["createdAt"] = SERVER_TIMESTAMP
        await self.document_store.set_document(
            f"{self.passes_collection(community_id)}/{guest_pass.id}", doc
        )
        logger.info(f"Created guest pass {guest_pass.id} for user {user_id} in community {community_id}")

        await self._bump_usage_counter(community_id, user_id, result.used_this_month + 1)
        return guest_pass

    async def get_pass(self, community_id: str, pass_id: str) -> Optional[GuestPass]:
        doc = await self.document_store.get_document(f"{self.passes_collection(community_id)}/{pass_id}")
        if doc is None:
            return None
        return GuestPass.from_document(community_id, doc.id, doc.data)

    async def update_pass_sent_status(self, community_id: str, pass_id: str, sent: bool = True) -> GuestPass:
        """Mark a pass as sent (or unsent). The only mutation a pass allows."""
        if not self.is_valid_pass_id(pass_id):
            raise InvalidInput(f"Invalid pass ID: {pass_id}")

        path = f"{self.passes_collection(community_id)}/{pass_id}"
        if await self.document_store.get_document(path) is None:
            raise NotFoundError(f"Guest pass {pass_id} not found")

        await self.document_store.update_document(path, {
            "sentStatus": bool(sent),
            "sentAt": SERVER_TIMESTAMP if sent else None,
            "updatedAt": SERVER_TIMESTAMP,
        })
        updated = await self.get_pass(community_id, pass_id)
        logger.info(f"Pass {pass_id} marked as {'sent' if sent else 'not sent'}")
        return updated

    # =====================
    # Unit settings mutations
    # =====================

    async def set_unit_limit(self, community_id: str, unit: str, limit: Any) -> int:
        value = self._validate_limit(limit)
        unit = self._validate_key(unit, "Unit")
        await self.document_store.set_document(
            self.unit_settings_path(community_id, unit),
            {"unit": unit, "monthlyLimit": value, "updatedAt": SERVER_TIMESTAMP},
            merge=True,
        )
        logger.info(f"Set unit {unit} limit to {value} in community {community_id}")
        return value

    async def clear_unit_limit(self, community_id: str, unit: str) -> None:
        """Remove the unit's override so it inherits the community default again."""
        unit = self._validate_key(unit, "Unit")
        await self.document_store.set_document(
            self.unit_settings_path(community_id, unit),
            {"unit": unit, "monthlyLimit": DELETE_FIELD, "updatedAt": SERVER_TIMESTAMP},
            merge=True,
        )
        logger.info(f"Cleared unit {unit} limit in community {community_id}")

    async def set_unit_blocked(self, community_id: str, unit: str, reason: Optional[str] = None) -> None:
        unit = self._validate_key(unit, "Unit")
        await self.document_store.set_document(
            self.unit_settings_path(community_id, unit),
            {
                "unit": unit,
                "blocked": True,
                "blockedReason": (reason or "").strip() or self.config.default_block_reason,
                "blockedAt": SERVER_TIMESTAMP,
                "updatedAt": SERVER_TIMESTAMP,
            },
            merge=True,
        )
        logger.info(f"Blocked unit {unit} in community {community_id}")

    async def clear_unit_blocked(self, community_id: str, unit: str) -> None:
        unit = self._validate_key(unit, "Unit")
        await self.document_store.set_document(
            self.unit_settings_path(community_id, unit),
            {
                "unit": unit,
                "blocked": False,
                "blockedReason": DELETE_FIELD,
                "blockedAt": DELETE_FIELD,
                "updatedAt": SERVER_TIMESTAMP,
            },
            merge=True,
        )
        logger.info(f"Unblocked unit {unit} in community {community_id}")

    # =====================
    # Legacy user settings mutations
    # =====================

    async def set_user_limit(self, community_id: str, user_id: str, limit: Any) -> int:
        value = self._validate_limit(limit)
        user_id = self._validate_key(user_id, "User")
        await self.document_store.set_document(
            self.user_settings_path(community_id, user_id),
            {"monthlyLimit": value, "updatedAt": SERVER_TIMESTAMP},
            merge=True,
        )
        return value

    async def clear_user_limit(self, community_id: str, user_id: str) -> None:
        user_id = self._validate_key(user_id, "User")
        await self.document_store.set_document(
            self.user_settings_path(community_id, user_id),
            {"monthlyLimit": DELETE_FIELD, "updatedAt": SERVER_TIMESTAMP},
            merge=True,
        )

    async def set_user_blocked(self, community_id: str, user_id: str, reason: Optional[str] = None) -> None:
        user_id = self._validate_key(user_id, "User")
        await self.document_store.set_document(
            self.user_settings_path(community_id, user_id),
            {
                "blocked": True,
                "blockedReason": (reason or "").strip() or self.config.default_block_reason,
                "updatedAt": SERVER_TIMESTAMP,
            },
            merge=True,
        )

    async def clear_user_blocked(self, community_id: str, user_id: str) -> None:
        user_id = self._validate_key(user_id, "User")
        await self.document_store.set_document(
            self.user_settings_path(community_id, user_id),
            {"blocked": False, "blockedReason": DELETE_FIELD, "updatedAt": SERVER_TIMESTAMP},
            merge=True,
        )

    # =====================
    # Community settings mutations
    # =====================

    async def set_community_default_limit(self, community_id: str, limit: Any) -> dict:
        """
        Change the community default and strip legacy user limits equal to
        the old default, so those users follow the new one.

        Returns:
            Dict with old_limit, new_limit and cleaned (number of user
            settings stripped; None when the cleanup failed)
        """
        new_limit = self._validate_limit(limit)
        defaults = await self.get_community_defaults(community_id, create_if_missing=True)
        old_limit = defaults.monthly_limit

        await self.document_store.set_document(
            self.community_settings_path(community_id),
            {"monthlyLimit": new_limit, "updatedAt": SERVER_TIMESTAMP},
            merge=True,
        )
        logger.info(f"Community {community_id} default limit: {old_limit} -> {new_limit}")

        cleaned: Optional[int] = 0
        if old_limit != new_limit:
            try:
                cleaned = await self.remove_user_limits_equal_to(community_id, old_limit)
            except RemoteUnavailable as e:
                logger.warning(f"Legacy user limit cleanup failed for community {community_id}: {e.message}")
                cleaned = None

        return {"old_limit": old_limit, "new_limit": new_limit, "cleaned": cleaned}

    async def remove_user_limits_equal_to(self, community_id: str, limit: int) -> int:
        """Delete legacy user monthlyLimit fields equal to limit (string values included)."""
        docs = await self.document_store.query(f"communities/{community_id}/userSettings")
        updates: List[Tuple[str, dict]] = []
        for doc in docs:
            if "monthlyLimit" in doc.data and parse_limit(doc.data["monthlyLimit"]) == limit:
                updates.append((doc.path, {"monthlyLimit": DELETE_FIELD, "updatedAt": SERVER_TIMESTAMP}))

        if updates:
            await self.document_store.batch_update(updates)
        logger.info(f"Removed {len(updates)} legacy user limits equal to {limit} in community {community_id}")
        return len(updates)

    async def toggle_block_all_users(self, community_id: str, blocked: bool) -> None:
        await self._set_community_flag(community_id, "blockAllUsers", blocked)

    async def toggle_block_family_members_only(self, community_id: str, blocked: bool) -> None:
        await self._set_community_flag(community_id, "blockFamilyMembersOnly", blocked)

    async def update_validity_duration(self, community_id: str, hours: Any) -> int:
        if isinstance(hours, bool) or not isinstance(hours, (int, str)):
            raise InvalidInput(f"Invalid validity duration: {hours!r}")
        value = parse_limit(hours)
        if not isinstance(value, int) or value <= 0:
            raise InvalidInput(f"Validity duration must be a positive number of hours: {hours!r}")

        await self.document_store.set_document(
            self.community_settings_path(community_id),
            {"validityDurationHours": value, "updatedAt": SERVER_TIMESTAMP},
            merge=True,
        )
        logger.info(f"Community {community_id} pass validity set to {value} hours")
        return value

    async def reset_monthly_usage_for_community(self, community_id: str) -> int:
        """
        Zero the denormalized usage counters.

        Passes are never deleted; the live monthly count is unaffected.

        Returns:
            Number of usage counters reset
        """
        docs = await self.document_store.query(f"communities/{community_id}/usage")
        updates = [
            (doc.path, {"count": 0, "resetAt": SERVER_TIMESTAMP, "updatedAt": SERVER_TIMESTAMP})
            for doc in docs
        ]
        updates.append((
            self.community_settings_path(community_id),
            {"usageResetAt": SERVER_TIMESTAMP, "updatedAt": SERVER_TIMESTAMP},
        ))
        await self.document_store.batch_update(updates)
        logger.info(f"Reset {len(docs)} usage counters in community {community_id}")
        return len(docs)

    # =====================
    # Pass ids
    # =====================

    def generate_pass_id(self) -> str:
        """GP-<base36 ms timestamp>-<5 base36 random chars>, upper-cased."""
        millis = int(self._clock().timestamp() * 1000)
        suffix = "".join(secrets.choice(_BASE36) for _ in range(5))
        return f"GP-{to_base36(millis)}-{suffix}".upper()

    @staticmethod
    def is_valid_pass_id(pass_id: Any) -> bool:
        return isinstance(pass_id, str) and bool(PASS_ID_PATTERN.match(pass_id))

    # =====================
    # Private helper methods
    # =====================

    async def _evaluate(self, community_id: str, user_id: str) -> Tuple[EligibilityResult, Resident]:
        resident, membership = await self._resolve_resident(community_id, user_id)
        unit = membership.unit or None

        defaults = await self.get_community_defaults(community_id)
        unit_settings = await self.get_unit_settings(community_id, unit) if unit else None
        user_settings = await self.get_user_settings(community_id, user_id)

        blocked_by = resolve_block(
            defaults, membership.role, self.config.family_roles, unit_settings, user_settings
        )
        resolution = resolve_limit(defaults, unit_settings, user_settings)
        used = await self.count_passes_this_month(community_id, user_id)
        remaining = max(0, resolution.limit - used)

        result = EligibilityResult(
            can_issue=False,
            reason="blocked",
            user_id=user_id,
            user_name=resident.display_name,
            unit=unit,
            effective_limit=resolution.limit,
            limit_source=resolution.source,
            used_this_month=used,
            remaining=remaining,
        )

        if blocked_by is not None:
            result.blocked_by = blocked_by
            if blocked_by is BlockReason.UNIT:
                result.blocked_reason = unit_settings.blocked_reason
            elif blocked_by is BlockReason.USER:
                result.blocked_reason = user_settings.blocked_reason
            result.message = BLOCK_MESSAGES[blocked_by.value]
        elif used < resolution.limit:
            result.can_issue = True
            result.reason = "eligible"
            result.message = "Resident can generate guest passes"
        else:
            result.reason = "limit_reached"
            result.message = "Resident has reached their monthly limit"

        return result, resident

    async def _resolve_resident(self, community_id: str, user_id: str) -> Tuple[Resident, Membership]:
        residents = await self.app_data.fetch_residents(community_id=community_id)
        resident = next((r for r in residents if r.id == user_id), None)

        if resident is None:
            doc = await self.document_store.get_document(f"users/{user_id}")
            if doc is None:
                raise ResidentNotFound(f"Resident {user_id} not found", {"user_id": user_id})
            resident = Resident.from_document(doc.id, doc.data)

        membership = resident.membership_for(community_id)
        if membership is None:
            raise NotInCommunity(
                f"Resident {user_id} does not belong to community {community_id}",
                {"user_id": user_id, "community_id": community_id},
            )
        return resident, membership

    async def _bump_usage_counter(self, community_id: str, user_id: str, count: int) -> None:
        month = self._clock().strftime("%Y-%m")
        try:
            await self.document_store.set_document(
                self.usage_path(community_id, user_id),
                {"userId": user_id, "month": month, "count": count, "updatedAt": SERVER_TIMESTAMP},
                merge=True,
            )
        except RemoteUnavailable as e:
            logger.warning(f"Could not update usage counter for {user_id}: {e.message}")

    async def _set_community_flag(self, community_id: str, field_name: str, value: Any) -> None:
        if not isinstance(value, bool):
            raise InvalidInput(f"{field_name} must be true or false")
        await self.document_store.set_document(
            self.community_settings_path(community_id),
            {field_name: value, "updatedAt": SERVER_TIMESTAMP},
            merge=True,
        )
        logger.info(f"Community {community_id} {field_name} set to {value}")

    @staticmethod
    def _validate_limit(limit: Any) -> int:
        """Accept non-negative integers (or digit strings); raise InvalidInput otherwise."""
        if isinstance(limit, bool) or not isinstance(limit, (int, str)):
            raise InvalidInput(f"Invalid monthly limit: {limit!r}")
        if isinstance(limit, int):
            if limit < 0:
                raise InvalidInput(f"Monthly limit cannot be negative: {limit}")
            return limit
        text = limit.strip()
        if not text.isdigit():
            raise InvalidInput(f"Invalid monthly limit: {limit!r}")
        return int(text)

    @staticmethod
    def _validate_key(key: Any, label: str) -> str:
        if not isinstance(key, str) or not key.strip():
            raise InvalidInput(f"{label} is required")
        return key.strip()
