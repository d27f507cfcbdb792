"""
One-off repairs for guest pass limit data.

- String monthlyLimit values left by older dashboards are coerced to integers.
- Legacy user limits equal to the community default are removed so those
  users follow future default changes.
"""

import logging
from typing import List, Optional, Tuple

from guestpass.remote import DELETE_FIELD, DocumentStore

from .manager import QuotaManager
from .models import INHERIT, parse_limit

logger = logging.getLogger(__name__)


async def fix_string_limits(document_store: DocumentStore, community_id: str, dry_run: bool = False) -> dict:
    """
    Coerce string monthlyLimit values in a community's settings documents.

    Returns:
        Dict with fixed, already_correct, errors and total counts
    """
    result = {"fixed": 0, "already_correct": 0, "errors": 0, "total": 0}
    docs = []

    settings = await document_store.get_document(QuotaManager.community_settings_path(community_id))
    if settings is not None:
        docs.append(settings)
    docs.extend(await document_store.query(f"communities/{community_id}/unitSettings"))
    docs.extend(await document_store.query(f"communities/{community_id}/userSettings"))

    updates: List[Tuple[str, dict]] = []
    for doc in docs:
        value = doc.data.get("monthlyLimit")
        if value is None:
            continue
        result["total"] += 1

        if isinstance(value, int) and not isinstance(value, bool):
            result["already_correct"] += 1
            continue

        numeric = parse_limit(value)
        if numeric is INHERIT:
            logger.error(f"Invalid monthlyLimit at {doc.path}: {value!r}")
            result["errors"] += 1
            continue

        logger.info(f"Fixing {doc.path}: {value!r} -> {numeric}")
        updates.append((doc.path, {"monthlyLimit": numeric}))
        result["fixed"] += 1

    if updates and not dry_run:
        await document_store.batch_update(updates)
    return result


async def remove_default_user_limits(
    document_store: DocumentStore,
    community_id: str,
    default_limit: Optional[int] = None,
    remove_all: bool = False,
    dry_run: bool = False,
) -> dict:
    """
    Remove legacy user limits that merely repeat the community default.

    Args:
        default_limit: Limit to compare against; read from the community
            settings when None
        remove_all: Remove every legacy user limit regardless of value

    Returns:
        Dict with removed, kept and total counts
    """
    if default_limit is None and not remove_all:
        doc = await document_store.get_document(QuotaManager.community_settings_path(community_id))
        parsed = parse_limit(doc.data.get("monthlyLimit")) if doc else INHERIT
        default_limit = None if parsed is INHERIT else parsed
        logger.info(f"Default limit for community {community_id}: {default_limit}")

    result = {"removed": 0, "kept": 0, "total": 0}
    updates: List[Tuple[str, dict]] = []

    for doc in await document_store.query(f"communities/{community_id}/userSettings"):
        if doc.data.get("monthlyLimit") is None:
            continue
        result["total"] += 1
        value = parse_limit(doc.data["monthlyLimit"])

        if remove_all or (default_limit is not None and value == default_limit):
            logger.info(f"Removing limit from user {doc.id}: {doc.data['monthlyLimit']!r}")
            updates.append((doc.path, {"monthlyLimit": DELETE_FIELD}))
            result["removed"] += 1
        else:
            result["kept"] += 1

    if updates and not dry_run:
        await document_store.batch_update(updates)
    return result


async def fix_guest_pass_limits(
    document_store: DocumentStore,
    community_id: str,
    remove_defaults: bool = True,
    remove_all: bool = False,
    dry_run: bool = False,
) -> dict:
    """Run both repairs for one community."""
    fixed = await fix_string_limits(document_store, community_id, dry_run=dry_run)
    removed = None
    if remove_defaults or remove_all:
        removed = await remove_default_user_limits(
            document_store, community_id, remove_all=remove_all, dry_run=dry_run
        )
    return {"community_id": community_id, "string_limits": fixed, "user_limits": removed}
