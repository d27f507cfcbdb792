"""
Error taxonomy for the guest pass subsystem.

Business outcomes (blocked, limit reached, unknown resident) are returned as
structured results by eligibility checks and raised by issuance so callers can
tell "can't" apart from "transient failure" (RemoteUnavailable).
"""

from typing import Any, Dict, Optional


class GuestPassError(Exception):
    """Base exception for all guest pass errors."""

    code = "GUEST_PASS_ERROR"

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None):
        self.message = message or self.__class__.__doc__ or self.code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON responses."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(GuestPassError):
    """Requested record does not exist."""

    code = "NOT_FOUND"


class ResidentNotFound(NotFoundError):
    """Resident not found in the system."""

    code = "RESIDENT_NOT_FOUND"


class NotInCommunity(GuestPassError):
    """Resident does not belong to this community."""

    code = "NOT_IN_COMMUNITY"


class PassBlocked(GuestPassError):
    """Resident is blocked from generating guest passes."""

    code = "BLOCKED"

    def __init__(self, sub_reason: str, message: str = "", details: Optional[Dict[str, Any]] = None):
        self.sub_reason = sub_reason
        details = dict(details or {})
        details.setdefault("sub_reason", sub_reason)
        super().__init__(message, details)


class LimitReached(GuestPassError):
    """Resident has reached their monthly limit."""

    code = "LIMIT_REACHED"


class InvalidInput(GuestPassError):
    """Invalid limit or duration value."""

    code = "INVALID_INPUT"


class RemoteUnavailable(GuestPassError):
    """Remote document store query or write failed."""

    code = "REMOTE_UNAVAILABLE"


class CacheCorrupt(GuestPassError):
    """Malformed cache entry."""

    code = "CACHE_CORRUPT"
