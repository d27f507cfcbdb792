"""
Guest pass API routes for the mobile app and dashboard.
"""
from flask import Blueprint, jsonify, request

from guestpass.errors import (
    GuestPassError,
    InvalidInput,
    LimitReached,
    NotFoundError,
    NotInCommunity,
    PassBlocked,
    RemoteUnavailable,
)
from .manager import QuotaManager
from .reports import ANALYTICS_PERIODS, QuotaReports

# Checked in order; subclasses before their bases
STATUS_CODES = (
    (InvalidInput, 400),
    (PassBlocked, 403),
    (NotFoundError, 404),
    (NotInCommunity, 404),
    (LimitReached, 409),
    (RemoteUnavailable, 503),
)


def status_for(error: GuestPassError) -> int:
    for error_type, status in STATUS_CODES:
        if isinstance(error, error_type):
            return status
    return 500


def _envelope(success: bool, data=None, message: str = "", error=None):
    return jsonify({"success": success, "data": data, "message": message, "error": error})


def create_quota_routes(quota_manager: QuotaManager, reports: QuotaReports) -> Blueprint:
    """Create guest pass routes."""
    bp = Blueprint('guest_passes', __name__)

    @bp.errorhandler(GuestPassError)
    def handle_guest_pass_error(error: GuestPassError):
        return _envelope(False, message=error.message, error=error.to_dict()), status_for(error)

    @bp.route("/api/communities/<community_id>/residents/<user_id>/eligibility", methods=["GET"])
    async def check_eligibility(community_id, user_id):
        """Check if a resident can generate guest passes."""
        result = await quota_manager.check_eligibility(community_id, user_id)
        return _envelope(result.can_issue, data=result.to_dict(), message=result.message or "")

    @bp.route("/api/communities/<community_id>/residents/<user_id>/status", methods=["GET"])
    async def resident_status(community_id, user_id):
        """Current guest pass status and limits of a resident."""
        result = await quota_manager.check_eligibility(community_id, user_id)
        data = {
            "can_issue": result.can_issue,
            "reason": result.reason,
            "user": {
                "id": result.user_id,
                "name": result.user_name,
                "unit": result.unit,
                "used_this_month": result.used_this_month,
                "monthly_limit": result.effective_limit,
                "remaining": result.remaining,
            },
        }
        return _envelope(True, data=data, message="Resident status retrieved successfully")

    @bp.route("/api/communities/<community_id>/guest-passes", methods=["POST"])
    async def create_guest_pass(community_id):
        """Create a guest pass after re-checking eligibility."""
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            raise InvalidInput("Request body must be a JSON object")

        guest_pass = await quota_manager.create_pass(community_id, payload)
        return _envelope(True, data=guest_pass.to_dict(), message="Guest pass created successfully"), 201

    @bp.route("/api/communities/<community_id>/guest-passes/<pass_id>/sent", methods=["POST"])
    async def mark_pass_sent(community_id, pass_id):
        """Mark a guest pass as sent (or not sent with {"sent": false})."""
        payload = request.get_json(silent=True) or {}
        sent = payload.get("sent", True)
        if not isinstance(sent, bool):
            raise InvalidInput("sent must be true or false")

        guest_pass = await quota_manager.update_pass_sent_status(community_id, pass_id, sent)
        return _envelope(True, data=guest_pass.to_dict(), message="Pass marked as sent successfully")

    @bp.route("/api/communities/<community_id>/guest-passes", methods=["GET"])
    async def list_guest_passes(community_id):
        """List passes, optionally filtered by sent status and user."""
        sent_arg = request.args.get("sent")
        sent_status = None
        if sent_arg is not None:
            if sent_arg.lower() not in ("true", "false"):
                raise InvalidInput("sent must be true or false")
            sent_status = sent_arg.lower() == "true"

        limit = request.args.get("limit", type=int)
        if limit is not None and limit <= 0:
            raise InvalidInput("limit must be positive")

        passes = await reports.list_passes(
            community_id,
            sent_status=sent_status,
            user_id=request.args.get("userId"),
            limit=limit,
        )
        return _envelope(True, data=[p.to_dict() for p in passes], message=f"{len(passes)} passes")

    @bp.route("/api/communities/<community_id>/stats", methods=["GET"])
    async def community_stats(community_id):
        """Monthly statistics, plus analytics when ?period= is given."""
        stats = await reports.get_stats(community_id)
        period = request.args.get("period")
        if period:
            if period not in ANALYTICS_PERIODS:
                raise InvalidInput(f"period must be one of {', '.join(ANALYTICS_PERIODS)}")
            stats["analytics"] = await reports.get_analytics(community_id, period)
        return _envelope(True, data=stats)

    @bp.route("/api/guest-passes/<pass_id>/validate", methods=["GET"])
    def validate_pass_id(pass_id):
        """Validate the format of a pass id."""
        valid = quota_manager.is_valid_pass_id(pass_id)
        return _envelope(True, data={"pass_id": pass_id, "valid": valid})

    return bp
