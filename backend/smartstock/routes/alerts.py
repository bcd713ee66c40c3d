# Overview: Flask API routes for inventory alerts; list with urgency and manual resolve.

from flask import Blueprint, g, request

from ..decorators import require_auth, require_writer
from ..errors import ValidationFailed
from ..responses import json_body, ok
from ..services import alert_service
from ..services.concurrency import run_with_retry, transaction
from ..validation import require_positive_int


alerts_bp = Blueprint("alerts", __name__, url_prefix="/api/alerts")


@alerts_bp.get("")
@require_auth
def list_alerts_route():
    """Query params: status = unresolved (default) | resolved | all."""
    status = (request.args.get("status") or "unresolved").lower()
    rows, summary = alert_service.list_alerts(status)
    return ok(rows, f"{len(rows)} alert(s)", summary=summary)


@alerts_bp.patch("")
@require_auth
@require_writer
def resolve_alert_route():
    """
    Resolve an alert manually.

    Body: {alertId, resolvedBy?}. Resolving an already-resolved alert is a
    no-op that returns the alert unchanged.
    """
    data = json_body()
    raw_id = data.get("alertId", data.get("alert_id"))
    if raw_id is None:
        raise ValidationFailed("alertId", "is required")
    alert_id = require_positive_int(raw_id, "alertId")
    resolved_by = data.get("resolvedBy", data.get("resolved_by")) or g.current_user.username
    if not isinstance(resolved_by, str):
        raise ValidationFailed("resolvedBy", "must be a string")

    def _op():
        with transaction():
            return alert_service.resolve(alert_id, resolved_by[:64])

    alert = run_with_retry(_op)
    return ok(alert.to_dict(), "Alert resolved")
