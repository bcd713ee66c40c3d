# Overview: JSON response envelope shared by every route and error handler.

from __future__ import annotations

from flask import jsonify, request

from .errors import InventoryError, ValidationFailed
from .time_utils import parse_iso_datetime
from .validation import parse_int


def ok(data=None, message: str = "OK", *, summary=None, status: int = 200):
    """Render ``{success, message, data?, summary?}``."""
    body = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    if summary is not None:
        body["summary"] = summary
    return jsonify(body), status


def created(data=None, message: str = "Created"):
    return ok(data, message, status=201)


def fail(message: str, error: str, status: int, details: dict | None = None):
    body = {"success": False, "message": message, "error": error}
    if details:
        body["details"] = details
    return jsonify(body), status


def error_response(exc: InventoryError):
    return fail(exc.message, exc.kind, exc.status_code, exc.details)


def json_body() -> dict:
    """Request JSON object, or ValidationFailed when the body is not one."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationFailed("body", "Invalid JSON payload")
    return data


def query_int(name: str, default=None):
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    return parse_int(raw, name)


def query_datetime(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationFailed(name, "must be an ISO-8601 datetime")


def query_limit(default: int = 200, maximum: int = 1000) -> int:
    limit = query_int("limit", default)
    if limit < 1:
        raise ValidationFailed("limit", "must be >= 1")
    return min(limit, maximum)
