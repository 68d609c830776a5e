from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.crm.access import require_api_login
from app.crm.audit import MAX_AUDIT_ROWS, audit_event_to_dict, list_events
from app.crm.auth import change_password
from app.crm.db import db_session
from app.crm.errors import ValidationError
from app.crm.models import User
from app.crm.modules.system.service import (
    COMPANY_KEY,
    database_size,
    diagnostics,
    get_setting,
    preferences_key,
    run_backup,
    save_setting,
)
from app.crm.sessions import login_throttle, session_store
from app.crm.storage import storage_from_config
from app.crm.utils import parse_date, parse_int, request_payload

bp = Blueprint("system", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- Settings ----------
@bp.get("/settings/company")
@require_api_login
def company_settings_get():
    s = db_session()
    return jsonify(get_setting(s, COMPANY_KEY))


@bp.post("/settings/company")
@require_api_login
def company_settings_save():
    s = db_session()
    save_setting(s, COMPANY_KEY, request.get_json(silent=True), _current_user())
    s.commit()
    return jsonify({"message": "Company settings saved successfully"})


@bp.get("/settings/preferences")
@require_api_login
def preferences_get():
    s = db_session()
    return jsonify(get_setting(s, preferences_key(_current_user())))


@bp.post("/settings/preferences")
@require_api_login
def preferences_save():
    s = db_session()
    u = _current_user()
    save_setting(s, preferences_key(u), request.get_json(silent=True), u)
    s.commit()
    return jsonify({"message": "Preferences saved successfully"})


@bp.post("/settings/change-password")
@require_api_login
def change_password_post():
    s = db_session()
    payload = request_payload()
    change_password(
        s,
        _current_user(),
        str(payload.get("current_password") or ""),
        str(payload.get("new_password") or ""),
    )
    s.commit()
    return jsonify({"message": "Password changed successfully"})


# ---------- System ----------
@bp.get("/system/db-size")
@require_api_login
def db_size():
    return jsonify(database_size(current_app.extensions["sqlalchemy_engine"]))


@bp.post("/system/backup")
@require_api_login
def backup():
    s = db_session()
    result = run_backup(s, storage_from_config(current_app.config), _current_user())
    s.commit()
    return jsonify(result)


@bp.post("/system/clear-cache")
@require_api_login
def clear_cache():
    removed = session_store().purge_expired()
    login_throttle().purge()
    current_app.logger.info("Cache cleared: %d expired sessions removed", removed)
    return jsonify({"message": "Cache cleared successfully", "expired_sessions_removed": removed})


@bp.get("/system/diagnostics")
@require_api_login
def system_diagnostics():
    s = db_session()
    return jsonify(
        diagnostics(
            s,
            started_at=current_app.config["STARTED_AT"],
            env=current_app.config.get("ENV") or "development",
            active_sessions=session_store().active_count(),
            storage=storage_from_config(current_app.config),
        )
    )


@bp.get("/system/audit")
@require_api_login
def audit_trail():
    """
    Recent audit events (newest first) with optional filters:
    action (contains), actor (username contains), entity_type, entity_id,
    date_from / date_to (YYYY-MM-DD, inclusive), limit.
    """
    s = db_session()
    args = request.args
    errors: list[str] = []
    date_from = parse_date(args.get("date_from"), "date_from", errors)
    date_to = parse_date(args.get("date_to"), "date_to", errors)
    limit = parse_int(args.get("limit"), "limit", errors)
    if errors:
        raise ValidationError.from_errors(errors)

    events = list_events(
        s,
        action=(args.get("action") or "").strip() or None,
        actor=(args.get("actor") or "").strip() or None,
        entity_type=(args.get("entity_type") or "").strip() or None,
        entity_id=(args.get("entity_id") or "").strip() or None,
        date_from=date_from,
        date_to=date_to,
        limit=limit or MAX_AUDIT_ROWS,
    )
    return jsonify([audit_event_to_dict(ev) for ev in events])
