from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.crm.access import require_api_login
from app.crm.db import db_session
from app.crm.models import User
from app.crm.modules.activities.service import (
    activity_to_dict,
    create_activity,
    delete_activity,
    get_activity,
    list_activities,
    update_activity,
)
from app.crm.utils import query_int, request_payload

bp = Blueprint("activities", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/activities")
@require_api_login
def activities_list():
    s = db_session()
    activities = list_activities(
        s,
        status=(request.args.get("status") or "").strip() or None,
        activity_type=(request.args.get("type") or "").strip() or None,
        customer_id=query_int("customer_id"),
        opportunity_id=query_int("opportunity_id"),
        assigned_to=query_int("assigned_to"),
    )
    return jsonify([activity_to_dict(a) for a in activities])


@bp.get("/activities/<int:activity_id>")
@require_api_login
def activity_detail(activity_id: int):
    s = db_session()
    return jsonify(activity_to_dict(get_activity(s, activity_id)))


@bp.post("/activities")
@require_api_login
def activity_create():
    s = db_session()
    activity = create_activity(s, request_payload(), _current_user())
    s.commit()
    return jsonify({"id": activity.id, "message": "Activity added successfully"})


@bp.put("/activities/<int:activity_id>")
@require_api_login
def activity_update(activity_id: int):
    s = db_session()
    update_activity(s, activity_id, request_payload(), _current_user())
    s.commit()
    return jsonify({"message": "Activity updated successfully"})


@bp.delete("/activities/<int:activity_id>")
@require_api_login
def activity_delete(activity_id: int):
    s = db_session()
    delete_activity(s, activity_id, _current_user())
    s.commit()
    return jsonify({"message": "Activity deleted successfully"})
