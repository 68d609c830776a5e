from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.crm.access import require_api_login
from app.crm.db import db_session
from app.crm.models import User
from app.crm.modules.opportunities.service import (
    create_opportunity,
    delete_opportunity,
    get_opportunity,
    list_opportunities,
    opportunity_to_dict,
    update_opportunity,
)
from app.crm.utils import query_int, request_payload

bp = Blueprint("opportunities", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/opportunities")
@require_api_login
def opportunities_list():
    s = db_session()
    opps = list_opportunities(
        s,
        customer_id=query_int("customer_id"),
        stage=(request.args.get("stage") or "").strip() or None,
        status=(request.args.get("status") or "").strip() or None,
    )
    return jsonify([opportunity_to_dict(o) for o in opps])


@bp.get("/opportunities/<int:opportunity_id>")
@require_api_login
def opportunity_detail(opportunity_id: int):
    s = db_session()
    return jsonify(opportunity_to_dict(get_opportunity(s, opportunity_id)))


@bp.post("/opportunities")
@require_api_login
def opportunity_create():
    s = db_session()
    opp = create_opportunity(s, request_payload(), _current_user())
    s.commit()
    return jsonify({"id": opp.id, "message": "Opportunity added successfully"})


@bp.put("/opportunities/<int:opportunity_id>")
@require_api_login
def opportunity_update(opportunity_id: int):
    s = db_session()
    update_opportunity(s, opportunity_id, request_payload(), _current_user())
    s.commit()
    return jsonify({"message": "Opportunity updated successfully"})


@bp.delete("/opportunities/<int:opportunity_id>")
@require_api_login
def opportunity_delete(opportunity_id: int):
    s = db_session()
    delete_opportunity(s, opportunity_id, _current_user())
    s.commit()
    return jsonify({"message": "Opportunity deleted successfully"})
