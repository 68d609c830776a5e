from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify

from app.crm.access import require_api_login
from app.crm.db import db_session
from app.crm.models import User
from app.crm.modules.users.service import create_user, delete_user, get_user, list_users, update_user, user_to_dict
from app.crm.sessions import session_store
from app.crm.utils import request_payload

bp = Blueprint("users", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/users")
@require_api_login
def users_list():
    s = db_session()
    return jsonify([user_to_dict(u) for u in list_users(s)])


@bp.get("/users/<int:user_id>")
@require_api_login
def user_detail(user_id: int):
    s = db_session()
    return jsonify(user_to_dict(get_user(s, user_id)))


@bp.post("/users")
@require_api_login
def user_create():
    s = db_session()
    user = create_user(s, request_payload(), _current_user())
    s.commit()
    return jsonify({"id": user.id, "message": "User added successfully"})


@bp.put("/users/<int:user_id>")
@require_api_login
def user_update(user_id: int):
    s = db_session()
    update_user(s, user_id, request_payload(), _current_user(), protected=current_app.config["ADMIN_USERNAME"])
    s.commit()
    return jsonify({"message": "User updated successfully"})


@bp.delete("/users/<int:user_id>")
@require_api_login
def user_delete(user_id: int):
    s = db_session()
    deleted = delete_user(s, user_id, _current_user(), protected=current_app.config["ADMIN_USERNAME"])
    s.commit()
    if deleted:
        session_store().destroy_user(user_id)
    return jsonify({"message": "User deleted successfully", "deleted": deleted})
