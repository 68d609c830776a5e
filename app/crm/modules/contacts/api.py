from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.crm.access import require_api_login
from app.crm.db import db_session
from app.crm.models import User
from app.crm.modules.contacts.service import (
    contact_to_dict,
    create_contact,
    delete_contact,
    get_contact,
    list_contacts,
    update_contact,
)
from app.crm.utils import query_int, request_payload

bp = Blueprint("contacts", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/contacts")
@require_api_login
def contacts_list():
    s = db_session()
    contacts = list_contacts(
        s,
        customer_id=query_int("customer_id"),
        search=(request.args.get("q") or "").strip() or None,
    )
    return jsonify([contact_to_dict(c) for c in contacts])


@bp.get("/contacts/<int:contact_id>")
@require_api_login
def contact_detail(contact_id: int):
    s = db_session()
    return jsonify(contact_to_dict(get_contact(s, contact_id)))


@bp.post("/contacts")
@require_api_login
def contact_create():
    s = db_session()
    contact = create_contact(s, request_payload(), _current_user())
    s.commit()
    return jsonify({"id": contact.id, "message": "Contact added successfully"})


@bp.put("/contacts/<int:contact_id>")
@require_api_login
def contact_update(contact_id: int):
    s = db_session()
    update_contact(s, contact_id, request_payload(), _current_user())
    s.commit()
    return jsonify({"message": "Contact updated successfully"})


@bp.delete("/contacts/<int:contact_id>")
@require_api_login
def contact_delete(contact_id: int):
    s = db_session()
    delete_contact(s, contact_id, _current_user())
    s.commit()
    return jsonify({"message": "Contact deleted successfully"})
