from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.crm.access import require_api_login
from app.crm.db import db_session
from app.crm.models import User
from app.crm.modules.customers.service import (
    create_customer,
    customer_to_dict,
    delete_customer,
    get_customer,
    list_customers,
    update_customer,
)
from app.crm.utils import request_payload

bp = Blueprint("customers", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/customers")
@require_api_login
def customers_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    return jsonify([customer_to_dict(c) for c in list_customers(s, search=search or None)])


@bp.get("/customers/<int:customer_id>")
@require_api_login
def customer_detail(customer_id: int):
    s = db_session()
    return jsonify(customer_to_dict(get_customer(s, customer_id)))


@bp.post("/customers")
@require_api_login
def customer_create():
    s = db_session()
    customer = create_customer(s, request_payload(), _current_user())
    s.commit()
    return jsonify({"id": customer.id, "message": "Customer added successfully"})


@bp.put("/customers/<int:customer_id>")
@require_api_login
def customer_update(customer_id: int):
    s = db_session()
    update_customer(s, customer_id, request_payload(), _current_user())
    s.commit()
    return jsonify({"message": "Customer updated successfully"})


@bp.delete("/customers/<int:customer_id>")
@require_api_login
def customer_delete(customer_id: int):
    s = db_session()
    delete_customer(s, customer_id, _current_user())
    s.commit()
    return jsonify({"message": "Customer deleted successfully"})
