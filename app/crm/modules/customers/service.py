from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from app.crm.audit import record_event
from app.crm.db import flush_delete
from app.crm.errors import ConflictError, NotFound, ValidationError
from app.crm.modules.customers.models import Customer
from app.crm.utils import clean_str, iso, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.crm.models import User


FIELDS = ("name", "phone", "email", "address", "notes")


def customer_to_dict(c: Customer) -> dict[str, Any]:
    return {
        "id": c.id,
        "name": c.name,
        "phone": c.phone,
        "email": c.email,
        "address": c.address,
        "notes": c.notes,
        "created_at": iso(c.created_at),
        "updated_at": iso(c.updated_at),
    }


def validate_customer_payload(payload: dict) -> list[str]:
    """Validate customer creation/update payload. Returns list of errors."""
    errors = []
    if not clean_str(payload.get("name")):
        errors.append("Name is required.")
    if not clean_str(payload.get("phone")):
        errors.append("Phone is required.")
    return errors


def _apply(customer: Customer, payload: dict) -> None:
    # Full replace: every field is written, omitted ones become null.
    for field in FIELDS:
        setattr(customer, field, clean_str(payload.get(field)))


def _flush_unique(s: "Session", phone: str | None) -> None:
    try:
        s.flush()
    except IntegrityError:
        s.rollback()
        raise ConflictError(f"A customer with phone {phone} already exists.")


def list_customers(s: "Session", *, search: str | None = None) -> list[Customer]:
    q = s.query(Customer)
    if search:
        like = f"%{search}%"
        q = q.filter(
            or_(
                Customer.name.ilike(like),
                Customer.phone.ilike(like),
                Customer.email.ilike(like),
            )
        )
    return q.order_by(Customer.created_at.desc(), Customer.id.desc()).all()


def get_customer(s: "Session", customer_id: int) -> Customer:
    c = s.get(Customer, customer_id)
    if c is None:
        raise NotFound("Customer")
    return c


def create_customer(s: "Session", payload: dict, user: "User") -> Customer:
    errors = validate_customer_payload(payload)
    if errors:
        raise ValidationError.from_errors(errors)

    now = utcnow()
    customer = Customer(created_at=now, updated_at=now)
    _apply(customer, payload)
    s.add(customer)
    _flush_unique(s, customer.phone)

    record_event(
        s,
        actor=user,
        action="customer.create",
        entity_type="Customer",
        entity_id=str(customer.id),
        metadata={"name": customer.name, "phone": customer.phone},
    )
    return customer


def update_customer(s: "Session", customer_id: int, payload: dict, user: "User") -> Customer:
    customer = get_customer(s, customer_id)
    errors = validate_customer_payload(payload)
    if errors:
        raise ValidationError.from_errors(errors)

    changes = {}
    for field in FIELDS:
        new = clean_str(payload.get(field))
        old = getattr(customer, field)
        if new != old:
            changes[field] = {"old": old, "new": new}
    _apply(customer, payload)
    customer.updated_at = utcnow()
    _flush_unique(s, customer.phone)

    record_event(
        s,
        actor=user,
        action="customer.edit",
        entity_type="Customer",
        entity_id=str(customer.id),
        metadata={"name": customer.name, "changes": changes},
    )
    return customer


def delete_customer(s: "Session", customer_id: int, user: "User") -> None:
    """Delete a customer. Contacts, opportunities and activities are left in place."""
    customer = get_customer(s, customer_id)
    record_event(
        s,
        actor=user,
        action="customer.delete",
        entity_type="Customer",
        entity_id=str(customer.id),
        metadata={"name": customer.name, "phone": customer.phone},
    )
    s.delete(customer)
    flush_delete(s, "Customer still has linked records and cannot be deleted.")
