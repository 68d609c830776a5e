from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.crm.audit import record_event
from app.crm.errors import ForeignKeyError, NotFound, ValidationError
from app.crm.modules.contacts.models import Contact
from app.crm.modules.customers.models import Customer
from app.crm.utils import clean_str, iso, parse_int, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.crm.models import User


TEXT_FIELDS = ("contact_name", "position", "phone", "email", "notes")


def contact_to_dict(c: Contact) -> dict[str, Any]:
    return {
        "id": c.id,
        "customer_id": c.customer_id,
        "customer_name": c.customer.name if c.customer else None,
        "contact_name": c.contact_name,
        "position": c.position,
        "phone": c.phone,
        "email": c.email,
        "notes": c.notes,
        "created_at": iso(c.created_at),
    }


def _validated(s: "Session", payload: dict) -> int:
    """Check the payload; returns the parent customer id."""
    errors: list[str] = []
    customer_id = parse_int(payload.get("customer_id"), "customer_id", errors)
    if customer_id is None and not errors:
        errors.append("customer_id is required.")
    if not clean_str(payload.get("contact_name")):
        errors.append("Contact name is required.")
    if errors:
        raise ValidationError.from_errors(errors)
    if s.get(Customer, customer_id) is None:
        raise ForeignKeyError(f"Customer {customer_id} does not exist.")
    return customer_id  # type: ignore[return-value]


def list_contacts(s: "Session", *, customer_id: int | None = None, search: str | None = None) -> list[Contact]:
    q = s.query(Contact)
    if customer_id is not None:
        q = q.filter(Contact.customer_id == customer_id)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Contact.contact_name.ilike(like), Contact.email.ilike(like), Contact.phone.ilike(like)))
    return q.order_by(Contact.created_at.desc(), Contact.id.desc()).all()


def get_contact(s: "Session", contact_id: int) -> Contact:
    c = s.get(Contact, contact_id)
    if c is None:
        raise NotFound("Contact")
    return c


def create_contact(s: "Session", payload: dict, user: "User") -> Contact:
    customer_id = _validated(s, payload)
    contact = Contact(customer_id=customer_id, created_at=utcnow())
    for field in TEXT_FIELDS:
        setattr(contact, field, clean_str(payload.get(field)))
    s.add(contact)
    s.flush()

    record_event(
        s,
        actor=user,
        action="contact.create",
        entity_type="Contact",
        entity_id=str(contact.id),
        metadata={"customer_id": customer_id, "contact_name": contact.contact_name},
    )
    return contact


def update_contact(s: "Session", contact_id: int, payload: dict, user: "User") -> Contact:
    contact = get_contact(s, contact_id)
    customer_id = _validated(s, payload)
    contact.customer_id = customer_id
    for field in TEXT_FIELDS:
        setattr(contact, field, clean_str(payload.get(field)))
    s.flush()

    record_event(
        s,
        actor=user,
        action="contact.edit",
        entity_type="Contact",
        entity_id=str(contact.id),
        metadata={"customer_id": customer_id, "contact_name": contact.contact_name},
    )
    return contact


def delete_contact(s: "Session", contact_id: int, user: "User") -> None:
    contact = get_contact(s, contact_id)
    record_event(
        s,
        actor=user,
        action="contact.delete",
        entity_type="Contact",
        entity_id=str(contact.id),
        metadata={"contact_name": contact.contact_name},
    )
    s.delete(contact)
    s.flush()
