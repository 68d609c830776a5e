from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any

from app.crm.audit import record_event
from app.crm.db import flush_delete
from app.crm.constants import DEFAULT_OPPORTUNITY_STATUS, DEFAULT_STAGE, OPPORTUNITY_STAGES
from app.crm.errors import ForeignKeyError, NotFound, ValidationError
from app.crm.modules.customers.models import Customer
from app.crm.modules.opportunities.models import Opportunity
from app.crm.utils import clean_str, iso, parse_amount, parse_date, parse_int, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.crm.models import User


@dataclass
class OpportunityFields:
    customer_id: int
    title: str
    description: str | None
    value: float
    stage: str
    probability: int
    expected_close_date: date | None
    status: str
    notes: str | None


def opportunity_to_dict(o: Opportunity) -> dict[str, Any]:
    return {
        "id": o.id,
        "customer_id": o.customer_id,
        "customer_name": o.customer.name if o.customer else None,
        "customer_phone": o.customer.phone if o.customer else None,
        "customer_email": o.customer.email if o.customer else None,
        "title": o.title,
        "description": o.description,
        "value": float(o.value or 0),
        "stage": o.stage,
        "probability": o.probability,
        "expected_close_date": iso(o.expected_close_date),
        "status": o.status,
        "notes": o.notes,
        "created_at": iso(o.created_at),
    }


def parse_opportunity_payload(s: "Session", payload: dict) -> OpportunityFields:
    """Validate a create/update payload. Raises ValidationError / ForeignKeyError."""
    errors: list[str] = []

    customer_id = parse_int(payload.get("customer_id"), "customer_id", errors)
    if customer_id is None and not errors:
        errors.append("customer_id is required.")

    title = clean_str(payload.get("title"))
    if not title:
        errors.append("Title is required.")

    value = parse_amount(payload.get("value"), "value", errors)
    if value is not None and value < 0:
        errors.append("value must not be negative.")

    stage = clean_str(payload.get("stage")) or DEFAULT_STAGE
    if stage not in OPPORTUNITY_STAGES:
        errors.append(f"Invalid stage. Must be one of: {', '.join(OPPORTUNITY_STAGES)}")

    probability = parse_int(payload.get("probability"), "probability", errors)
    if probability is not None and not 0 <= probability <= 100:
        errors.append("probability must be between 0 and 100.")

    expected_close_date = parse_date(payload.get("expected_close_date"), "expected_close_date", errors)

    if errors:
        raise ValidationError.from_errors(errors)
    if s.get(Customer, customer_id) is None:
        raise ForeignKeyError(f"Customer {customer_id} does not exist.")

    return OpportunityFields(
        customer_id=customer_id,  # type: ignore[arg-type]
        title=title,  # type: ignore[arg-type]
        description=clean_str(payload.get("description")),
        value=value or 0.0,
        stage=stage,
        probability=probability or 0,
        expected_close_date=expected_close_date,
        status=clean_str(payload.get("status")) or DEFAULT_OPPORTUNITY_STATUS,
        notes=clean_str(payload.get("notes")),
    )


def list_opportunities(
    s: "Session",
    *,
    customer_id: int | None = None,
    stage: str | None = None,
    status: str | None = None,
) -> list[Opportunity]:
    q = s.query(Opportunity)
    if customer_id is not None:
        q = q.filter(Opportunity.customer_id == customer_id)
    if stage:
        q = q.filter(Opportunity.stage == stage)
    if status:
        q = q.filter(Opportunity.status == status)
    return q.order_by(Opportunity.created_at.desc(), Opportunity.id.desc()).all()


def get_opportunity(s: "Session", opportunity_id: int) -> Opportunity:
    o = s.get(Opportunity, opportunity_id)
    if o is None:
        raise NotFound("Opportunity")
    return o


def create_opportunity(s: "Session", payload: dict, user: "User") -> Opportunity:
    fields = parse_opportunity_payload(s, payload)
    opp = Opportunity(created_at=utcnow(), **vars(fields))
    s.add(opp)
    s.flush()

    record_event(
        s,
        actor=user,
        action="opportunity.create",
        entity_type="Opportunity",
        entity_id=str(opp.id),
        metadata={"title": opp.title, "stage": opp.stage, "value": opp.value},
    )
    return opp


def update_opportunity(s: "Session", opportunity_id: int, payload: dict, user: "User") -> Opportunity:
    opp = get_opportunity(s, opportunity_id)
    fields = parse_opportunity_payload(s, payload)
    old_stage = opp.stage
    for name, value in vars(fields).items():
        setattr(opp, name, value)
    s.flush()

    record_event(
        s,
        actor=user,
        action="opportunity.edit",
        entity_type="Opportunity",
        entity_id=str(opp.id),
        metadata={"title": opp.title, "stage": {"old": old_stage, "new": opp.stage}, "value": opp.value},
    )
    return opp


def delete_opportunity(s: "Session", opportunity_id: int, user: "User") -> None:
    """Delete an opportunity. Linked activities keep their opportunity_id where foreign keys are not enforced."""
    opp = get_opportunity(s, opportunity_id)
    record_event(
        s,
        actor=user,
        action="opportunity.delete",
        entity_type="Opportunity",
        entity_id=str(opp.id),
        metadata={"title": opp.title},
    )
    s.delete(opp)
    flush_delete(s, "Opportunity still has linked activities and cannot be deleted.")
