from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any

from sqlalchemy import case

from app.crm.audit import record_event
from app.crm.constants import (
    ACTIVITY_PRIORITIES,
    ACTIVITY_STATUSES,
    ACTIVITY_TYPES,
    DEFAULT_ACTIVITY_PRIORITY,
    DEFAULT_ACTIVITY_STATUS,
)
from app.crm.errors import ForeignKeyError, NotFound, ValidationError
from app.crm.models import User
from app.crm.modules.activities.models import Activity
from app.crm.modules.customers.models import Customer
from app.crm.modules.opportunities.models import Opportunity
from app.crm.utils import clean_str, iso, parse_date, parse_int, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


# Null due dates sort after dated ones; within a day, high priority first.
_NULL_DUE_LAST = case((Activity.due_date.is_(None), 1), else_=0)
_PRIORITY_RANK = case(
    (Activity.priority == "high", 3),
    (Activity.priority == "medium", 2),
    (Activity.priority == "low", 1),
    else_=0,
)
AGENDA_ORDER = (_NULL_DUE_LAST.asc(), Activity.due_date.asc(), _PRIORITY_RANK.desc(), Activity.id.asc())


def activity_to_dict(a: Activity) -> dict[str, Any]:
    return {
        "id": a.id,
        "customer_id": a.customer_id,
        "customer_name": a.customer.name if a.customer else None,
        "opportunity_id": a.opportunity_id,
        "opportunity_title": a.opportunity.title if a.opportunity else None,
        "type": a.type,
        "subject": a.subject,
        "description": a.description,
        "due_date": iso(a.due_date),
        "status": a.status,
        "priority": a.priority,
        "assigned_to": a.assigned_to,
        "assigned_to_name": a.assignee.full_name if a.assignee else None,
        "notes": a.notes,
        "created_at": iso(a.created_at),
    }


def _parse_details(payload: dict, errors: list[str]) -> dict[str, Any]:
    """The fields an update replaces: everything except the links."""
    activity_type = clean_str(payload.get("type"))
    if not activity_type:
        errors.append("Type is required.")
    elif activity_type not in ACTIVITY_TYPES:
        errors.append(f"Invalid type. Must be one of: {', '.join(ACTIVITY_TYPES)}")

    subject = clean_str(payload.get("subject"))
    if not subject:
        errors.append("Subject is required.")

    status = clean_str(payload.get("status")) or DEFAULT_ACTIVITY_STATUS
    if status not in ACTIVITY_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(ACTIVITY_STATUSES)}")

    priority = clean_str(payload.get("priority")) or DEFAULT_ACTIVITY_PRIORITY
    if priority not in ACTIVITY_PRIORITIES:
        errors.append(f"Invalid priority. Must be one of: {', '.join(ACTIVITY_PRIORITIES)}")

    due_date: date | None = parse_date(payload.get("due_date"), "due_date", errors)

    return {
        "type": activity_type,
        "subject": subject,
        "description": clean_str(payload.get("description")),
        "due_date": due_date,
        "status": status,
        "priority": priority,
        "notes": clean_str(payload.get("notes")),
    }


def _parse_links(payload: dict, errors: list[str]) -> dict[str, int | None]:
    return {
        "customer_id": parse_int(payload.get("customer_id"), "customer_id", errors),
        "opportunity_id": parse_int(payload.get("opportunity_id"), "opportunity_id", errors),
        "assigned_to": parse_int(payload.get("assigned_to"), "assigned_to", errors),
    }


def _check_links(s: "Session", links: dict[str, int | None]) -> None:
    for field, model, label in (
        ("customer_id", Customer, "Customer"),
        ("opportunity_id", Opportunity, "Opportunity"),
        ("assigned_to", User, "User"),
    ):
        ref = links[field]
        if ref is not None and s.get(model, ref) is None:
            raise ForeignKeyError(f"{label} {ref} does not exist.")


def list_activities(
    s: "Session",
    *,
    status: str | None = None,
    activity_type: str | None = None,
    customer_id: int | None = None,
    opportunity_id: int | None = None,
    assigned_to: int | None = None,
) -> list[Activity]:
    q = s.query(Activity)
    if status:
        q = q.filter(Activity.status == status)
    if activity_type:
        q = q.filter(Activity.type == activity_type)
    if customer_id is not None:
        q = q.filter(Activity.customer_id == customer_id)
    if opportunity_id is not None:
        q = q.filter(Activity.opportunity_id == opportunity_id)
    if assigned_to is not None:
        q = q.filter(Activity.assigned_to == assigned_to)
    return q.order_by(*AGENDA_ORDER).all()


def get_activity(s: "Session", activity_id: int) -> Activity:
    a = s.get(Activity, activity_id)
    if a is None:
        raise NotFound("Activity")
    return a


def create_activity(s: "Session", payload: dict, user: User) -> Activity:
    errors: list[str] = []
    details = _parse_details(payload, errors)
    links = _parse_links(payload, errors)
    if errors:
        raise ValidationError.from_errors(errors)
    _check_links(s, links)

    activity = Activity(created_at=utcnow(), **details, **links)
    s.add(activity)
    s.flush()

    record_event(
        s,
        actor=user,
        action="activity.create",
        entity_type="Activity",
        entity_id=str(activity.id),
        metadata={"subject": activity.subject, "type": activity.type, **links},
    )
    return activity


def update_activity(s: "Session", activity_id: int, payload: dict, user: User) -> Activity:
    activity = get_activity(s, activity_id)
    errors: list[str] = []
    details = _parse_details(payload, errors)
    if errors:
        raise ValidationError.from_errors(errors)

    old_status = activity.status
    for name, value in details.items():
        setattr(activity, name, value)
    s.flush()

    record_event(
        s,
        actor=user,
        action="activity.edit",
        entity_type="Activity",
        entity_id=str(activity.id),
        metadata={"subject": activity.subject, "status": {"old": old_status, "new": activity.status}},
    )
    return activity


def delete_activity(s: "Session", activity_id: int, user: User) -> None:
    activity = get_activity(s, activity_id)
    record_event(
        s,
        actor=user,
        action="activity.delete",
        entity_type="Activity",
        entity_id=str(activity.id),
        metadata={"subject": activity.subject},
    )
    s.delete(activity)
    s.flush()
