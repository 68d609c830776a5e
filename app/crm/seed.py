"""
Idempotent seed: the administrator account plus one sample record per entity.

Each row is inserted only if an equivalent row is absent; existing rows
(including the admin's password) are never overwritten.
"""
from __future__ import annotations

from datetime import date

from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from app.crm.models import User
from app.crm.modules.activities.models import Activity
from app.crm.modules.contacts.models import Contact
from app.crm.modules.customers.models import Customer
from app.crm.modules.opportunities.models import Opportunity


def ensure_admin(s: Session, username: str, password: str) -> User:
    user = s.query(User).filter(User.username == username).one_or_none()
    if not user:
        user = User(
            username=username,
            password_hash=generate_password_hash(password),
            full_name="System Administrator",
            role="admin",
        )
        s.add(user)
        s.flush()
    return user


def ensure_sample_data(s: Session) -> None:
    customer = s.query(Customer).filter(Customer.phone == "012-3456789").one_or_none()
    if not customer:
        customer = Customer(
            name="Tech Solutions Inc.",
            phone="012-3456789",
            email="info@techsolutions.com",
            address="Kuala Lumpur",
            notes="Potential enterprise client",
        )
        s.add(customer)
        s.flush()

    contact = (
        s.query(Contact)
        .filter(Contact.customer_id == customer.id, Contact.contact_name == "Ahmad Zaki")
        .one_or_none()
    )
    if not contact:
        s.add(
            Contact(
                customer_id=customer.id,
                contact_name="Ahmad Zaki",
                position="CEO",
                phone="012-9876543",
                email="ahmad@techsolutions.com",
                notes="Decision maker",
            )
        )

    opp = (
        s.query(Opportunity)
        .filter(Opportunity.customer_id == customer.id, Opportunity.title == "ERP System Implementation")
        .one_or_none()
    )
    if not opp:
        opp = Opportunity(
            customer_id=customer.id,
            title="ERP System Implementation",
            description="Enterprise resource planning system for manufacturing division",
            value=250000.00,
            stage="proposal",
            probability=60,
            expected_close_date=date(2026, 3, 31),
            notes="High value deal",
        )
        s.add(opp)
        s.flush()

    activity = (
        s.query(Activity)
        .filter(Activity.opportunity_id == opp.id, Activity.subject == "Proposal Presentation")
        .one_or_none()
    )
    if not activity:
        s.add(
            Activity(
                customer_id=customer.id,
                opportunity_id=opp.id,
                type="meeting",
                subject="Proposal Presentation",
                description="Present ERP solution proposal to board",
                due_date=date(2026, 2, 20),
                status="pending",
                priority="high",
                notes="Prepare demo materials",
            )
        )


def seed_database(s: Session, *, admin_username: str, admin_password: str, sample_data: bool = True) -> None:
    ensure_admin(s, admin_username, admin_password)
    if sample_data:
        ensure_sample_data(s)
