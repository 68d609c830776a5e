from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.crm.constants import DEFAULT_ACTIVITY_PRIORITY, DEFAULT_ACTIVITY_STATUS
from app.crm.models import Base
from app.crm.utils import utcnow

if TYPE_CHECKING:
    from app.crm.models import User
    from app.crm.modules.customers.models import Customer
    from app.crm.modules.opportunities.models import Opportunity


class Activity(Base):
    __tablename__ = "activities"
    __table_args__ = (
        Index("idx_activities_due_date", "due_date"),
        Index("idx_activities_customer_id", "customer_id"),
        Index("idx_activities_opportunity_id", "opportunity_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    customer_id: Mapped[int | None] = mapped_column(ForeignKey("customers.id"), nullable=True)
    opportunity_id: Mapped[int | None] = mapped_column(ForeignKey("opportunities.id"), nullable=True)

    type: Mapped[str] = mapped_column(String(32), nullable=False)  # call, meeting, email, task
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=DEFAULT_ACTIVITY_STATUS)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default=DEFAULT_ACTIVITY_PRIORITY)
    assigned_to: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    customer: Mapped["Customer"] = relationship("Customer", lazy="selectin")
    opportunity: Mapped["Opportunity"] = relationship("Opportunity", lazy="selectin")
    assignee: Mapped["User"] = relationship("User", lazy="selectin")
