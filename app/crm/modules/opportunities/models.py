from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.crm.constants import DEFAULT_OPPORTUNITY_STATUS, DEFAULT_STAGE
from app.crm.models import Base
from app.crm.utils import utcnow

if TYPE_CHECKING:
    from app.crm.modules.customers.models import Customer


class Opportunity(Base):
    __tablename__ = "opportunities"
    __table_args__ = (
        Index("idx_opportunities_customer_id", "customer_id"),
        Index("idx_opportunities_stage", "stage"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    value: Mapped[float] = mapped_column(Numeric(14, 2, asdecimal=False), nullable=False, default=0.0)
    # prospecting, qualification, proposal, negotiation, closed-won, closed-lost
    stage: Mapped[str] = mapped_column(String(32), nullable=False, default=DEFAULT_STAGE)
    probability: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expected_close_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=DEFAULT_OPPORTUNITY_STATUS)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    customer: Mapped["Customer"] = relationship("Customer", lazy="selectin")
