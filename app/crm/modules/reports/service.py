"""
Dashboard and reporting aggregates.

Every figure is recomputed from the tables on each call. The individual
queries run one after another without a wrapping transaction, so under
concurrent writes the numbers are only consistent per query, not across the
whole payload.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import extract, func

from app.crm.constants import ACTIVITY_TYPES, CLOSED_STAGES, OPPORTUNITY_STAGES, STAGE_LABELS, stage_rank
from app.crm.errors import ValidationError
from app.crm.modules.activities.models import Activity
from app.crm.modules.activities.service import activity_to_dict
from app.crm.modules.customers.models import Customer
from app.crm.modules.opportunities.models import Opportunity
from app.crm.modules.opportunities.service import opportunity_to_dict
from app.crm.utils import utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


DEFAULT_PERIOD_DAYS = 30
MAX_PERIOD_DAYS = 36500


def _count(s: "Session", column) -> int:
    return int(s.query(func.count(column)).scalar() or 0)


def _open_pipeline_value(s: "Session") -> float:
    total = (
        s.query(func.coalesce(func.sum(Opportunity.value), 0))
        .filter(Opportunity.stage.notin_(CLOSED_STAGES))
        .scalar()
    )
    return float(total or 0)


def opportunities_by_stage(s: "Session") -> list[dict[str, Any]]:
    rows = s.query(Opportunity.stage, func.count(Opportunity.id)).group_by(Opportunity.stage).all()
    rows = sorted(rows, key=lambda r: (stage_rank(r[0]), r[0] or ""))
    return [{"stage": stage, "count": int(cnt)} for stage, cnt in rows]


def dashboard_stats(s: "Session") -> dict[str, Any]:
    recent = s.query(Activity).order_by(Activity.created_at.desc(), Activity.id.desc()).limit(5).all()
    top = s.query(Opportunity).order_by(Opportunity.value.desc(), Opportunity.id.asc()).limit(5).all()
    return {
        "totalCustomers": _count(s, Customer.id),
        "totalOpportunities": _count(s, Opportunity.id),
        "totalActivities": _count(s, Activity.id),
        "opportunitiesByStage": opportunities_by_stage(s),
        "recentActivities": [activity_to_dict(a) for a in recent],
        "topOpportunities": [opportunity_to_dict(o) for o in top],
        "pipelineValue": _open_pipeline_value(s),
    }


def sales_pipeline_report(s: "Session") -> list[dict[str, Any]]:
    """Per-stage count/total/average, in pipeline order with unknown stages last."""
    rows = (
        s.query(
            Opportunity.stage,
            func.count(Opportunity.id),
            func.coalesce(func.sum(Opportunity.value), 0),
            func.coalesce(func.avg(Opportunity.value), 0),
        )
        .group_by(Opportunity.stage)
        .all()
    )
    rows = sorted(rows, key=lambda r: (stage_rank(r[0]), r[0] or ""))
    return [
        {
            "stage": stage,
            "count": int(cnt),
            "total_value": round(float(total), 2),
            "avg_value": round(float(avg), 2),
        }
        for stage, cnt, total, avg in rows
    ]


def parse_period(raw: str | None) -> int | None:
    """Day count for the summary window; None means all time."""
    value = (raw or "").strip().lower()
    if not value:
        return DEFAULT_PERIOD_DAYS
    if value == "all":
        return None
    try:
        days = int(value)
    except ValueError:
        raise ValidationError("period must be a number of days or 'all'.")
    if days <= 0:
        raise ValidationError("period must be a positive number of days.")
    if days > MAX_PERIOD_DAYS:
        raise ValidationError(f"period must be at most {MAX_PERIOD_DAYS} days (or 'all').")
    return days


def _month_starts(today: date, count: int) -> list[date]:
    """First day of each of the last `count` months, oldest first."""
    starts = []
    year, month = today.year, today.month
    for _ in range(count):
        starts.append(date(year, month, 1))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(starts))


def _next_month(d: date) -> date:
    return date(d.year + 1, 1, 1) if d.month == 12 else date(d.year, d.month + 1, 1)


def _percent(part: int | float, whole: int | float) -> float:
    if not whole:
        return 0.0
    return round(100.0 * part / whole, 1)


def reports_summary(s: "Session", period_days: int | None, *, now: datetime | None = None) -> dict[str, Any]:
    now = now or utcnow()
    since = now - timedelta(days=period_days) if period_days else None

    def in_period(q, column):
        return q.filter(column >= since) if since is not None else q

    total_customers = _count(s, Customer.id)
    new_customers = int(in_period(s.query(func.count(Customer.id)), Customer.created_at).scalar() or 0)

    open_opportunities = int(
        s.query(func.count(Opportunity.id)).filter(Opportunity.stage.notin_(CLOSED_STAGES)).scalar() or 0
    )
    pending_activities = int(
        s.query(func.count(Activity.id)).filter(Activity.status != "completed").scalar() or 0
    )
    pipeline_value = _open_pipeline_value(s)

    period_opps = in_period(s.query(Opportunity.stage, Opportunity.value), Opportunity.created_at).all()
    won_values = [float(v or 0) for stage, v in period_opps if stage == "closed-won"]
    lost = sum(1 for stage, _ in period_opps if stage == "closed-lost")
    conversion_rate = _percent(len(won_values), len(won_values) + lost)
    average_deal = round(sum(won_values) / len(won_values), 2) if won_values else 0.0

    total_activities = _count(s, Activity.id)
    completed_activities = int(
        s.query(func.count(Activity.id)).filter(Activity.status == "completed").scalar() or 0
    )

    stage_counts = {row["stage"]: row["count"] for row in opportunities_by_stage(s)}

    months = _month_starts(now.date(), 6)
    growth = []
    for start in months:
        end = datetime.combine(_next_month(start), datetime.min.time())
        growth.append(int(s.query(func.count(Customer.id)).filter(Customer.created_at < end).scalar() or 0))

    type_counts = dict(s.query(Activity.type, func.count(Activity.id)).group_by(Activity.type).all())

    forecast_rows = (
        s.query(
            extract("month", Opportunity.expected_close_date),
            Opportunity.value,
            Opportunity.probability,
        )
        .filter(Opportunity.stage.notin_(CLOSED_STAGES))
        .filter(Opportunity.expected_close_date.isnot(None))
        .filter(extract("year", Opportunity.expected_close_date) == now.year)
        .all()
    )
    quarters = [0.0, 0.0, 0.0, 0.0]
    for month, value, probability in forecast_rows:
        quarters[(int(month) - 1) // 3] += float(value or 0) * (probability or 0) / 100.0

    return {
        "period": period_days if period_days is not None else "all",
        "totalCustomers": total_customers,
        "newCustomers": new_customers,
        "openOpportunities": open_opportunities,
        "pendingActivities": pending_activities,
        "pipelineValue": pipeline_value,
        "conversionRate": conversion_rate,
        "averageDealSize": average_deal,
        "activityCompletion": _percent(completed_activities, total_activities),
        "opportunityStages": {
            "labels": [STAGE_LABELS[st] for st in OPPORTUNITY_STAGES],
            "data": [stage_counts.get(st, 0) for st in OPPORTUNITY_STAGES],
        },
        "customerGrowth": {
            "labels": [m.strftime("%b") for m in months],
            "data": growth,
        },
        "activityTypes": {
            "labels": [t.capitalize() for t in ACTIVITY_TYPES],
            "data": [int(type_counts.get(t, 0)) for t in ACTIVITY_TYPES],
        },
        "revenueForecast": {
            "labels": ["Q1", "Q2", "Q3", "Q4"],
            "data": [round(q, 2) for q in quarters],
        },
    }
