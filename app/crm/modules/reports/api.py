from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.crm.access import require_api_login
from app.crm.db import db_session
from app.crm.modules.reports.service import dashboard_stats, parse_period, reports_summary, sales_pipeline_report

bp = Blueprint("reports", __name__)


@bp.get("/dashboard/stats")
@require_api_login
def dashboard_stats_view():
    s = db_session()
    return jsonify(dashboard_stats(s))


@bp.get("/reports/sales-pipeline")
@require_api_login
def sales_pipeline_view():
    s = db_session()
    return jsonify(sales_pipeline_report(s))


@bp.get("/reports/summary")
@require_api_login
def summary_view():
    s = db_session()
    period_days = parse_period(request.args.get("period"))
    return jsonify(reports_summary(s, period_days))
