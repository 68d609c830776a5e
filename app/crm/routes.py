from flask import Blueprint, redirect, render_template, url_for

from app.crm.access import require_login

bp = Blueprint("routes", __name__)

PAGES = ("dashboard", "customers", "contacts", "opportunities", "activities", "reports", "settings")


@bp.get("/")
def index():
    return redirect(url_for("auth.login_get"))


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for probes. No DB access, minimal overhead.
    """
    return "ok", 200


def _page_view(page: str):
    @require_login
    def view():
        return render_template(f"pages/{page}.html", page=page)

    view.__name__ = f"{page}_page"
    return view


for _page in PAGES:
    bp.add_url_rule(f"/{_page}", endpoint=_page, view_func=_page_view(_page), methods=["GET"])
