import logging
import os
import time
from datetime import timedelta

from flask import Flask, g, jsonify, request
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException
from werkzeug.routing import IntegerConverter

from app.crm.config import load_config
from app.crm.db import create_schema, dispose_db, init_db, session_scope, teardown_db_session
from app.crm.errors import CRMError
from app.crm.sessions import init_sessions
from app.crm.utils import MAX_INT
from app.crm.routes import bp as routes_bp
from app.crm.auth import bp as auth_bp, load_current_user
from app.crm.modules.customers.api import bp as customers_bp
from app.crm.modules.contacts.api import bp as contacts_bp
from app.crm.modules.opportunities.api import bp as opportunities_bp
from app.crm.modules.activities.api import bp as activities_bp
from app.crm.modules.users.api import bp as users_bp
from app.crm.modules.reports.api import bp as reports_bp
from app.crm.modules.system.api import bp as system_bp


class IdConverter(IntegerConverter):
    """`<int:...>` capped at the 64-bit key range; larger ids simply do not match (404)."""

    def __init__(self, map, *args, **kwargs):
        kwargs.setdefault("max", MAX_INT)
        super().__init__(map, *args, **kwargs)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=int(app.config["SESSION_LIFETIME_HOURS"]))
    # The server-side record carries the fixed expiry; the cookie is not re-issued per request.
    app.config["SESSION_REFRESH_EACH_REQUEST"] = False
    app.config["STARTED_AT"] = time.monotonic()
    app.json.sort_keys = False  # type: ignore[attr-defined]
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not os.environ.get("DATABASE_URL"):
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)
    init_sessions(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                dispose_db(app)
                app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    if app.config.get("AUTO_INIT_DB"):
        from app.crm.seed import seed_database

        create_schema(app)
        with session_scope(app) as s:
            seed_database(
                s,
                admin_username=app.config["ADMIN_USERNAME"],
                admin_password=app.config["ADMIN_PASSWORD"],
                sample_data=bool(app.config.get("SEED_SAMPLE_DATA")),
            )
        app.logger.info("Database schema ready (auto-init).")

    app.url_map.converters["int"] = IdConverter
    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(customers_bp, url_prefix="/api")
    app.register_blueprint(contacts_bp, url_prefix="/api")
    app.register_blueprint(opportunities_bp, url_prefix="/api")
    app.register_blueprint(activities_bp, url_prefix="/api")
    app.register_blueprint(users_bp, url_prefix="/api")
    app.register_blueprint(reports_bp, url_prefix="/api")
    app.register_blueprint(system_bp, url_prefix="/api")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(CRMError)
    def _crm_error(e: CRMError):  # type: ignore[no-redef]
        if e.status_code >= 500:
            app.logger.error("CRM error %s (request_id=%s): %s", e.status_code, getattr(g, "request_id", None), e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def _http_error(e: HTTPException):  # type: ignore[no-redef]
        if request.path.startswith("/api/"):
            return jsonify({"error": e.description or e.name}), e.code
        return e

    @app.errorhandler(Exception)
    def _err_500(e: Exception):  # type: ignore[no-redef]
        # Ensure stack trace shows in logs.
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        if request.path.startswith("/api/"):
            return jsonify({"error": "Internal server error"}), 500
        return "Internal server error", 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app


def close_app(app: Flask) -> None:
    """Release process-wide resources held by an app instance."""
    app.extensions["crm_sessions"].clear()
    dispose_db(app)
