from __future__ import annotations

import uuid

from flask import Blueprint, current_app, g, jsonify, redirect, render_template, request, session, url_for
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from app.crm.access import require_api_login
from app.crm.audit import record_event
from app.crm.constants import HOME_ROUTE
from app.crm.db import db_session
from app.crm.errors import CurrentPasswordIncorrect, InvalidCredentials, TooManyAttempts, ValidationError
from app.crm.models import User
from app.crm.sessions import login_throttle, session_store
from app.crm.utils import clean_str, request_payload

bp = Blueprint("auth", __name__)

SESSION_TOKEN_KEY = "sid"

# Compared against when the username is unknown, so both paths cost one hash check.
_DUMMY_HASH = generate_password_hash("not-a-real-password")


def authenticate(s: Session, username: str, password: str) -> User:
    user = s.query(User).filter(User.username == username).one_or_none()
    if user is None:
        check_password_hash(_DUMMY_HASH, password)
        raise InvalidCredentials()
    if not check_password_hash(user.password_hash, password):
        raise InvalidCredentials()
    return user


def change_password(s: Session, user: User, current_password: str, new_password: str) -> None:
    if not check_password_hash(user.password_hash, current_password or ""):
        raise CurrentPasswordIncorrect()
    if not new_password:
        raise ValidationError("New password is required.")
    user.password_hash = generate_password_hash(new_password)
    record_event(s, actor=user, action="auth.password_change", entity_type="User", entity_id=str(user.id))


def load_current_user() -> None:
    """
    Loads g.current_user from the session token in the signed cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    rec = session_store().get(session.get(SESSION_TOKEN_KEY))
    if rec is None:
        session.pop(SESSION_TOKEN_KEY, None)
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, rec.user_id)
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        user = None
    if user is None:
        session_store().destroy(rec.token)
        session.pop(SESSION_TOKEN_KEY, None)
    g.current_user = user


def _terminate_current_session() -> None:
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session_store().destroy(session.get(SESSION_TOKEN_KEY))
    session.clear()
    g.current_user = None


@bp.get("/login")
def login_get():
    if getattr(g, "current_user", None):
        return redirect(HOME_ROUTE)
    return render_template("auth/login.html")


@bp.post("/login")
def login_post():
    payload = request_payload()
    username = clean_str(payload.get("username")) or ""
    password = payload.get("password") or ""
    ip = request.remote_addr or "unknown"

    throttle = login_throttle()
    if throttle.is_blocked(ip):
        current_app.logger.warning("Login throttled (ip=%s request_id=%s)", ip, getattr(g, "request_id", None))
        raise TooManyAttempts()

    s = db_session()
    try:
        user = authenticate(s, username, str(password))
    except InvalidCredentials:
        throttle.record_failure(ip)
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=username or None,
            reason="Invalid credentials",
            metadata={"username": username},
        )
        s.commit()
        current_app.logger.info("Login failed (username=%s ip=%s)", username, ip)
        raise

    throttle.reset(ip)
    # Drop any token this browser held before so a stale record cannot linger.
    session_store().destroy(session.get(SESSION_TOKEN_KEY))
    rec = session_store().create(user.id)
    session.clear()
    session.permanent = True
    session[SESSION_TOKEN_KEY] = rec.token
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"success": True, "redirect": HOME_ROUTE})


@bp.get("/logout")
def logout():
    _terminate_current_session()
    return redirect(url_for("auth.login_get"))


@bp.post("/api/logout")
@require_api_login
def api_logout():
    _terminate_current_session()
    return jsonify({"message": "Logged out successfully"})
