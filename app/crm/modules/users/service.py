from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError
from werkzeug.security import generate_password_hash

from app.crm.audit import record_event
from app.crm.db import flush_delete
from app.crm.constants import DEFAULT_USER_ROLE, PROTECTED_USERNAME, USER_ROLES
from app.crm.errors import ConflictError, NotFound, ValidationError
from app.crm.models import User
from app.crm.utils import clean_str, iso, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def user_to_dict(u: User) -> dict[str, Any]:
    # password_hash never leaves the service
    return {
        "id": u.id,
        "username": u.username,
        "full_name": u.full_name,
        "role": u.role,
        "created_at": iso(u.created_at),
    }


def validate_user_payload(payload: dict, *, require_password: bool) -> list[str]:
    errors = []
    if not clean_str(payload.get("username")):
        errors.append("Username is required.")
    if not clean_str(payload.get("full_name")):
        errors.append("Full name is required.")
    if require_password and not (payload.get("password") or ""):
        errors.append("Password is required.")
    role = clean_str(payload.get("role")) or DEFAULT_USER_ROLE
    if role not in USER_ROLES:
        errors.append(f"Invalid role. Must be one of: {', '.join(USER_ROLES)}")
    return errors


def _flush_unique(s: "Session", username: str) -> None:
    try:
        s.flush()
    except IntegrityError:
        s.rollback()
        raise ConflictError(f"Username {username} is already taken.")


def list_users(s: "Session") -> list[User]:
    return s.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def get_user(s: "Session", user_id: int) -> User:
    u = s.get(User, user_id)
    if u is None:
        raise NotFound("User")
    return u


def create_user(s: "Session", payload: dict, actor: User | None) -> User:
    errors = validate_user_payload(payload, require_password=True)
    if errors:
        raise ValidationError.from_errors(errors)

    user = User(
        username=clean_str(payload.get("username")),
        full_name=clean_str(payload.get("full_name")),
        role=clean_str(payload.get("role")) or DEFAULT_USER_ROLE,
        password_hash=generate_password_hash(str(payload.get("password"))),
        created_at=utcnow(),
    )
    s.add(user)
    _flush_unique(s, user.username)

    record_event(
        s,
        actor=actor,
        action="user.create",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"username": user.username, "role": user.role},
    )
    return user


def update_user(
    s: "Session", user_id: int, payload: dict, actor: User, *, protected: str = PROTECTED_USERNAME
) -> User:
    user = get_user(s, user_id)
    errors = validate_user_payload(payload, require_password=False)
    new_username = clean_str(payload.get("username"))
    if user.username == protected and new_username != protected:
        errors.append(f"The {protected} account cannot be renamed.")
    if errors:
        raise ValidationError.from_errors(errors)

    old = {"username": user.username, "role": user.role}
    user.username = new_username  # type: ignore[assignment]
    user.full_name = clean_str(payload.get("full_name"))  # type: ignore[assignment]
    user.role = clean_str(payload.get("role")) or DEFAULT_USER_ROLE
    _flush_unique(s, user.username)

    record_event(
        s,
        actor=actor,
        action="user.edit",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"old": old, "new": {"username": user.username, "role": user.role}},
    )
    return user


def delete_user(s: "Session", user_id: int, actor: User, *, protected: str = PROTECTED_USERNAME) -> bool:
    """
    Delete a user. The protected admin account (`protected`, normally the
    configured ADMIN_USERNAME) is silently kept.
    Returns whether a row was removed.
    """
    user = get_user(s, user_id)
    if user.username == protected:
        logger.info("Refusing to delete protected user %r (actor=%s)", user.username, actor.username)
        return False

    record_event(
        s,
        actor=actor,
        action="user.delete",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"username": user.username},
    )
    s.delete(user)
    flush_delete(s, "User still has assigned activities and cannot be deleted.")
    return True
