from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g, redirect, url_for

from app.crm.errors import Unauthenticated


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Page routes: unauthenticated → 302 to the login page."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if not getattr(g, "current_user", None):
            return redirect(url_for("auth.login_get"))
        return fn(*args, **kwargs)

    return wrapped


def require_api_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    """API routes: unauthenticated → 401 JSON, never a redirect."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if not getattr(g, "current_user", None):
            raise Unauthenticated()
        return fn(*args, **kwargs)

    return wrapped
