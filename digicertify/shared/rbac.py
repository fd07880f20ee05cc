from functools import wraps

from flask import current_app, redirect, session, url_for


def admin_required(fn):
    """Only the configured admin may reach the wrapped view."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not session.get("is_admin"):
            return redirect(url_for("auth.login"))
        username = session.get("admin_username") or current_app.config["ADMIN_USERNAME"]
        return fn(*args, **kwargs, current_user=username)

    return wrapper


def csrf_token_valid(form) -> bool:
    """Compare a submitted form token against the one issued in the session."""
    token = form.get("csrf_token")
    return bool(token) and token == session.get("_csrf_token")
