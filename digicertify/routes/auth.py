from __future__ import annotations

import hmac

from flask import (
    Blueprint,
    current_app,
    flash,
    redirect,
    render_template,
    request,
    session as flask_session,
    url_for,
)

from ..shared.passwords import verify_password
from ..shared.rbac import csrf_token_valid

bp = Blueprint("auth", __name__)


@bp.route("/login", methods=["GET", "POST"])
def login():
    if request.method == "POST":
        if not csrf_token_valid(request.form):
            current_app.logger.info("[AUTH-FAIL] login reason=csrf")
            flash("Your form expired. Please try again.", "error")
            return redirect(url_for("auth.login"))
        username = (request.form.get("username") or "").strip()
        password = request.form.get("password") or ""
        if not username or not password:
            flash("Please fill in all fields.", "error")
            return redirect(url_for("auth.login"))
        expected = current_app.config["ADMIN_USERNAME"]
        if not hmac.compare_digest(username, expected) or not verify_password(
            password, current_app.config["ADMIN_PASSWORD_HASH"]
        ):
            current_app.logger.info(f"[AUTH-FAIL] login username={username}")
            flash("Invalid credentials.", "error")
            return redirect(url_for("auth.login"))
        flask_session.clear()
        flask_session["is_admin"] = True
        flask_session["admin_username"] = username
        current_app.logger.info(f"[AUTH] login username={username}")
        return redirect(url_for("dashboard.index"))
    if flask_session.get("is_admin"):
        return redirect(url_for("dashboard.index"))
    return render_template("login.html")


@bp.get("/logout")
def logout():
    flask_session.clear()
    return redirect(url_for("index"))
