from __future__ import annotations

from flask import Blueprint, current_app, flash, redirect, render_template, request, url_for

from ..shared.rbac import admin_required, csrf_token_valid
from ..shared.records import CertificateStore, list_students, replace_roster
from ..shared.roster import RosterError, parse_roster

bp = Blueprint("dashboard", __name__, url_prefix="/dashboard")


@bp.get("")
@admin_required
def index(current_user):
    store = CertificateStore()
    students = list_students()
    return render_template(
        "dashboard.html",
        students=students,
        certificates=store.all(),
        stats=store.stats(),
    )


@bp.post("/upload")
@admin_required
def upload(current_user):
    if not csrf_token_valid(request.form):
        flash("Your form expired. Please try again.", "error")
        return redirect(url_for("dashboard.index"))
    file = request.files.get("file")
    if not file or not file.filename:
        flash("Please choose a CSV file.", "error")
        return redirect(url_for("dashboard.index"))
    try:
        result = parse_roster(file.filename, file.read())
    except RosterError as exc:
        current_app.logger.info(f"[cert-roster] rejected file={file.filename} reason={exc}")
        flash(str(exc), "error")
        return redirect(url_for("dashboard.index"))
    count = replace_roster(result.students)
    for warning in result.warnings:
        flash(warning, "warning")
    current_app.logger.info(
        f"[cert-roster] loaded file={file.filename} rows={count} by={current_user}"
    )
    flash(f"{count} student(s) loaded successfully.", "success")
    return redirect(url_for("dashboard.index"))
