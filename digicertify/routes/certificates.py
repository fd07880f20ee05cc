from __future__ import annotations

import csv
import io

from flask import (
    Blueprint,
    Response,
    abort,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    send_file,
    send_from_directory,
    url_for,
)

from ..entities import format_score
from ..rendering.document import verification_payload
from ..services.export import ExportBusyError, get_exporter, run_export
from ..shared.rbac import admin_required, csrf_token_valid
from ..shared.records import find_student, list_students

bp = Blueprint("certificates", __name__, url_prefix="/certificates")


def _student_or_404(usn: str):
    student = find_student(usn)
    if student is None:
        abort(404)
    return student


@bp.get("")
@admin_required
def index(current_user):
    exporter = get_exporter()
    return render_template(
        "generate.html",
        students=list_students(),
        status=exporter.status(),
    )


@bp.get("/lookup")
@admin_required
def lookup(current_user):
    usn = (request.args.get("usn") or "").strip()
    if not usn:
        flash("Please enter a USN.", "error")
        return redirect(url_for("certificates.index"))
    student = find_student(usn)
    if student is None:
        flash("USN not found in uploaded data.", "error")
        return redirect(url_for("certificates.index"))
    exporter = get_exporter()
    try:
        with exporter.lock.hold():
            certificate = exporter.store.resolve_or_create(student)
            preview = exporter.preview.render(certificate)
    except ExportBusyError as exc:
        flash(str(exc), "error")
        return redirect(url_for("certificates.index"))
    return render_template(
        "preview.html",
        student=student,
        certificate=certificate,
        preview=preview,
        verify_url=verification_payload(certificate.id, current_app.config["VERIFY_BASE_URL"]),
        status=exporter.status(),
    )


def _pdf_response(job):
    return send_file(
        io.BytesIO(job.pdf.data),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=job.pdf.filename,
    )


@bp.post("/<usn>/download")
@admin_required
def download(usn: str, current_user):
    if not csrf_token_valid(request.form):
        flash("Your form expired. Please try again.", "error")
        return redirect(url_for("certificates.index"))
    student = _student_or_404(usn)
    job = run_export(get_exporter().export_preview(student))
    if not job.ok:
        flash(f"Export failed: {job.error}", "error")
        return redirect(url_for("certificates.lookup", usn=student.usn))
    return _pdf_response(job)


@bp.post("/<usn>/export")
@admin_required
def export_row(usn: str, current_user):
    if not csrf_token_valid(request.form):
        flash("Your form expired. Please try again.", "error")
        return redirect(url_for("certificates.index"))
    student = _student_or_404(usn)
    job = run_export(get_exporter().export_student(student))
    if not job.ok:
        flash(f"Export failed for {student.usn}: {job.error}", "error")
        return redirect(url_for("certificates.index"))
    return _pdf_response(job)


@bp.post("/export-all")
@admin_required
def export_all(current_user):
    if not csrf_token_valid(request.form):
        flash("Your form expired. Please try again.", "error")
        return redirect(url_for("certificates.index"))
    students = list_students()
    if not students:
        flash("No students loaded.", "error")
        return redirect(url_for("certificates.index"))
    report = run_export(get_exporter().export_all(students))
    current_app.logger.info(
        f"[cert-export] bulk by={current_user} completed={len(report.completed)} failed={len(report.failed)}"
    )
    if report.failed:
        flash(f"{len(report.failed)} certificate(s) failed to export.", "error")
    return render_template("export_report.html", report=report)


@bp.get("/exports/<path:filename>")
@admin_required
def exported_file(filename: str, current_user):
    return send_from_directory(
        current_app.config["EXPORT_DIR"], filename, as_attachment=True
    )


@bp.get("/export/status")
@admin_required
def export_status(current_user):
    return jsonify(get_exporter().status())


@bp.get("/export.csv")
@admin_required
def export_csv(current_user):
    exporter = get_exporter()
    base_url = current_app.config["VERIFY_BASE_URL"]

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(
        [
            "CertificateId",
            "USN",
            "Name",
            "Course",
            "Score",
            "IssuedDate",
            "Downloads",
            "VerifyUrl",
        ]
    )
    for cert in exporter.store.all():
        writer.writerow(
            [
                cert.id,
                cert.usn,
                cert.name,
                cert.course,
                format_score(cert.score),
                cert.issued_date,
                cert.downloads,
                verification_payload(cert.id, base_url),
            ]
        )

    resp = Response(output.getvalue(), mimetype="text/csv")
    resp.headers["Content-Disposition"] = "attachment; filename=certificates.csv"
    return resp
