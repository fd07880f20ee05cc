from __future__ import annotations

from flask import Blueprint, flash, jsonify, render_template, request

from ..shared.records import CertificateStore, verify_certificate

bp = Blueprint("verify", __name__, url_prefix="/verify")


@bp.get("")
def form():
    result = None
    cert_id = request.args.get("certId")
    if cert_id is not None:
        try:
            result = verify_certificate(CertificateStore(), cert_id)
        except ValueError as exc:
            flash(str(exc), "error")
    return render_template("verify.html", result=result, cert_id=(cert_id or "").strip())


@bp.get("/<cert_id>")
def verify(cert_id: str):
    try:
        result = verify_certificate(CertificateStore(), cert_id)
    except ValueError as exc:
        return jsonify({"valid": False, "error": str(exc)}), 400
    return jsonify(result.to_dict()), (200 if result.valid else 404)
